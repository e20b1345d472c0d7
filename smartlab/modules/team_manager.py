"""
Team Manager Module - Smart City Lab Admin Dashboard

Teams group five or six students under a leader; task scores record the
marks a team earned for each lab task.

Features:
- Team creation with member count limits
- Team listing with leader and member details resolved from the roster
- Task score creation, editing and deletion
- Scores grouped per team
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from smartlab.modules.database_manager import timestamp_of

TEAMS_COLLECTION = 'teams'
SCORES_COLLECTION = 'teamScores'
STUDENTS_COLLECTION = 'students'


def _millis() -> int:
    return int(time.time() * 1000)


class TeamManager:
    """
    Team and task score administration.
    """

    def __init__(self, database_manager, min_members: int = 5, max_members: int = 6,
                 default_score_out_of: int = 50):
        """
        Initialize the team manager.

        Args:
            database_manager: Database manager instance
            min_members (int): Smallest allowed team
            max_members (int): Largest allowed team
            default_score_out_of (int): Maximum score used when none is given
        """
        self.db = database_manager
        self.min_members = min_members
        self.max_members = max_members
        self.default_score_out_of = default_score_out_of
        self.logger = logging.getLogger(__name__)

    def _new_id(self, collection: str, prefix: str) -> str:
        # ids are millisecond stamps; step past one already taken
        stamp = _millis()
        while self.db.get_document(collection, f'{prefix}-{stamp}') is not None:
            stamp += 1
        return f'{prefix}-{stamp}'

    def validate_team(self, team_name: str, leader_roll_no: str, members: List[str]) -> Optional[str]:
        """Return the first validation error of a team form, or None."""
        if not (team_name or '').strip():
            return 'Please enter team name'
        if not leader_roll_no or not isinstance(leader_roll_no, str):
            return 'Please select a leader'
        if not isinstance(members, list) or not all(isinstance(m, str) and m.strip() for m in members):
            return 'Members must be a list of roll numbers'
        if len(set(members)) != len(members):
            return 'Duplicate members are not allowed'
        if len(members) < self.min_members:
            return f'Please select at least {self.min_members} members'
        if len(members) > self.max_members:
            return f'Maximum {self.max_members} members allowed'
        return None

    def create_team(self, team_name: str, leader_roll_no: str, members: List[str]) -> Dict[str, Any]:
        """
        Create a team.

        Args:
            team_name (str): Team name
            leader_roll_no (str): Leader's roll number
            members (List[str]): Member roll numbers

        Returns:
            Dict[str, Any]: Creation result with ``teamId``
        """
        members = [] if members is None else members
        error = self.validate_team(team_name, leader_roll_no, members)
        if error:
            return {'success': False, 'error': error}

        try:
            team_id = self._new_id(TEAMS_COLLECTION, 'team')
            self.db.set_document(TEAMS_COLLECTION, team_id, {
                'teamName': team_name,
                'leaderRollNo': leader_roll_no,
                'members': members,
                'createdAt': datetime.now(timezone.utc),
            })
            self.logger.info(f"Team created: {team_name} ({team_id})")
            return {'success': True, 'teamId': team_id, 'message': 'Team created successfully'}

        except Exception as e:
            self.logger.error(f"Team creation failed: {str(e)}")
            return {'success': False, 'error': 'Error creating team'}

    def get_teams(self) -> List[Dict[str, Any]]:
        """
        Get every team with ``leaderName`` and ``memberDetails`` resolved.
        """
        try:
            students = self.db.get_collection(STUDENTS_COLLECTION)
            by_roll = {s.get('rollNo'): s for s in students}

            teams = []
            for team in self.db.get_collection(TEAMS_COLLECTION):
                leader = by_roll.get(team.get('leaderRollNo'))
                team['teamId'] = team['id']
                team['leaderName'] = leader.get('name') if leader else 'Unknown'
                team['memberDetails'] = [
                    {'rollNo': roll, 'name': by_roll[roll].get('name', '')}
                    for roll in team.get('members') or [] if roll in by_roll
                ]
                teams.append(team)
            return teams

        except Exception as e:
            self.logger.error(f"Error loading teams: {str(e)}")
            return []

    def delete_team(self, team_id: str) -> bool:
        try:
            deleted = self.db.delete_document(TEAMS_COLLECTION, team_id)
            if deleted:
                self.logger.info(f"Team deleted: {team_id}")
            return deleted
        except Exception as e:
            self.logger.error(f"Error deleting team {team_id}: {str(e)}")
            return False

    def _validate_score(self, data: Dict[str, Any]) -> Optional[str]:
        if not data.get('teamId'):
            return 'Please select a team'
        if not str(data.get('taskTitle') or '').strip():
            return 'Please enter task title'
        if data['scoreGiven'] > data['scoreOutOf']:
            return 'Score given cannot exceed score out of'
        return None

    def _score_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            out_of = int(data.get('scoreOutOf') or self.default_score_out_of)
            given = int(data.get('scoreGiven') or 0)
        except (TypeError, ValueError):
            raise ValueError('Scores must be numbers')
        return {
            'teamId': data.get('teamId'),
            'taskTitle': data.get('taskTitle', ''),
            'scoreOutOf': out_of,
            'scoreGiven': given,
            'remarks': data.get('remarks', ''),
        }

    def add_task_score(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Record a team's score for a task.

        Args:
            data (dict): teamId, taskTitle, scoreOutOf (default 50),
                scoreGiven and optional remarks

        Returns:
            Dict[str, Any]: Result with ``scoreId``
        """
        try:
            fields = self._score_fields(data)
        except ValueError as e:
            return {'success': False, 'error': str(e)}

        error = self._validate_score(fields)
        if error:
            return {'success': False, 'error': error}

        try:
            score_id = self._new_id(SCORES_COLLECTION, 'score')
            fields['createdAt'] = datetime.now(timezone.utc)
            self.db.set_document(SCORES_COLLECTION, score_id, fields)
            self.logger.info(f"Task score added for {fields['teamId']}: {fields['scoreGiven']}/{fields['scoreOutOf']}")
            return {'success': True, 'scoreId': score_id, 'message': 'Task score added successfully'}
        except Exception as e:
            self.logger.error(f"Error saving task score: {str(e)}")
            return {'success': False, 'error': 'Error saving task score'}

    def update_task_score(self, score_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            fields = self._score_fields(data)
        except ValueError as e:
            return {'success': False, 'error': str(e)}

        error = self._validate_score(fields)
        if error:
            return {'success': False, 'error': error}

        try:
            if not self.db.update_document(SCORES_COLLECTION, score_id, fields):
                return {'success': False, 'error': 'Task score not found'}
            self.logger.info(f"Task score updated: {score_id}")
            return {'success': True, 'scoreId': score_id, 'message': 'Task score updated successfully'}
        except Exception as e:
            self.logger.error(f"Error saving task score: {str(e)}")
            return {'success': False, 'error': 'Error saving task score'}

    def delete_task_score(self, score_id: str) -> bool:
        try:
            return self.db.delete_document(SCORES_COLLECTION, score_id)
        except Exception as e:
            self.logger.error(f"Error deleting task score {score_id}: {str(e)}")
            return False

    def get_task_scores(self) -> List[Dict[str, Any]]:
        """
        Get all task scores with team names, ordered by team and newest first.
        """
        try:
            names = {t['id']: t.get('teamName') for t in self.db.get_collection(TEAMS_COLLECTION)}

            scores = []
            for score in self.db.get_collection(SCORES_COLLECTION):
                scores.append({
                    'scoreId': score['id'],
                    'teamId': score.get('teamId', ''),
                    'teamName': names.get(score.get('teamId')) or 'Unknown Team',
                    'taskTitle': score.get('taskTitle', ''),
                    'scoreOutOf': score.get('scoreOutOf') or self.default_score_out_of,
                    'scoreGiven': score.get('scoreGiven') or 0,
                    'remarks': score.get('remarks', ''),
                    'createdAt': score.get('createdAt'),
                })

            # newest first within a team, then stable sort by team
            scores.sort(key=lambda s: timestamp_of(s['createdAt']), reverse=True)
            scores.sort(key=lambda s: str(s['teamId']))
            return scores

        except Exception as e:
            self.logger.error(f"Error loading task marks: {str(e)}")
            return []

    @staticmethod
    def group_scores_by_team(scores: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for score in scores:
            grouped.setdefault(score['teamId'], []).append(score)
        return grouped
