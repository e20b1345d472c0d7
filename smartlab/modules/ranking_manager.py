"""
Ranking Manager Module - Smart City Lab Admin Dashboard

This module computes the derived figures shown on the dashboard and the
rankings screen: attendance percentages per student, team totals from task
scores and the summary statistics of the admin dashboard.

Features:
- Attendance rankings with percentage and present-day tie break
- Team rankings from summed task scores
- Per-student present/absent day counts for reports
- Dashboard summary statistics
"""

import logging
import math
from typing import Any, Dict, List, Optional

from smartlab.modules.attendance_manager import ATTENDANCE_COLLECTION, today_key
from smartlab.modules.team_manager import SCORES_COLLECTION, TEAMS_COLLECTION

STUDENTS_COLLECTION = 'students'
ANNOUNCEMENTS_COLLECTION = 'announcements'
MENTORS_COLLECTION = 'mentors'


def attendance_percentage(present: int, total: int) -> int:
    """Attendance percentage rounded half up, 0 when there were no days."""
    if total <= 0:
        return 0
    return int(math.floor(present / total * 100 + 0.5))


def _tally_attendance(attendance_docs: List[Dict[str, Any]],
                      known_rolls: Optional[set] = None) -> Dict[str, Dict[str, int]]:
    # roll -> {'present', 'total'}, restricted to known_rolls when given
    tally: Dict[str, Dict[str, int]] = {}
    if known_rolls is not None:
        tally = {roll: {'present': 0, 'total': 0} for roll in known_rolls}

    for doc in sorted(attendance_docs, key=lambda d: str(d.get('date') or '')):
        for roll in doc.get('presentStudents') or []:
            if known_rolls is None:
                tally.setdefault(roll, {'present': 0, 'total': 0})
            if roll in tally:
                tally[roll]['present'] += 1
                tally[roll]['total'] += 1
        for roll in doc.get('absentStudents') or []:
            if known_rolls is None:
                tally.setdefault(roll, {'present': 0, 'total': 0})
            if roll in tally:
                tally[roll]['total'] += 1
    return tally


def compute_attendance_rankings(students: List[Dict[str, Any]],
                                attendance_docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Rank roster students by attendance.

    Roll numbers in attendance documents that are not on the roster are
    ignored. Ordering is percentage descending, then present days
    descending; remaining ties keep roster order.

    Args:
        students (List[dict]): Student documents
        attendance_docs (List[dict]): Daily attendance documents

    Returns:
        List[dict]: rollNo, name, presentDays, totalDays,
        attendancePercentage and rank
    """
    roster = {}
    for student in students:
        roll = student.get('rollNo')
        if roll and roll not in roster:
            roster[roll] = student.get('name', '')

    tally = _tally_attendance(attendance_docs, set(roster))

    rankings = []
    for roll, name in roster.items():
        counts = tally[roll]
        rankings.append({
            'rollNo': roll,
            'name': name,
            'presentDays': counts['present'],
            'totalDays': counts['total'],
            'attendancePercentage': attendance_percentage(counts['present'], counts['total']),
            'rank': 0,
        })

    rankings.sort(key=lambda r: (-r['attendancePercentage'], -r['presentDays']))
    for index, ranking in enumerate(rankings):
        ranking['rank'] = index + 1
    return rankings


def compute_team_rankings(teams: List[Dict[str, Any]], scores: List[Dict[str, Any]],
                          students: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Rank teams by the sum of their task scores.

    Scores that reference a missing team are still ranked under
    ``Unknown Team``.

    Returns:
        List[dict]: teamId, teamName, leaderRollNo, leaderName, totalPoints,
        taskCount and rank
    """
    names_by_roll = {s.get('rollNo'): s.get('name') for s in students}

    totals: Dict[str, float] = {}
    details: Dict[str, Dict[str, Any]] = {}

    for team in teams:
        totals[team['id']] = 0
        details[team['id']] = {
            'teamName': team.get('teamName'),
            'leaderRollNo': team.get('leaderRollNo', ''),
            'leaderName': names_by_roll.get(team.get('leaderRollNo')) or 'Unknown',
            'taskCount': 0,
        }

    for score in scores:
        team_id = score.get('teamId')
        totals[team_id] = totals.get(team_id, 0) + (score.get('scoreGiven') or 0)
        if team_id in details:
            details[team_id]['taskCount'] += 1

    unknown = {'teamName': 'Unknown Team', 'leaderRollNo': '', 'leaderName': 'Unknown', 'taskCount': 0}
    rankings = [
        dict(details.get(team_id, unknown), teamId=team_id, totalPoints=points, rank=0)
        for team_id, points in totals.items()
    ]

    rankings.sort(key=lambda r: -r['totalPoints'])
    for index, ranking in enumerate(rankings):
        ranking['rank'] = index + 1
    return rankings


def compute_student_statistics(students: List[Dict[str, Any]],
                               attendance_docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Days present and absent for every roster student, ordered by roll number."""
    stats = {}
    for student in students:
        roll = student.get('rollNo')
        if roll:
            stats[roll] = {'rollNo': roll, 'name': student.get('name', ''),
                           'daysPresent': 0, 'daysAbsent': 0}

    for doc in attendance_docs:
        for roll in doc.get('presentStudents') or []:
            if roll in stats:
                stats[roll]['daysPresent'] += 1
        for roll in doc.get('absentStudents') or []:
            if roll in stats:
                stats[roll]['daysAbsent'] += 1

    return sorted(stats.values(), key=lambda s: str(s['rollNo']))


class RankingManager:
    """
    Rankings and dashboard statistics over the lab's collections.
    """

    def __init__(self, database_manager, top_attendance_count: int = 10, top_team_count: int = 5):
        self.db = database_manager
        self.top_attendance_count = top_attendance_count
        self.top_team_count = top_team_count
        self.logger = logging.getLogger(__name__)

    def get_attendance_rankings(self) -> List[Dict[str, Any]]:
        try:
            return compute_attendance_rankings(self.db.get_collection(STUDENTS_COLLECTION),
                                               self.db.get_collection(ATTENDANCE_COLLECTION))
        except Exception as e:
            self.logger.error(f"Error loading attendance rankings: {str(e)}")
            return []

    def get_team_rankings(self) -> List[Dict[str, Any]]:
        try:
            return compute_team_rankings(self.db.get_collection(TEAMS_COLLECTION),
                                         self.db.get_collection(SCORES_COLLECTION),
                                         self.db.get_collection(STUDENTS_COLLECTION))
        except Exception as e:
            self.logger.error(f"Error loading team rankings: {str(e)}")
            return []

    def get_rankings_overview(self) -> Dict[str, Any]:
        """
        Full rankings with the top entries used by the rankings screen.

        Returns:
            Dict[str, Any]: attendance, teams, topAttendance and topTeams
        """
        attendance = self.get_attendance_rankings()
        teams = self.get_team_rankings()
        return {
            'attendance': attendance,
            'teams': teams,
            'topAttendance': attendance[:self.top_attendance_count],
            'topTeams': teams[:self.top_team_count],
        }

    def get_student_statistics(self) -> List[Dict[str, Any]]:
        try:
            return compute_student_statistics(self.db.get_collection(STUDENTS_COLLECTION),
                                              self.db.get_collection(ATTENDANCE_COLLECTION))
        except Exception as e:
            self.logger.error(f"Error loading student statistics: {str(e)}")
            return []

    def get_dashboard_statistics(self, date: Optional[str] = None) -> Dict[str, Any]:
        """
        Summary figures of the admin dashboard.

        Each figure is computed independently; a failing read leaves that
        figure at its default.

        Args:
            date (str): Day used for ``presentToday``, today (UTC) by default

        Returns:
            Dict[str, Any]: totalStudents, presentToday, topAttendanceStudent,
            topAttendancePercent, topTeamName, totalAnnouncements, totalMentors
        """
        stats = {
            'totalStudents': 0,
            'presentToday': 0,
            'topAttendanceStudent': 'N/A',
            'topAttendancePercent': 0,
            'topTeamName': 'N/A',
            'totalAnnouncements': 0,
            'totalMentors': 0,
        }
        students: List[Dict[str, Any]] = []

        try:
            students = self.db.get_collection(STUDENTS_COLLECTION)
            stats['totalStudents'] = len(students)
        except Exception as e:
            self.logger.error(f"Error fetching students: {str(e)}")

        try:
            today = self.db.get_document(ATTENDANCE_COLLECTION, date or today_key())
            stats['presentToday'] = (today or {}).get('presentCount') or 0
        except Exception as e:
            self.logger.error(f"Error fetching today's attendance: {str(e)}")

        if students:
            try:
                tally = _tally_attendance(self.db.get_collection(ATTENDANCE_COLLECTION))
                top_roll, top_percent = '', 0
                for roll, counts in tally.items():
                    percent = attendance_percentage(counts['present'], counts['total'])
                    if percent > top_percent:
                        top_roll, top_percent = roll, percent

                if top_roll:
                    match = next((s for s in students if s.get('rollNo') == top_roll), None)
                    stats['topAttendanceStudent'] = (match or {}).get('name') or 'N/A'
                    stats['topAttendancePercent'] = top_percent
            except Exception as e:
                self.logger.error(f"Error calculating top attendance: {str(e)}")

        try:
            teams = self.db.get_collection(TEAMS_COLLECTION)
            if teams:
                points = {t['id']: 0 for t in teams}
                for score in self.db.get_collection(SCORES_COLLECTION):
                    if score.get('teamId') in points:
                        points[score['teamId']] += score.get('scoreGiven') or 0

                max_points = 0
                for team in teams:
                    if points[team['id']] > max_points:
                        max_points = points[team['id']]
                        stats['topTeamName'] = team.get('teamName') or f"Team {team['id']}"
        except Exception as e:
            self.logger.error(f"Error calculating team scores: {str(e)}")

        try:
            stats['totalAnnouncements'] = self.db.count_documents(ANNOUNCEMENTS_COLLECTION)
            stats['totalMentors'] = self.db.count_documents(MENTORS_COLLECTION)
        except Exception as e:
            self.logger.error(f"Error counting announcements and mentors: {str(e)}")

        return stats
