import pytest

from smartlab.modules import team_manager
from smartlab.modules.team_manager import TeamManager

MEMBERS = ['A1', 'B2', 'C3', 'D4', 'E5']


@pytest.fixture
def teams(db, firestore_client):
    firestore_client.collection('students').document('s1').set({'rollNo': 'A1', 'name': 'Asha'})
    firestore_client.collection('students').document('s2').set({'rollNo': 'B2', 'name': 'Ravi'})
    return TeamManager(db, min_members=5, max_members=6)


@pytest.mark.parametrize('name, leader, members, error', [
    ('', 'A1', MEMBERS, 'Please enter team name'),
    ('Alpha', '', MEMBERS, 'Please select a leader'),
    ('Alpha', 'A1', MEMBERS[:4], 'Please select at least 5 members'),
    ('Alpha', 'A1', MEMBERS + ['F6', 'G7'], 'Maximum 6 members allowed'),
    ('Alpha', 'A1', 'abcde', 'Members must be a list of roll numbers'),
    ('Alpha', 'A1', MEMBERS[:4] + [5], 'Members must be a list of roll numbers'),
    ('Alpha', 'A1', MEMBERS[:4] + ['A1'], 'Duplicate members are not allowed'),
])
def test_team_validation(teams, name, leader, members, error):
    assert teams.create_team(name, leader, members) == {'success': False, 'error': error}


def test_create_and_list_teams(teams):
    team_id = teams.create_team('Alpha', 'A1', MEMBERS)['teamId']
    assert team_id.startswith('team-')

    listed = teams.get_teams()
    assert listed[0]['teamId'] == team_id
    assert listed[0]['leaderName'] == 'Asha'
    assert listed[0]['memberDetails'] == [{'rollNo': 'A1', 'name': 'Asha'}, {'rollNo': 'B2', 'name': 'Ravi'}]

    assert teams.delete_team(team_id) is True
    assert teams.get_teams() == []


def test_ids_created_in_the_same_millisecond_are_distinct(teams, monkeypatch):
    monkeypatch.setattr(team_manager, '_millis', lambda: 1700000000000)
    first = teams.create_team('Alpha', 'A1', MEMBERS)['teamId']
    second = teams.create_team('Beta', 'A1', MEMBERS)['teamId']
    assert first == 'team-1700000000000'
    assert second == 'team-1700000000001'


class TestTaskScores:
    def test_validation(self, teams):
        assert teams.add_task_score({'taskTitle': 'Survey'})['error'] == 'Please select a team'
        assert teams.add_task_score({'teamId': 't'})['error'] == 'Please enter task title'
        assert teams.add_task_score({'teamId': 't', 'taskTitle': 'Survey', 'scoreGiven': 60})['error'] == \
            'Score given cannot exceed score out of'
        assert teams.add_task_score({'teamId': 't', 'taskTitle': 'Survey', 'scoreGiven': 'ten'})['error'] == \
            'Scores must be numbers'

    def test_default_out_of(self, teams, firestore_client):
        score_id = teams.add_task_score({'teamId': 't', 'taskTitle': 'Survey', 'scoreGiven': '35'})['scoreId']
        stored = firestore_client.docs('teamScores')[score_id]
        assert stored['scoreOutOf'] == 50
        assert stored['scoreGiven'] == 35

    def test_update_delete_and_grouping(self, teams):
        team_id = teams.create_team('Alpha', 'A1', MEMBERS)['teamId']
        score_id = teams.add_task_score({'teamId': team_id, 'taskTitle': 'Survey', 'scoreGiven': 10})['scoreId']
        teams.add_task_score({'teamId': 'ghost', 'taskTitle': 'Map', 'scoreGiven': 5})

        result = teams.update_task_score(score_id, {'teamId': team_id, 'taskTitle': 'Survey v2',
                                                    'scoreGiven': 20, 'scoreOutOf': 25})
        assert result['success']
        assert teams.update_task_score('missing', {'teamId': team_id, 'taskTitle': 'x'})['error'] == \
            'Task score not found'

        scores = teams.get_task_scores()
        by_team = teams.group_scores_by_team(scores)
        assert by_team[team_id][0]['taskTitle'] == 'Survey v2'
        assert by_team[team_id][0]['teamName'] == 'Alpha'
        assert by_team['ghost'][0]['teamName'] == 'Unknown Team'

        assert teams.delete_task_score(score_id) is True
        assert teams.delete_task_score(score_id) is False
