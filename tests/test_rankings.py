import pytest

from smartlab.modules.ranking_manager import (
    RankingManager,
    attendance_percentage,
    compute_attendance_rankings,
    compute_student_statistics,
    compute_team_rankings,
)

STUDENTS = [
    {'rollNo': 'A1', 'name': 'Asha'},
    {'rollNo': 'B2', 'name': 'Ravi'},
    {'rollNo': 'C3', 'name': 'Mira'},
]

DAYS = [
    {'date': '2026-01-01', 'presentStudents': ['A1', 'B2', 'X9'], 'absentStudents': ['C3']},
    {'date': '2026-01-02', 'presentStudents': ['A1'], 'absentStudents': ['B2', 'C3']},
    {'date': '2026-01-03', 'presentStudents': ['A1', 'B2'], 'absentStudents': ['C3']},
]


@pytest.mark.parametrize('present, total, expected', [
    (0, 0, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 8, 13),
])
def test_attendance_percentage(present, total, expected):
    assert attendance_percentage(present, total) == expected


def test_attendance_rankings():
    rankings = compute_attendance_rankings(STUDENTS, DAYS)
    assert [r['rollNo'] for r in rankings] == ['A1', 'B2', 'C3']
    assert [r['rank'] for r in rankings] == [1, 2, 3]
    assert rankings[1]['attendancePercentage'] == 67
    assert rankings[2]['presentDays'] == 0
    assert rankings[2]['totalDays'] == 3


def test_rankings_ignore_unknown_rolls_and_keep_roster_order_on_ties():
    students = [{'rollNo': 'Z1', 'name': 'Zed'}, {'rollNo': 'A1', 'name': 'Asha'}]
    rankings = compute_attendance_rankings(students, [
        {'date': '2026-01-01', 'presentStudents': ['A1', 'Z1', 'NOPE']},
    ])
    assert [r['rollNo'] for r in rankings] == ['Z1', 'A1']


def test_team_rankings():
    teams = [
        {'id': 'team-1', 'teamName': 'Alpha', 'leaderRollNo': 'A1'},
        {'id': 'team-2', 'teamName': 'Beta', 'leaderRollNo': 'ZZ'},
    ]
    scores = [
        {'teamId': 'team-2', 'scoreGiven': 30},
        {'teamId': 'team-2', 'scoreGiven': 15},
        {'teamId': 'team-1', 'scoreGiven': 40},
        {'teamId': 'ghost', 'scoreGiven': 5},
    ]
    rankings = compute_team_rankings(teams, scores, STUDENTS)

    assert [r['teamName'] for r in rankings] == ['Beta', 'Alpha', 'Unknown Team']
    assert rankings[0]['totalPoints'] == 45
    assert rankings[0]['taskCount'] == 2
    assert rankings[0]['leaderName'] == 'Unknown'
    assert rankings[1]['leaderName'] == 'Asha'
    assert rankings[2]['rank'] == 3


def test_student_statistics():
    stats = compute_student_statistics(STUDENTS, DAYS)
    assert stats[1] == {'rollNo': 'B2', 'name': 'Ravi', 'daysPresent': 2, 'daysAbsent': 1}


def seed(firestore_client):
    for i, student in enumerate(STUDENTS):
        firestore_client.collection('students').document(f's{i}').set(student)
    for day in DAYS:
        firestore_client.collection('attendance').document(day['date']).set(day)
    firestore_client.collection('teams').document('team-1').set({'teamName': 'Alpha', 'leaderRollNo': 'A1'})
    firestore_client.collection('teamScores').document('score-1').set({'teamId': 'team-1', 'scoreGiven': 12})
    firestore_client.collection('announcements').document('n1').set({'title': 'Hi'})
    firestore_client.collection('mentors').document('m1').set({'name': 'Kiran'})


def test_overview_limits_top_entries(db, firestore_client):
    seed(firestore_client)
    overview = RankingManager(db, top_attendance_count=2, top_team_count=1).get_rankings_overview()
    assert len(overview['attendance']) == 3
    assert [r['rollNo'] for r in overview['topAttendance']] == ['A1', 'B2']
    assert overview['topTeams'][0]['teamName'] == 'Alpha'


def test_dashboard_statistics(db, firestore_client):
    seed(firestore_client)
    stats = RankingManager(db).get_dashboard_statistics(date='2026-01-03')
    assert stats == {
        'totalStudents': 3,
        'presentToday': 0,
        'topAttendanceStudent': 'Asha',
        'topAttendancePercent': 100,
        'topTeamName': 'Alpha',
        'totalAnnouncements': 1,
        'totalMentors': 1,
    }


def test_dashboard_statistics_empty(db):
    stats = RankingManager(db).get_dashboard_statistics(date='2026-01-03')
    assert stats['topAttendanceStudent'] == 'N/A'
    assert stats['topTeamName'] == 'N/A'
    assert stats['totalStudents'] == 0
