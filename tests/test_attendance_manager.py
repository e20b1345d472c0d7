import io
import json
from datetime import datetime, timezone

import pandas as pd
import pytest

from conftest import add_student
from smartlab.modules.attendance_manager import AttendanceManager, ScanSession, today_key
from smartlab.modules.auth_manager import AuthManager
from smartlab.modules.qr_generator import QRGenerator
from smartlab.modules.student_manager import StudentManager

ROSTER = ['21A01', '21A02', '21A03']


def payload(roll_no, name=''):
    return QRGenerator().parse_scan_payload(json.dumps({'qrId': 'x', 'rollNo': roll_no, 'name': name}))


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestScanSession:
    def test_records_scan_and_starts_cooldown(self):
        session = ScanSession(cooldown_ms=300)
        result = session.process_scan(payload('21A01', 'Asha'), ROSTER, now=10.0)
        assert result['result'] == 'recorded'
        assert result['record']['status'] == 'present'
        assert session.last_scanned == {'rollNo': '21A01', 'name': 'Asha'}

        assert session.process_scan(payload('21A02'), ROSTER, now=10.2)['result'] == 'cooldown'
        assert session.process_scan(payload('21A02'), ROSTER, now=10.4)['result'] == 'recorded'

    def test_duplicate_roll_is_ignored(self):
        session = ScanSession(cooldown_ms=300)
        session.process_scan(payload('21A01'), ROSTER, now=1.0)
        result = session.process_scan(payload('21A01'), ROSTER, now=5.0)
        assert result['result'] == 'duplicate'
        assert len(session.records) == 1

    def test_unknown_student(self):
        session = ScanSession()
        result = session.process_scan(payload('99X99'), ROSTER, now=1.0)
        assert result['result'] == 'not_found'
        assert result['error'] == 'Student 99X99 not found in database'
        assert session.records == []

    def test_invalid_payload_does_not_start_cooldown(self):
        session = ScanSession()
        bad = QRGenerator().parse_scan_payload('not json')
        assert session.process_scan(bad, ROSTER, now=1.0)['result'] == 'invalid'
        assert not session.cooldown_active(now=1.0)

    def test_remove_frees_roll_number(self):
        session = ScanSession(cooldown_ms=0)
        record = session.process_scan(payload('21A01'), ROSTER, now=1.0)['record']
        assert session.remove_record(record['id']) is True
        assert session.process_scan(payload('21A01'), ROSTER, now=2.0)['result'] == 'recorded'
        assert session.remove_record(999) is False

    def test_mark_absent_and_counts(self):
        session = ScanSession(cooldown_ms=0)
        first = session.process_scan(payload('21A01'), ROSTER, now=1.0)['record']
        session.process_scan(payload('21A02'), ROSTER, now=2.0)
        assert session.mark_absent(first['id']) is True
        assert session.present_roll_numbers() == ['21A02']

        summary = session.to_dict()
        assert summary['presentCount'] == 1
        assert summary['absentCount'] == 1

    def test_search_and_reset(self):
        session = ScanSession(cooldown_ms=0)
        session.process_scan(payload('21A01', 'Asha'), ROSTER, now=1.0)
        session.process_scan(payload('21A02', 'Ravi'), ROSTER, now=2.0)
        assert [r.rollNo for r in session.search('ravi')] == ['21A02']
        session.reset()
        assert session.records == []
        assert session.process_scan(payload('21A01'), ROSTER, now=3.0)['result'] == 'recorded'


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def attendance(db, auth_client, firestore_client, clock):
    for i, roll in enumerate(ROSTER):
        add_student(firestore_client, f's{i}', roll, f'Student {i}')
    students = StudentManager(db, AuthManager(db, auth_client))
    return AttendanceManager(db, students, cooldown_ms=300, clock=clock)


def test_sessions_are_per_scanner(attendance, clock):
    attendance.process_scan('admin-1', json.dumps({'rollNo': '21A01'}))
    clock.now += 1
    result = attendance.process_scan('admin-2', json.dumps({'rollNo': '21A01'}))
    assert result['result'] == 'recorded'


def test_manager_cooldown_uses_clock(attendance, clock):
    assert attendance.process_scan('a', json.dumps({'rollNo': '21A01'}))['result'] == 'recorded'
    assert attendance.process_scan('a', json.dumps({'rollNo': '21A02'}))['result'] == 'cooldown'
    clock.now += 0.5
    assert attendance.process_scan('a', json.dumps({'rollNo': '21A02'}))['result'] == 'recorded'


def test_submit_attendance_writes_day_document(attendance, clock, firestore_client):
    attendance.process_scan('a', json.dumps({'rollNo': '21A02'}))
    result = attendance.submit_attendance('a', submitted_by='Lab Admin', date='2026-02-01')

    assert result['success']
    stored = firestore_client.docs('attendance')['2026-02-01']
    assert stored['presentStudents'] == ['21A02']
    assert sorted(stored['absentStudents']) == ['21A01', '21A03']
    assert stored['presentCount'] == 1
    assert stored['absentCount'] == 2
    assert stored['totalStudents'] == 3
    assert attendance.get_session('a').records == []
    assert attendance.get_today_attendance('2026-02-01')['submittedBy'] == 'Lab Admin'


def test_today_key_is_utc():
    assert today_key(datetime(2026, 3, 9, 23, 30, tzinfo=timezone.utc)) == '2026-03-09'


class TestPaperAttendance:
    def sheet(self):
        frame = pd.DataFrame({
            'R No': ['0012', '0013', '', '0015'],
            'Student Name': ['Asha', 'Ravi', 'Nobody', 'Mira'],
            'Year': ['2', '2', '2', '3'],
            'Branch': ['CSE', 'ECE', 'CSE', 'CSE'],
            'Section': ['A', 'B', 'A', 'A'],
        })
        buffer = io.BytesIO()
        frame.to_excel(buffer, index=False, engine='openpyxl')
        buffer.seek(0)
        return buffer

    def test_load_roster_from_excel(self, attendance):
        result = attendance.load_paper_roster(self.sheet(), 'sheet.xlsx')
        assert result['success']
        students = result['students']
        assert [s['rollNo'] for s in students] == ['0012', '0013', '0015']
        assert students[0]['id'] == 'student-0'
        assert students[2]['id'] == 'student-3'
        assert attendance.get_paper_filter_options(students) == {
            'years': ['2', '3'], 'branches': ['CSE', 'ECE'], 'sections': ['A', 'B'],
        }

    def test_filter_roster(self, attendance):
        students = attendance.load_paper_roster(self.sheet(), 'sheet.xlsx')['students']
        assert [s['name'] for s in attendance.filter_paper_roster(students, branch='CSE')] == ['Asha', 'Mira']
        assert [s['name'] for s in attendance.filter_paper_roster(students, year='2', search='ra')] == ['Ravi']

    def test_unreadable_sheet(self, attendance):
        result = attendance.load_paper_roster(io.BytesIO(b'not a workbook'), 'sheet.xlsx')
        assert result['success'] is False

    def test_submit_once_per_day(self, attendance, firestore_client):
        students = attendance.load_paper_roster(self.sheet(), 'sheet.xlsx')['students']

        result = attendance.submit_paper_attendance(students, ['student-0', 'student-3'], date='2026-02-02')
        assert result['success']
        record = firestore_client.docs('attendance')[result['id']]
        assert record['presentStudents'] == ['0012 - Asha', '0015 - Mira']
        assert record['absentStudents'] == ['0013 - Ravi']
        assert record['totalStudents'] == 3

        again = attendance.submit_paper_attendance(students, [], date='2026-02-02')
        assert again == {'success': False, 'error': 'Attendance already taken for today!'}

    def test_submit_without_students(self, attendance):
        assert attendance.submit_paper_attendance([], [])['error'] == 'No students loaded'


def test_list_and_delete_records(attendance, firestore_client):
    firestore_client.collection('attendance').document('2026-01-01').set({'date': '2026-01-01'})
    firestore_client.collection('attendance').document('2026-01-03').set({'date': '2026-01-03'})
    assert [r['date'] for r in attendance.list_attendance_records()] == ['2026-01-03', '2026-01-01']
    assert attendance.delete_attendance_record('2026-01-01') is True
    assert attendance.delete_attendance_record('2026-01-01') is False


def test_roster_is_read_outside_session_locks(attendance, monkeypatch):
    session = attendance.get_session('a')
    held = []
    real_roster = attendance.roster_roll_numbers

    def roster():
        held.append(attendance._sessions_lock.locked() or session.lock.locked())
        return real_roster()

    monkeypatch.setattr(attendance, 'roster_roll_numbers', roster)
    assert attendance.process_scan('a', json.dumps({'rollNo': '21A01'}))['result'] == 'recorded'
    assert attendance.submit_attendance('a', date='2026-02-02')['success']
    assert held == [False, False]


def test_session_edits_through_manager(attendance, clock):
    record = attendance.process_scan('a', json.dumps({'rollNo': '21A01', 'name': 'Asha'}))['record']
    clock.now += 1
    attendance.process_scan('a', json.dumps({'rollNo': '21A02', 'name': 'Ravi'}))

    state = attendance.mark_absent('a', record['id'])
    assert state['presentCount'] == 1
    assert state['absentCount'] == 1
    assert attendance.mark_absent('a', 999) is None

    assert [r['rollNo'] for r in attendance.session_state('a', 'ravi')['records']] == ['21A02']

    state = attendance.remove_record('a', record['id'])
    assert [r['rollNo'] for r in state['records']] == ['21A02']
    assert attendance.remove_record('a', record['id']) is None
