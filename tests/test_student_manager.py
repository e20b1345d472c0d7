import csv
import io

import pytest

from smartlab.modules.auth_manager import AuthManager
from smartlab.modules.student_manager import (
    StudentManager,
    generate_credentials_csv,
    parse_csv,
    validate_student_row,
)


@pytest.fixture
def students(db, auth_client):
    return StudentManager(db, AuthManager(db, auth_client), email_domain='school.local')


class TestParseCsv:
    def test_headers_are_lowercased(self):
        rows = parse_csv('Name,RollNo,Email\nAsha,21A01,asha@x.test\n')
        assert rows == [{'name': 'Asha', 'rollno': '21A01', 'email': 'asha@x.test'}]

    def test_blank_rows_skipped_and_missing_cells_empty(self):
        rows = parse_csv('name,rollno,email,year\nAsha,21A01\n\n , , \nRavi,21A02,r@x.test,3\n')
        assert len(rows) == 2
        assert rows[0] == {'name': 'Asha', 'rollno': '21A01', 'email': '', 'year': ''}
        assert rows[1]['year'] == '3'

    def test_quoted_cells(self):
        rows = parse_csv('name,rollno\n"Rao, Asha",21A01\n')
        assert rows[0]['name'] == 'Rao, Asha'

    def test_header_only_is_empty(self):
        assert parse_csv('name,rollno,email') == []
        assert parse_csv('') == []


def test_validate_student_row():
    assert validate_student_row({'name': 'Asha', 'rollno': '1'}) == []
    assert validate_student_row({'name': 'Asha', 'rollNo': '1'}) == []
    assert validate_student_row({}) == ['Name is required', 'Roll number is required']


def test_credentials_csv_only_lists_created_accounts():
    text = generate_credentials_csv([
        {'success': True, 'name': 'Asha', 'rollNo': '21A01', 'email': 'a@x.test', 'password': 'Pw1!aaaa'},
        {'success': False, 'name': 'Ravi', 'error': 'Email already exists'},
    ])
    assert text.splitlines() == [
        'Name,Roll Number,Email,Password',
        '"Asha","21A01","a@x.test","Pw1!aaaa"',
    ]
    assert generate_credentials_csv([{'success': False}]) == ''


def test_credentials_csv_escapes_quotes():
    text = generate_credentials_csv([
        {'success': True, 'name': 'Ravi "Rocky"', 'rollNo': '21A02', 'email': 'r@x.test', 'password': 'a,b"c'},
    ])
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[1] == ['Ravi "Rocky"', '21A02', 'r@x.test', 'a,b"c']


class TestCreateStudent:
    def test_missing_fields(self, students):
        result = students.create_student({'email': 'a@x.test', 'name': 'Asha'})
        assert result['status'] == 400
        assert 'Missing required fields' in result['error']

    def test_creates_user_and_profile(self, students, firestore_client):
        result = students.create_student({
            'email': 'a@x.test', 'password': 'secret1', 'name': 'Asha', 'rollNo': '21A01', 'year': '2',
        })
        assert result['status'] == 201
        uid = result['uid']
        assert firestore_client.docs('users')[uid]['role'] == 'student'
        profile = firestore_client.docs('students')[uid]
        assert profile['rollNo'] == '21A01'
        assert profile['year'] == '2'
        assert profile['password'] == 'secret1'

    def test_duplicate_email_maps_message(self, students):
        data = {'email': 'a@x.test', 'password': 'secret1', 'name': 'Asha', 'rollNo': '21A01'}
        students.create_student(data)
        result = students.create_student(dict(data, rollNo='21A02'))
        assert result['status'] == 500
        assert result['error'] == 'Email already exists'


class TestBulkCreate:
    def test_row_errors_do_not_stop_the_batch(self, students, auth_client):
        result = students.bulk_create_students([
            {'name': 'Asha', 'rollno': '21A01', 'email': 'ASHA@x.test'},
            {'name': '', 'rollno': '21A02'},
            {'name': 'Ravi', 'rollno': ''},
            {'name': 'Mira', 'rollNo': '21A04'},
            {'name': 'Dup', 'rollno': '21A05', 'email': 'asha@x.test'},
        ])
        assert result['totalProcessed'] == 5
        assert result['successful'] == 2
        assert result['failed'] == 3

        by_row = {r['rowIndex']: r for r in result['results']}
        assert by_row[1]['email'] == 'asha@x.test'
        assert by_row[2]['error'] == 'Name is required'
        assert by_row[3]['error'] == 'Roll number is required'
        assert by_row[4]['email'] == 'student21A04@school.local'
        assert by_row[5]['error'] == 'Email already exists'
        assert len(by_row[1]['password']) == 12

    def test_invalid_email_uses_bulk_wording(self, students):
        result = students.bulk_create_students([{'name': 'Asha', 'rollno': '1', 'email': 'not-an-email'}])
        assert result['results'][0]['error'] == 'Invalid email format'

    def test_import_from_csv_adds_credentials(self, students):
        result = students.import_students_from_csv('NAME,ROLLNO,EMAIL\nAsha,21A01,a@x.test\n')
        assert result['successful'] == 1
        assert result['credentialsCsv'].startswith('Name,Roll Number,Email,Password')

    def test_import_empty_csv(self, students):
        assert students.import_students_from_csv('name,rollno') == {
            'success': False, 'error': 'No student data provided'
        }


def test_filter_students():
    roster = [
        {'name': 'Asha Rao', 'rollNo': '21A01', 'email': 'asha@x.test', 'year': '2', 'backlogs': '0'},
        {'name': 'Ravi', 'rollNo': '21A02', 'email': 'ravi@x.test', 'year': '3', 'backlogs': '1'},
    ]
    assert StudentManager.filter_students(roster, query='RAO') == roster[:1]
    assert StudentManager.filter_students(roster, query='21a02') == roster[1:]
    assert StudentManager.filter_students(roster, year='3', backlogs='1') == roster[1:]
    assert StudentManager.get_filter_options(roster) == {'years': ['2', '3'], 'backlogs': ['0', '1']}


def test_update_and_delete(students, firestore_client):
    firestore_client.collection('students').document('s1').set({'name': 'Asha', 'rollNo': '1'})

    assert students.update_student('s1', {'year': '4', 'role': 'admin'})['success']
    assert firestore_client.docs('students')['s1']['year'] == '4'
    assert 'role' not in firestore_client.docs('students')['s1']

    assert students.update_student('s1', {'name': ' '})['error'] == 'Name is required'
    assert students.update_student('missing', {'year': '1'})['error'] == 'Student not found'

    assert students.delete_student('s1') is True
    assert students.delete_student('s1') is False


def test_sync_passwords(students, auth_client):
    auth_client.create_user(email='a@x.test', password='old-pass', display_name='Asha')
    result = students.sync_passwords([
        {'name': 'Asha', 'email': 'a@x.test', 'password': 'new-pass'},
        {'name': 'NoPass', 'email': 'b@x.test'},
        {'name': 'Ghost', 'email': 'ghost@x.test', 'passwordHash': 'whatever'},
    ])
    assert result['total'] == 3
    assert result['success'] == 1
    assert result['failed'] == 2
    assert result['errors'][0] == {'name': 'NoPass', 'error': 'Missing email or password'}
    assert result['errors'][1] == {'name': 'Ghost', 'error': 'User not found'}
    assert auth_client.get_user_by_email('a@x.test').password == 'new-pass'


def test_optional_fields_are_stored_as_text(students, firestore_client):
    uid = students.create_student({
        'email': 'a@x.test', 'password': 'secret1', 'name': 'Asha', 'rollNo': 21,
        'year': 2, 'phoneNo': 9876543210,
    })['uid']
    profile = firestore_client.docs('students')[uid]
    assert profile['rollNo'] == '21'
    assert profile['year'] == '2'
    assert profile['phoneNo'] == '9876543210'


def test_filter_options_tolerate_mixed_value_types():
    roster = [{'year': 2, 'backlogs': 0}, {'year': '3', 'backlogs': '1'}, {'year': ''}]
    assert StudentManager.get_filter_options(roster) == {'years': [2, '3'], 'backlogs': ['1']}
    assert StudentManager.filter_students(roster, year='2') == roster[:1]
