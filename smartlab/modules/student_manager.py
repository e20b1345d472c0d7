"""
Student Manager Module - Smart City Lab Admin Dashboard

This module handles student management operations for the dashboard.
Each student owns a Firebase Auth account, a ``users/{uid}`` document
carrying the ``student`` role and a ``students/{uid}`` profile document.

Features:
- Single student account creation
- CSV parsing and bulk account creation with generated credentials
- Credentials CSV for the accounts created in a bulk upload
- Student listing, lookup by roll number, search and filtering
- Profile updates and deletion
- Password sync between stored student passwords and Firebase Auth
"""

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from smartlab.modules.database_manager import timestamp_of
from smartlab.modules.auth_manager import (
    ROLE_STUDENT,
    USERS_COLLECTION,
    describe_auth_error,
    generate_random_password,
)

STUDENTS_COLLECTION = 'students'

CREDENTIALS_CSV_HEADERS = ['Name', 'Roll Number', 'Email', 'Password']

REQUIRED_CREATE_FIELDS = ['email', 'password', 'name', 'rollNo']

# Bulk upload reports auth failures with its own wording
BULK_ERROR_MESSAGES = {
    'email-already-exists': 'Email already exists',
    'invalid-email': 'Invalid email format',
    'weak-password': 'Password too weak (minimum 6 characters)',
}

PROFILE_FIELDS = ['name', 'rollNo', 'email', 'year', 'branch', 'phoneNo',
                  'linkedin', 'github', 'backlogs']


def parse_csv(csv_text: str) -> List[Dict[str, str]]:
    """
    Parse bulk upload CSV text into row dictionaries.

    Headers are trimmed and lower-cased, blank lines are skipped and
    missing trailing cells become empty strings.

    Args:
        csv_text (str): Raw CSV content

    Returns:
        List[Dict[str, str]]: One dictionary per data row
    """
    lines = (csv_text or '').strip().splitlines()
    if len(lines) < 2:
        return []

    reader = csv.reader(io.StringIO('\n'.join(lines)))
    headers = [header.strip().lower() for header in next(reader)]

    rows = []
    for values in reader:
        if not any(value.strip() for value in values):
            continue
        values = [value.strip() for value in values]
        rows.append({
            header: values[idx] if idx < len(values) else ''
            for idx, header in enumerate(headers)
        })

    return rows


def validate_student_row(row: Dict[str, Any]) -> List[str]:
    """Return the validation errors of a parsed CSV row."""
    errors = []

    if not str(row.get('name') or '').strip():
        errors.append('Name is required')

    if not str(row.get('rollno') or row.get('rollNo') or '').strip():
        errors.append('Roll number is required')

    return errors


def generate_credentials_csv(results: List[Dict[str, Any]]) -> str:
    """
    Build the downloadable credentials CSV for a bulk upload.

    Args:
        results (List[dict]): Per-row bulk upload results

    Returns:
        str: CSV text, or an empty string when no account was created
    """
    created = [r for r in results if r.get('success') and r.get('password')]
    if not created:
        return ''

    output = io.StringIO()
    output.write(','.join(CREDENTIALS_CSV_HEADERS) + '\n')
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator='\n')
    for result in created:
        writer.writerow([result.get('name') or '', result.get('rollNo') or '',
                         result.get('email') or '', result.get('password') or ''])

    return output.getvalue().rstrip('\n')


class StudentManager:
    """
    Student administration backed by Firestore and Firebase Auth.
    """

    def __init__(self, database_manager, auth_manager, email_domain: str = 'school.local',
                 password_length: int = 12):
        """
        Initialize the student manager.

        Args:
            database_manager: Database manager instance
            auth_manager: Authentication manager used for account operations
            email_domain (str): Domain of emails generated for rows without one
            password_length (int): Length of generated passwords
        """
        self.db = database_manager
        self.auth = auth_manager
        self.email_domain = email_domain
        self.password_length = password_length
        self.logger = logging.getLogger(__name__)

        self.logger.info("Student manager initialized")

    def create_student(self, student_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a student account with an admin-chosen password.

        Args:
            student_data (Dict[str, Any]): email, password, name, rollNo and
                optional year, branch, phoneNo, linkedin, github

        Returns:
            Dict[str, Any]: Creation result; ``status`` carries the HTTP code
        """
        if any(not student_data.get(field) for field in REQUIRED_CREATE_FIELDS):
            return {
                'success': False,
                'status': 400,
                'error': f"Missing required fields: {', '.join(REQUIRED_CREATE_FIELDS)}"
            }

        email = student_data['email']
        name = student_data['name']
        roll_no = str(student_data['rollNo'])

        try:
            uid = self.auth.create_auth_user(email, student_data['password'], name)
            now = datetime.now(timezone.utc)

            self.db.set_document(USERS_COLLECTION, uid, {
                'uid': uid,
                'email': email,
                'name': name,
                'role': ROLE_STUDENT,
                'createdAt': now,
                'rollNo': roll_no,
            })

            self.db.set_document(STUDENTS_COLLECTION, uid, {
                'uid': uid,
                'name': name,
                'rollNo': roll_no,
                'year': str(student_data.get('year') or ''),
                'branch': str(student_data.get('branch') or ''),
                'email': email,
                'phoneNo': str(student_data.get('phoneNo') or ''),
                'linkedin': str(student_data.get('linkedin') or ''),
                'github': str(student_data.get('github') or ''),
                'password': student_data['password'],
                'createdAt': now,
                'updatedAt': now,
            })

            self.logger.info(f"Student created: {roll_no} ({uid})")
            return {
                'success': True,
                'status': 201,
                'uid': uid,
                'email': email,
                'name': name,
                'rollNo': roll_no,
                'message': 'Student created successfully'
            }

        except Exception as e:
            self.logger.error(f"Student creation failed for {email}: {str(e)}")
            return {
                'success': False,
                'status': 500,
                'error': describe_auth_error(e)
            }

    def bulk_create_students(self, students_data: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Create student accounts for parsed CSV rows.

        Every row gets a generated password; rows without an email get
        ``student{rollNo}@<email domain>``. A failing row never stops the
        remaining rows.

        Args:
            students_data (List[Dict[str, Any]]): Parsed CSV rows

        Returns:
            Dict[str, Any]: Totals and per-row results
        """
        results = []
        successful = 0
        failed = 0

        for i, student in enumerate(students_data):
            row_index = i + 1
            name = str(student.get('name') or '').strip()
            roll_no = str(student.get('rollno') or student.get('rollNo') or '').strip()
            email = str(student.get('email') or '').strip().lower()

            if not name:
                results.append({'success': False, 'rowIndex': row_index, 'error': 'Name is required'})
                failed += 1
                continue

            if not roll_no:
                results.append({'success': False, 'rowIndex': row_index, 'name': name,
                                'error': 'Roll number is required'})
                failed += 1
                continue

            if not email:
                email = f"student{roll_no}@{self.email_domain}"

            try:
                password = generate_random_password(self.password_length)
                uid = self.auth.create_auth_user(email, password, name)
                now = datetime.now(timezone.utc)

                self.db.set_document(USERS_COLLECTION, uid, {
                    'uid': uid,
                    'email': email,
                    'name': name,
                    'role': ROLE_STUDENT,
                    'createdAt': now,
                    'rollNo': roll_no,
                })

                self.db.set_document(STUDENTS_COLLECTION, uid, {
                    'uid': uid,
                    'name': name,
                    'rollNo': roll_no,
                    'email': email,
                    'year': str(student.get('year') or ''),
                    'branch': str(student.get('branch') or ''),
                    'phoneNo': str(student.get('phoneno') or student.get('phoneNo') or ''),
                    'linkedin': str(student.get('linkedin') or ''),
                    'github': str(student.get('github') or ''),
                    'createdAt': now,
                    'updatedAt': now,
                })

                results.append({
                    'success': True,
                    'rowIndex': row_index,
                    'rollNo': roll_no,
                    'name': name,
                    'email': email,
                    'uid': uid,
                    'password': password,
                })
                successful += 1

            except Exception as e:
                self.logger.warning(f"Bulk upload row {row_index} failed: {str(e)}")
                results.append({
                    'success': False,
                    'rowIndex': row_index,
                    'rollNo': student.get('rollno') or student.get('rollNo'),
                    'name': student.get('name'),
                    'error': describe_auth_error(e, BULK_ERROR_MESSAGES),
                })
                failed += 1

        self.logger.info(f"Bulk student creation completed: {successful}/{len(students_data)} successful")
        return {
            'success': True,
            'totalProcessed': len(students_data),
            'successful': successful,
            'failed': failed,
            'results': results,
        }

    def import_students_from_csv(self, csv_content: str) -> Dict[str, Any]:
        """
        Import students from CSV content.

        Args:
            csv_content (str): CSV content as string

        Returns:
            Dict[str, Any]: Bulk creation result, with the credentials CSV
        """
        rows = parse_csv(csv_content)
        if not rows:
            return {'success': False, 'error': 'No student data provided'}

        result = self.bulk_create_students(rows)
        result['credentialsCsv'] = generate_credentials_csv(result['results'])
        return result

    def get_all_students(self) -> List[Dict[str, Any]]:
        """
        Get all students, most recently created first.
        """
        try:
            students = self.db.get_collection(STUDENTS_COLLECTION)
            students.sort(key=lambda s: timestamp_of(s.get('createdAt')), reverse=True)
            return students
        except Exception as e:
            self.logger.error(f"Failed to get students: {str(e)}")
            return []

    def get_student(self, uid: str) -> Optional[Dict[str, Any]]:
        try:
            return self.db.get_document(STUDENTS_COLLECTION, uid)
        except Exception as e:
            self.logger.error(f"Failed to get student {uid}: {str(e)}")
            return None

    def get_student_by_roll(self, roll_no: str) -> Optional[Dict[str, Any]]:
        """
        Get a student by roll number.

        Args:
            roll_no (str): Roll number

        Returns:
            Dict[str, Any]: Student document, or None
        """
        try:
            matches = self.db.query_documents(STUDENTS_COLLECTION, 'rollNo', '==', str(roll_no))
            return matches[0] if matches else None
        except Exception as e:
            self.logger.error(f"Failed to get student by roll {roll_no}: {str(e)}")
            return None

    @staticmethod
    def filter_students(students: List[Dict[str, Any]], query: str = '', year: str = '',
                        backlogs: str = '') -> List[Dict[str, Any]]:
        """
        Filter students by a search query, year and backlogs.

        The query matches name, roll number or email, case-insensitively.
        """
        filtered = students

        if query:
            q = query.lower()
            filtered = [
                s for s in filtered
                if q in str(s.get('name') or '').lower()
                or q in str(s.get('rollNo') or '').lower()
                or q in str(s.get('email') or '').lower()
            ]

        if year:
            filtered = [s for s in filtered if str(s.get('year') or '') == str(year)]

        if backlogs:
            filtered = [s for s in filtered if str(s.get('backlogs') or '') == str(backlogs)]

        return filtered

    @staticmethod
    def get_filter_options(students: List[Dict[str, Any]]) -> Dict[str, List[str]]:
        """Distinct non-empty years and backlog values, sorted."""
        return {
            'years': sorted({s['year'] for s in students if s.get('year')}, key=str),
            'backlogs': sorted({s['backlogs'] for s in students if s.get('backlogs')}, key=str),
        }

    def update_student(self, uid: str, update_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update profile fields of a student.

        Args:
            uid (str): Student document ID
            update_data (Dict[str, Any]): Fields to change

        Returns:
            Dict[str, Any]: Update result
        """
        try:
            changes = {k: v for k, v in update_data.items() if k in PROFILE_FIELDS}
            if not changes:
                return {'success': False, 'error': 'No valid fields to update'}

            if 'name' in changes and not str(changes['name']).strip():
                return {'success': False, 'error': 'Name is required'}
            if 'rollNo' in changes and not str(changes['rollNo']).strip():
                return {'success': False, 'error': 'Roll number is required'}

            changes['updatedAt'] = datetime.now(timezone.utc)
            if not self.db.update_document(STUDENTS_COLLECTION, uid, changes):
                return {'success': False, 'error': 'Student not found'}

            self.logger.info(f"Student updated: {uid}")
            return {'success': True, 'message': 'Student updated successfully'}

        except Exception as e:
            self.logger.error(f"Student update failed: {str(e)}")
            return {'success': False, 'error': str(e)}

    def delete_student(self, uid: str) -> bool:
        """
        Delete a student's profile document.

        Returns:
            bool: False when the student does not exist or deletion failed
        """
        try:
            deleted = self.db.delete_document(STUDENTS_COLLECTION, uid)
            if deleted:
                self.logger.info(f"Student deleted: {uid}")
            return deleted
        except Exception as e:
            self.logger.error(f"Student deletion failed: {str(e)}")
            return False

    def sync_passwords(self, students: Optional[List[Dict[str, Any]]] = None,
                       reset_fn: Optional[Callable[[str, str], Dict[str, Any]]] = None) -> Dict[str, Any]:
        """
        Push each student's stored password to their Firebase Auth account.

        Args:
            students (List[dict]): Students to sync; all students when omitted
            reset_fn: ``(email, password) -> result dict``; defaults to
                the auth manager's reset_password

        Returns:
            Dict[str, Any]: total, success and failed counts with per-student errors
        """
        if students is None:
            students = self.get_all_students()
        reset_fn = reset_fn or self.auth.reset_password

        results = {'total': len(students), 'success': 0, 'failed': 0, 'errors': []}

        for student in students:
            email = student.get('email') or ''
            password = student.get('password') or student.get('passwordHash') or ''

            if not email or not password:
                results['failed'] += 1
                results['errors'].append({'name': student.get('name', ''),
                                          'error': 'Missing email or password'})
                continue

            outcome = reset_fn(email, password)
            if outcome.get('success'):
                results['success'] += 1
            else:
                results['failed'] += 1
                results['errors'].append({'name': student.get('name', ''),
                                          'error': outcome.get('error', 'Sync failed')})

        self.logger.info(f"Password sync completed: {results['success']}/{results['total']} successful")
        return results
