"""
Attendance Manager Module - Smart City Lab Admin Dashboard

This module handles attendance capture for the lab. Attendance is taken
either by scanning student QR codes into a scan session or by ticking
students off a roster uploaded from a paper attendance sheet. Either way a
day's result ends up in the ``attendance`` collection.

Features:
- QR scan sessions with a scan cooldown and duplicate prevention
- Validation of scanned roll numbers against the student roster
- Manual corrections (mark absent, remove a scan)
- Daily attendance submission keyed by date
- Paper attendance from Excel/CSV rosters with one submission per day
- Attendance history listing and deletion
"""

import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

import pandas as pd

from smartlab.modules.qr_generator import QRGenerator

ATTENDANCE_COLLECTION = 'attendance'

STATUS_PRESENT = 'present'
STATUS_ABSENT = 'absent'

# Accepted spellings of the paper roster columns, in lookup order
PAPER_ROSTER_COLUMNS = {
    'rollNo': ['Roll No', 'rollNo', 'R No'],
    'name': ['Student Name', 'name', 'Name'],
    'branch': ['Branch', 'branch'],
    'year': ['Year', 'year'],
    'section': ['Section', 'section'],
}


def today_key(now: Optional[datetime] = None) -> str:
    """Date key (``YYYY-MM-DD``, UTC) of an attendance day."""
    return (now or datetime.now(timezone.utc)).strftime('%Y-%m-%d')


@dataclass
class ScanRecord:
    """One scanned student in a scan session."""
    id: int
    rollNo: str
    name: str
    status: str
    timestamp: str


@dataclass
class ScanSession:
    """
    State of one scanner between opening the camera and submitting.

    ``clock`` returns seconds and is only used to measure the cooldown.
    Callers sharing a session hold ``lock`` around reads and changes.
    """
    cooldown_ms: int = 300
    clock: Callable[[], float] = time.monotonic
    records: List[ScanRecord] = field(default_factory=list)
    scanned_rolls: Set[str] = field(default_factory=set)
    cooldown_until: float = 0.0
    last_scanned: Optional[Dict[str, str]] = None
    last_scan_time: Optional[str] = None
    _next_id: int = 1
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def cooldown_active(self, now: Optional[float] = None) -> bool:
        now = self.clock() if now is None else now
        return now < self.cooldown_until

    def process_scan(self, payload: Dict[str, Any], roster_rolls: Iterable[str],
                     now: Optional[float] = None) -> Dict[str, Any]:
        """
        Apply a decoded QR payload to the session.

        Args:
            payload (dict): Result of QRGenerator.parse_scan_payload
            roster_rolls: Roll numbers of every known student
            now (float): Clock reading, defaults to ``clock()``

        Returns:
            dict: ``result`` is one of ``recorded``, ``cooldown``,
            ``duplicate``, ``not_found`` or ``invalid``
        """
        now = self.clock() if now is None else now

        if self.cooldown_active(now):
            return {'success': False, 'result': 'cooldown', 'message': 'Scan ignored during cooldown'}

        if not payload.get('valid'):
            return {'success': False, 'result': 'invalid',
                    'error': payload.get('error', 'Invalid QR code format')}

        roll_no = payload['rollNo']
        name = payload.get('name', '')

        if roll_no in self.scanned_rolls:
            return {'success': False, 'result': 'duplicate', 'rollNo': roll_no,
                    'message': f'{roll_no} already scanned'}

        if roll_no not in set(roster_rolls):
            return {'success': False, 'result': 'not_found', 'rollNo': roll_no,
                    'error': f'Student {roll_no} not found in database'}

        self.cooldown_until = now + self.cooldown_ms / 1000.0
        self.scanned_rolls.add(roll_no)

        scan_time = datetime.now().strftime('%H:%M:%S')
        record = ScanRecord(id=self._next_id, rollNo=roll_no, name=name,
                            status=STATUS_PRESENT, timestamp=scan_time)
        self._next_id += 1
        self.records.append(record)
        self.last_scanned = {'rollNo': roll_no, 'name': name}
        self.last_scan_time = scan_time

        return {'success': True, 'result': 'recorded', 'record': asdict(record),
                'message': f'{name} ({roll_no}) marked present'}

    def _find(self, record_id: int) -> Optional[ScanRecord]:
        return next((r for r in self.records if r.id == record_id), None)

    def mark_absent(self, record_id: int) -> bool:
        record = self._find(record_id)
        if record is None:
            return False
        record.status = STATUS_ABSENT
        return True

    def remove_record(self, record_id: int) -> bool:
        """Drop a scan; the roll number can be scanned again afterwards."""
        record = self._find(record_id)
        if record is None:
            return False
        self.records.remove(record)
        self.scanned_rolls.discard(record.rollNo)
        return True

    def present_roll_numbers(self) -> List[str]:
        return [r.rollNo for r in self.records if r.status == STATUS_PRESENT]

    def search(self, query: str) -> List[ScanRecord]:
        if not query:
            return list(self.records)
        q = query.lower()
        return [r for r in self.records if q in r.rollNo.lower() or q in r.name.lower()]

    def reset(self):
        self.records = []
        self.scanned_rolls = set()
        self.cooldown_until = 0.0
        self.last_scanned = None
        self.last_scan_time = None

    def to_dict(self) -> Dict[str, Any]:
        present = self.present_roll_numbers()
        return {
            'records': [asdict(r) for r in self.records],
            'presentCount': len(present),
            'absentCount': len(self.records) - len(present),
            'cooldownActive': self.cooldown_active(),
            'lastScanned': self.last_scanned,
            'lastScanTime': self.last_scan_time,
        }


class AttendanceManager:
    """
    Attendance capture by QR scanning and by paper roster.
    """

    def __init__(self, database_manager, student_manager, cooldown_ms: int = 300,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the attendance manager.

        Args:
            database_manager: Database manager instance
            student_manager: Source of the student roster
            cooldown_ms (int): Scan cooldown applied to new sessions
            clock: Monotonic clock for scan cooldowns
        """
        self.db = database_manager
        self.students = student_manager
        self.qr_generator = QRGenerator()
        self.cooldown_ms = cooldown_ms
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        self._sessions: Dict[str, ScanSession] = {}
        # Guards the session table only; each session has its own lock
        self._sessions_lock = threading.Lock()

    def get_session(self, scanner_id: str) -> ScanSession:
        """Get or open the scan session of a scanner (one per admin)."""
        with self._sessions_lock:
            session = self._sessions.get(scanner_id)
            if session is None:
                session = ScanSession(cooldown_ms=self.cooldown_ms, clock=self.clock)
                self._sessions[scanner_id] = session
                self.logger.info(f"Scan session opened for {scanner_id}")
            return session

    def close_session(self, scanner_id: str) -> bool:
        with self._sessions_lock:
            return self._sessions.pop(scanner_id, None) is not None

    def session_state(self, scanner_id: str, search: str = '') -> Dict[str, Any]:
        """Snapshot of a scanner's session, records narrowed by ``search``."""
        session = self.get_session(scanner_id)
        with session.lock:
            state = session.to_dict()
            if search:
                state['records'] = [asdict(record) for record in session.search(search)]
            return state

    def mark_absent(self, scanner_id: str, record_id: int) -> Optional[Dict[str, Any]]:
        """Mark a scanned record absent; None when the record does not exist."""
        session = self.get_session(scanner_id)
        with session.lock:
            return session.to_dict() if session.mark_absent(record_id) else None

    def remove_record(self, scanner_id: str, record_id: int) -> Optional[Dict[str, Any]]:
        """Drop a scanned record; None when the record does not exist."""
        session = self.get_session(scanner_id)
        with session.lock:
            return session.to_dict() if session.remove_record(record_id) else None

    def roster_roll_numbers(self) -> List[str]:
        return [str(s['rollNo']) for s in self.students.get_all_students() if s.get('rollNo')]

    def process_scan(self, scanner_id: str, qr_text: str) -> Dict[str, Any]:
        """
        Process raw scanned QR text for a scanner's session.

        Args:
            scanner_id (str): Scanner (admin uid)
            qr_text (str): Text decoded from the QR code

        Returns:
            Dict[str, Any]: Scan outcome from ScanSession.process_scan
        """
        session = self.get_session(scanner_id)
        if session.cooldown_active():
            return {'success': False, 'result': 'cooldown', 'message': 'Scan ignored during cooldown'}

        payload = self.qr_generator.parse_scan_payload(qr_text)
        roster = self.roster_roll_numbers() if payload.get('valid') else []
        with session.lock:
            outcome = session.process_scan(payload, roster)

        if outcome['result'] == 'recorded':
            self.logger.info(f"Attendance scan recorded: {outcome['record']['rollNo']}")
        elif outcome['result'] in ('not_found', 'invalid'):
            self.logger.warning(f"Attendance scan rejected: {outcome.get('error')}")
        return outcome

    def submit_attendance(self, scanner_id: str, submitted_by: Optional[str] = None,
                          date: Optional[str] = None) -> Dict[str, Any]:
        """
        Write a scan session's result as the day's attendance.

        Every roster student not present in the session is absent. The
        session is reset after a successful write.

        Args:
            scanner_id (str): Scanner whose session is submitted
            submitted_by (str): Name recorded as the submitter
            date (str): ``YYYY-MM-DD`` key, today (UTC) by default

        Returns:
            Dict[str, Any]: Submission result with present/absent roll numbers
        """
        session = self.get_session(scanner_id)
        date = date or today_key()

        try:
            roster = self.roster_roll_numbers()

            with session.lock:
                present = session.present_roll_numbers()
                present_set = set(present)
                absent = [roll for roll in roster if roll not in present_set]

                self.db.set_document(ATTENDANCE_COLLECTION, date, {
                    'date': date,
                    'presentStudents': present,
                    'absentStudents': absent,
                    'presentCount': len(present),
                    'absentCount': len(absent),
                    'totalStudents': len(roster),
                    'submittedAt': datetime.now(timezone.utc),
                    'submittedBy': submitted_by or 'Admin',
                })

                session.reset()
            self.logger.info(f"Attendance submitted for {date}: {len(present)} present, {len(absent)} absent")
            return {
                'success': True,
                'date': date,
                'present': present,
                'absent': absent,
                'message': 'Attendance submitted successfully'
            }

        except Exception as e:
            self.logger.error(f"Attendance submission failed: {str(e)}")
            return {'success': False, 'error': f'Error submitting attendance: {str(e)}'}

    def get_today_attendance(self, date: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get the submitted attendance document of a day, if any."""
        date = date or today_key()
        try:
            return self.db.get_document(ATTENDANCE_COLLECTION, date)
        except Exception as e:
            self.logger.error(f"Failed to load attendance for {date}: {str(e)}")
            return None

    # Paper attendance

    def load_paper_roster(self, file_obj, filename: str = '') -> Dict[str, Any]:
        """
        Read the student roster from the first sheet of an attendance sheet.

        Args:
            file_obj: Path or binary file object of an .xlsx/.xls/.csv file
            filename (str): Original file name, used to detect CSV uploads

        Returns:
            Dict[str, Any]: ``students`` with ids ``student-{row index}``
        """
        try:
            if str(filename or file_obj).lower().endswith('.csv'):
                frame = pd.read_csv(file_obj, dtype=str)
            else:
                frame = pd.read_excel(file_obj, sheet_name=0, dtype=str)
            frame = frame.fillna('')

            students = []
            for idx, row in enumerate(frame.to_dict(orient='records')):
                student = {'id': f'student-{idx}'}
                for key, columns in PAPER_ROSTER_COLUMNS.items():
                    value = next((row[c] for c in columns if str(row.get(c, '')).strip()), '')
                    student[key] = str(value).strip()
                if student['rollNo'] and student['name']:
                    students.append(student)

            self.logger.info(f"Paper roster loaded: {len(students)} students")
            return {'success': True, 'students': students}

        except Exception as e:
            self.logger.error(f"Failed to read attendance sheet: {str(e)}")
            return {'success': False, 'error': f'Could not read attendance sheet: {str(e)}'}

    @staticmethod
    def get_paper_filter_options(students: List[Dict[str, Any]]) -> Dict[str, List[str]]:
        return {
            'years': sorted({s['year'] for s in students}),
            'branches': sorted({s['branch'] for s in students}),
            'sections': sorted({s['section'] for s in students}),
        }

    @staticmethod
    def filter_paper_roster(students: List[Dict[str, Any]], year: str = '', branch: str = '',
                            section: str = '', search: str = '') -> List[Dict[str, Any]]:
        """Filter a paper roster by year, branch, section and roll/name search."""
        filtered = []
        term = (search or '').lower()
        for s in students:
            if year and s.get('year') != year:
                continue
            if branch and s.get('branch') != branch:
                continue
            if section and s.get('section') != section:
                continue
            if term and term not in s['rollNo'].lower() and term not in s['name'].lower():
                continue
            filtered.append(s)
        return filtered

    def submit_paper_attendance(self, students: List[Dict[str, Any]], present_ids: Iterable[str],
                                date: Optional[str] = None) -> Dict[str, Any]:
        """
        Store a paper attendance record.

        Args:
            students (List[dict]): Roster entries (already filtered)
            present_ids (Iterable[str]): Roster ids ticked present
            date (str): ``YYYY-MM-DD`` key, today (UTC) by default

        Returns:
            Dict[str, Any]: Submission result
        """
        if not students:
            return {'success': False, 'error': 'No students loaded'}

        date = date or today_key()
        present_ids = set(present_ids or [])

        try:
            if self.db.query_documents(ATTENDANCE_COLLECTION, 'date', '==', date):
                return {'success': False, 'error': 'Attendance already taken for today!'}

            present = [s for s in students if s['id'] in present_ids]
            absent = [s for s in students if s['id'] not in present_ids]

            record = {
                'date': date,
                'time': datetime.now().strftime('%H:%M:%S'),
                'totalStudents': len(students),
                'presentCount': len(present),
                'absentCount': len(absent),
                'presentStudents': [f"{s['rollNo']} - {s['name']}" for s in present],
                'absentStudents': [f"{s['rollNo']} - {s['name']}" for s in absent],
                'timestamp': datetime.now(timezone.utc),
            }
            record_id = self.db.add_document(ATTENDANCE_COLLECTION, record)

            self.logger.info(f"Paper attendance submitted for {date}: {len(present)}/{len(students)} present")
            return {'success': True, 'id': record_id, 'record': record,
                    'message': 'Attendance submitted successfully!'}

        except Exception as e:
            self.logger.error(f"Paper attendance submission failed: {str(e)}")
            return {'success': False, 'error': 'Error submitting attendance'}

    def list_attendance_records(self) -> List[Dict[str, Any]]:
        """Every attendance record, latest date first."""
        try:
            records = self.db.get_collection(ATTENDANCE_COLLECTION)
            records.sort(key=lambda r: str(r.get('date') or ''), reverse=True)
            return records
        except Exception as e:
            self.logger.error(f"Failed to load attendance records: {str(e)}")
            return []

    def delete_attendance_record(self, record_id: str) -> bool:
        try:
            deleted = self.db.delete_document(ATTENDANCE_COLLECTION, record_id)
            if deleted:
                self.logger.info(f"Attendance record deleted: {record_id}")
            return deleted
        except Exception as e:
            self.logger.error(f"Failed to delete attendance record {record_id}: {str(e)}")
            return False
