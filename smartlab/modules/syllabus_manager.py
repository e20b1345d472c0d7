"""
Syllabus Manager Module - Smart City Lab Admin Dashboard

This module stores the lab's session schedule and publishes read-only copies
of it through share codes.

Features:
- Single schedule document holding every syllabus row
- Row normalization and status validation
- Share codes backed by the shared-schedules collection
- Lookup of legacy share codes that embed the schedule itself
"""

import base64
import binascii
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

SYLLABUS_COLLECTION = 'syllabus'
SHARED_COLLECTION = 'shared-schedules'
DEFAULT_SHARE_TITLE = 'Course Syllabus'

ROW_STATUSES = ['Upcoming', 'Completed', 'Delayed']


def normalize_row(row: Dict[str, Any], index: int = 0) -> Dict[str, Any]:
    """
    Bring a syllabus row to its stored shape.

    Args:
        row (dict): Row as edited in the schedule grid
        index (int): Position of the row, used for missing ids and days

    Returns:
        dict: id, day, date, topic, subtopics, mentors and status

    Raises:
        ValueError: Unknown status
    """
    status = row.get('status') or 'Upcoming'
    if status not in ROW_STATUSES:
        raise ValueError(f"Invalid status '{status}', expected one of {', '.join(ROW_STATUSES)}")

    mentors = row.get('mentors') or []
    if isinstance(mentors, str):
        mentors = [m.strip() for m in mentors.split(',') if m.strip()]

    try:
        day = int(row.get('day') or index + 1)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid day '{row.get('day')}'")

    return {
        'id': str(row.get('id') or f'row-{index + 1}'),
        'day': day,
        'date': str(row.get('date') or ''),
        'topic': str(row.get('topic') or ''),
        'subtopics': str(row.get('subtopics') or ''),
        'mentors': list(mentors),
        'status': status,
    }


class SyllabusManager:
    """
    Schedule storage and sharing.
    """

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def _current_document(self) -> Optional[Dict[str, Any]]:
        documents = self.db.get_collection(SYLLABUS_COLLECTION)
        return documents[0] if documents else None

    def get_syllabus(self) -> List[Dict[str, Any]]:
        """Rows of the schedule, empty when none was saved yet."""
        try:
            document = self._current_document()
            return (document or {}).get('rows') or []
        except Exception as e:
            self.logger.error(f"Failed to load syllabus: {str(e)}")
            return []

    def save_syllabus(self, rows: List[Dict[str, Any]], user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Replace the schedule rows.

        Updates the existing schedule document or creates the first one.

        Args:
            rows (List[dict]): Schedule rows
            user_id (str): Editing admin's uid

        Returns:
            Dict[str, Any]: Save result with the normalized rows
        """
        try:
            clean_rows = [normalize_row(row, i) for i, row in enumerate(rows or [])]
        except ValueError as e:
            return {'success': False, 'error': str(e)}

        try:
            now = datetime.now(timezone.utc)
            document = self._current_document()
            if document:
                self.db.update_document(SYLLABUS_COLLECTION, document['id'], {
                    'rows': clean_rows,
                    'updatedAt': now,
                    'updatedBy': user_id,
                })
            else:
                self.db.add_document(SYLLABUS_COLLECTION, {
                    'rows': clean_rows,
                    'createdAt': now,
                    'createdBy': user_id,
                })

            self.logger.info(f"Syllabus saved with {len(clean_rows)} rows")
            return {'success': True, 'rows': clean_rows, 'message': 'Syllabus saved successfully'}

        except Exception as e:
            self.logger.error(f"Failed to save syllabus: {str(e)}")
            return {'success': False, 'error': 'Failed to save syllabus'}

    def create_share(self, rows: Optional[List[Dict[str, Any]]] = None,
                     title: Optional[str] = None) -> Dict[str, Any]:
        """
        Publish a read-only copy of the schedule.

        Args:
            rows (List[dict]): Rows to share, the saved schedule by default
            title (str): Heading of the shared view

        Returns:
            Dict[str, Any]: Result with ``shareCode``
        """
        try:
            rows = rows if rows is not None else self.get_syllabus()
            title = str(title or '').strip() or DEFAULT_SHARE_TITLE
            now = datetime.now(timezone.utc).isoformat()
            share_code = self.db.add_document(SHARED_COLLECTION, {
                'title': title,
                'rows': rows,
                'isPublic': True,
                'createdAt': now,
                'updatedAt': now,
            })
            self.logger.info(f"Schedule shared as {share_code}")
            return {'success': True, 'shareCode': share_code, 'title': title,
                    'message': 'Share link created!'}
        except Exception as e:
            self.logger.error(f"Error creating share link: {str(e)}")
            return {'success': False, 'error': 'Failed to create share link'}

    def get_share(self, share_code: str) -> Optional[Dict[str, Any]]:
        """
        Resolve a share code to its title and schedule rows.

        Codes are document ids in ``shared-schedules``. Older links carried
        the schedule itself as URL-encoded base64 JSON; those still resolve.

        Returns:
            Dict[str, Any]: ``title`` and ``rows``, or None for an unknown code
        """
        if not share_code:
            return None

        try:
            document = self.db.get_document(SHARED_COLLECTION, share_code)
        except Exception as e:
            self.logger.error(f"Failed to load shared schedule {share_code}: {str(e)}")
            document = None

        if document:
            rows = document.get('rows') or []
            return {'title': document.get('title') or DEFAULT_SHARE_TITLE,
                    'rows': rows if isinstance(rows, list) else [rows]}

        try:
            decoded = json.loads(base64.b64decode(unquote(share_code), validate=True))
        except (binascii.Error, ValueError):
            self.logger.warning(f"Share code invalid: {share_code}")
            return None

        return {'title': DEFAULT_SHARE_TITLE, 'rows': decoded if isinstance(decoded, list) else [decoded]}

    def get_shared_schedule(self, share_code: str) -> Optional[List[Dict[str, Any]]]:
        share = self.get_share(share_code)
        return share['rows'] if share else None
