"""
Mentor Manager Module - Smart City Lab Admin Dashboard

Mentors are senior students listed on the dashboard and assigned to syllabus
sessions. Each mentor has a name, a year, an optional email and a profile
photo referenced by URL.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from smartlab.modules.database_manager import timestamp_of

MENTORS_COLLECTION = 'mentors'


def validate_photo_url(url: str) -> Optional[str]:
    """Return an error message for an unusable photo URL, or None."""
    if not (url or '').strip():
        return 'Profile image URL is required'
    if not url.strip().startswith(('http://', 'https://')):
        return 'URL must start with http:// or https://'
    return None


class MentorManager:
    """
    Mentor directory management.
    """

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def _clean(self, data: Dict[str, Any]) -> Dict[str, Any]:
        name = str(data.get('name') or '').strip()
        year = str(data.get('year') or '').strip()
        photo_url = str(data.get('photoUrl') or '').strip()

        if not name:
            raise ValueError('Mentor name is required')
        if not year:
            raise ValueError('Year is required')
        error = validate_photo_url(photo_url)
        if error:
            raise ValueError(error)

        return {
            'name': name,
            'year': year,
            'email': str(data.get('email') or '').strip() or None,
            'photoUrl': photo_url,
        }

    def create_mentor(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add a mentor.

        Args:
            data (dict): name, year, photoUrl and optional email

        Returns:
            Dict[str, Any]: Result with ``mentorId``
        """
        try:
            fields = self._clean(data)
        except ValueError as e:
            return {'success': False, 'error': str(e)}

        try:
            fields['createdAt'] = datetime.now(timezone.utc)
            mentor_id = self.db.add_document(MENTORS_COLLECTION, fields)
            self.logger.info(f"Mentor added: {fields['name']} ({mentor_id})")
            return {'success': True, 'mentorId': mentor_id, 'message': 'Mentor added successfully'}
        except Exception as e:
            self.logger.error(f"Failed to add mentor: {str(e)}")
            return {'success': False, 'error': 'Failed to save mentor'}

    def update_mentor(self, mentor_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            fields = self._clean(data)
        except ValueError as e:
            return {'success': False, 'error': str(e)}

        try:
            fields['updatedAt'] = datetime.now(timezone.utc)
            if not self.db.update_document(MENTORS_COLLECTION, mentor_id, fields):
                return {'success': False, 'error': 'Mentor not found'}
            self.logger.info(f"Mentor updated: {mentor_id}")
            return {'success': True, 'mentorId': mentor_id, 'message': 'Mentor updated successfully'}
        except Exception as e:
            self.logger.error(f"Failed to update mentor {mentor_id}: {str(e)}")
            return {'success': False, 'error': 'Failed to save mentor'}

    def delete_mentor(self, mentor_id: str) -> bool:
        try:
            return self.db.delete_document(MENTORS_COLLECTION, mentor_id)
        except Exception as e:
            self.logger.error(f"Failed to delete mentor {mentor_id}: {str(e)}")
            return False

    def get_mentors(self) -> List[Dict[str, Any]]:
        """All mentors, most recently added first."""
        try:
            mentors = self.db.get_collection(MENTORS_COLLECTION)
            mentors.sort(key=lambda m: timestamp_of(m.get('createdAt')), reverse=True)
            return mentors
        except Exception as e:
            self.logger.error(f"Failed to load mentors: {str(e)}")
            return []

    @staticmethod
    def search_mentors(mentors: List[Dict[str, Any]], search: str) -> List[Dict[str, Any]]:
        if not (search or '').strip():
            return mentors
        term = search.lower()
        return [
            m for m in mentors
            if term in str(m.get('name') or '').lower()
            or term in str(m.get('year') or '').lower()
            or term in str(m.get('email') or '').lower()
        ]
