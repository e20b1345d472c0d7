"""
Activity Logger Module - Smart City Lab Admin Dashboard

Writes audit entries for admin actions (logins, uploads, attendance
submissions, permission failures) to the Firestore ``logs`` collection,
and reads back or clears the newest entries for the system monitor.
Audit writes never interrupt the action being audited.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

LOGS_COLLECTION = 'logs'

LOG_ACTIONS = {
    'LOGIN_SUCCESS': 'LOGIN_SUCCESS',
    'LOGIN_FAILED': 'LOGIN_FAILED',
    'LOGOUT': 'LOGOUT',
    'CSV_UPLOAD_START': 'CSV_UPLOAD_START',
    'CSV_UPLOAD_SUCCESS': 'CSV_UPLOAD_SUCCESS',
    'CSV_UPLOAD_FAILED': 'CSV_UPLOAD_FAILED',
    'PERMISSION_DENIED': 'PERMISSION_DENIED',
    'FIRESTORE_ERROR': 'FIRESTORE_ERROR',
    'ATTENDANCE_MARKED': 'ATTENDANCE_MARKED',
    'STUDENT_CREATED': 'STUDENT_CREATED',
    'PROFILE_VIEWED': 'PROFILE_VIEWED',
    'SETTINGS_CHANGED': 'SETTINGS_CHANGED',
}


class ActivityLogger:
    """Audit trail stored alongside the application data."""

    def __init__(self, database_manager, enabled: bool = True):
        self.db = database_manager
        self.enabled = enabled
        self.logger = logging.getLogger(__name__)

    def write_log(self, action: str, message: str, uid: Optional[str] = None,
                  email: Optional[str] = None, role: Optional[str] = None,
                  page: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """
        Write a log entry.

        Args:
            action (str): One of LOG_ACTIONS
            message (str): Human readable description
            uid (str): Acting user ID
            email (str): Acting user email
            role (str): Acting user role
            page (str): Endpoint or screen the action came from
            metadata (dict): Extra details

        Returns:
            str: Log document ID, or None if not written
        """
        if action not in LOG_ACTIONS:
            self.logger.warning(f"Unknown activity log action: {action}")

        self.logger.info(f"[{action}] {message}")
        if not self.enabled:
            return None

        try:
            return self.db.add_document(LOGS_COLLECTION, {
                'timestamp': datetime.now(timezone.utc),
                'uid': uid or 'anonymous',
                'email': email or 'unknown',
                'role': role or 'unknown',
                'action': action,
                'page': page or 'unknown',
                'message': message,
                'metadata': metadata or {},
            })
        except Exception as e:
            self.logger.error(f"Failed to write log: {str(e)}")
            return None

    def get_recent_logs(self, limit: int = 15) -> List[Dict[str, Any]]:
        """Newest log entries first; an unreadable collection yields an empty list."""
        try:
            return self.db.get_latest_documents(LOGS_COLLECTION, 'timestamp', limit)
        except Exception as e:
            self.logger.error(f"Error loading logs: {str(e)}")
            return []

    def clear_logs(self) -> Dict[str, Any]:
        """
        Delete every log entry.

        Returns:
            Dict[str, Any]: Result with the number of deleted entries
        """
        try:
            deleted = self.db.delete_collection(LOGS_COLLECTION)
            self.logger.warning(f"Activity logs cleared ({deleted} entries)")
            return {'success': True, 'deleted': deleted}
        except Exception as e:
            self.logger.error(f"Error clearing logs: {str(e)}")
            return {'success': False, 'error': f'Error clearing logs: {str(e)}'}
