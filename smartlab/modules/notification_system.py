"""
Notification System Module - Smart City Lab Admin Dashboard

This module handles everything the admin tells students: dashboard
announcements, messages delivered to a student's inbox
(``users/{uid}/messages``) and the registration workflow that ends with an
approval or rejection message.

Features:
- Announcement posting, listing and deletion
- Broadcast announcements delivered to every user's inbox
- System messages rendered from templates
- Registration open/closed switch
- Registration request review (approve / reject)
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from jinja2 import Template

from smartlab.modules.auth_manager import ROLE_STUDENT, USERS_COLLECTION
from smartlab.modules.database_manager import timestamp_of

ANNOUNCEMENTS_COLLECTION = 'announcements'
REQUESTS_COLLECTION = 'registrationRequests'
MESSAGES_SUBCOLLECTION = 'messages'
REGISTRATION_SETTING = 'registration'

MESSAGE_TYPES = ['approval', 'rejection', 'announcement', 'group']

DEFAULT_REJECTION_REASON = 'No reason provided'


class NotificationSystem:
    """
    Announcements, student inbox messages and registration review.
    """

    def __init__(self, database_manager):
        """
        Initialize the notification system.

        Args:
            database_manager: Database manager instance
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

        self.templates = {
            'approval': Template(self._get_approval_template()),
            'rejection': Template(self._get_rejection_template()),
        }

        self.logger.info("Notification system initialized")

    # Announcements

    def post_announcement(self, title: str, message: str, created_by: Optional[str] = None) -> Dict[str, Any]:
        """
        Post an announcement on the dashboard.

        Args:
            title (str): Announcement title
            message (str): Announcement body
            created_by (str): Poster's email

        Returns:
            Dict[str, Any]: Result with the stored announcement
        """
        if not (title or '').strip() or not (message or '').strip():
            return {'success': False, 'error': 'Title and message are required'}

        try:
            announcement = {
                'title': title,
                'message': message,
                'timestamp': datetime.now(timezone.utc),
                'createdBy': created_by or 'admin',
            }
            announcement['id'] = self.db.add_document(ANNOUNCEMENTS_COLLECTION, dict(announcement))
            self.logger.info(f"Announcement posted: {title}")
            return {'success': True, 'announcement': announcement}

        except Exception as e:
            self.logger.error(f"Failed to post announcement: {str(e)}")
            return {'success': False, 'error': 'Failed to post announcement'}

    def get_announcements(self) -> List[Dict[str, Any]]:
        """Announcements, newest first."""
        try:
            announcements = self.db.get_collection(ANNOUNCEMENTS_COLLECTION)
            announcements.sort(
                key=lambda a: timestamp_of(a.get('timestamp') or a.get('createdAt')),
                reverse=True
            )
            return announcements
        except Exception as e:
            self.logger.error(f"Failed to load announcements: {str(e)}")
            return []

    def delete_announcement(self, announcement_id: str) -> bool:
        try:
            return self.db.delete_document(ANNOUNCEMENTS_COLLECTION, announcement_id)
        except Exception as e:
            self.logger.error(f"Failed to delete announcement {announcement_id}: {str(e)}")
            return False

    def send_announcement(self, title: str, message: str, target_audience: str = 'all',
                          target_group_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Store an announcement and deliver it to student inboxes.

        For the ``all`` audience a message is written into every user's
        inbox; group announcements are only stored.

        Args:
            title (str): Announcement title
            message (str): Announcement body
            target_audience (str): ``all`` or ``groupId``
            target_group_id (str): Group targeted when the audience is a group

        Returns:
            Dict[str, Any]: Result with ``announcementId`` and ``delivered`` count
        """
        try:
            announcement_id = self.db.add_document(ANNOUNCEMENTS_COLLECTION, {
                'title': title,
                'message': message,
                'targetAudience': target_audience,
                'targetGroupId': target_group_id or None,
                'createdAt': datetime.now(timezone.utc),
                'createdBy': 'admin',
            })

            delivered = 0
            if target_audience == 'all':
                for user in self.db.get_collection(USERS_COLLECTION):
                    self.create_system_message(user['id'], title, message, 'announcement')
                    delivered += 1

            self.logger.info(f"Announcement sent to {target_audience}: {title} ({delivered} inboxes)")
            return {'success': True, 'announcementId': announcement_id, 'delivered': delivered}

        except Exception as e:
            self.logger.error(f"Error sending announcement: {str(e)}")
            return {'success': False, 'error': str(e)}

    # Messages

    def create_system_message(self, uid: str, title: str, message: str, message_type: str) -> str:
        """
        Write a message into a user's inbox.

        Returns:
            str: Message document ID

        Raises:
            ValueError: Unknown message type
        """
        if message_type not in MESSAGE_TYPES:
            raise ValueError(f"Unknown message type: {message_type}")

        return self.db.add_subdocument(USERS_COLLECTION, uid, MESSAGES_SUBCOLLECTION, {
            'title': title,
            'message': message,
            'type': message_type,
            'read': False,
            'createdAt': datetime.now(timezone.utc),
            'from': 'admin',
        })

    def get_student_messages(self, uid: str) -> List[Dict[str, Any]]:
        try:
            messages = self.db.get_subcollection(USERS_COLLECTION, uid, MESSAGES_SUBCOLLECTION)
            messages.sort(key=lambda m: timestamp_of(m.get('createdAt')), reverse=True)
            return messages
        except Exception as e:
            self.logger.error(f"Error fetching messages for {uid}: {str(e)}")
            return []

    # Registration

    def get_registration_status(self) -> bool:
        """
        Whether student registration is open.

        The setting is created (open) the first time it is read.
        """
        try:
            setting = self.db.get_document('appConfig', REGISTRATION_SETTING)
            if setting is not None:
                return bool(setting.get('active', False))

            self.db.update_system_setting(REGISTRATION_SETTING, {
                'active': True,
                'updatedAt': datetime.now(timezone.utc),
            })
            return True

        except Exception as e:
            self.logger.error(f"Error getting registration status: {str(e)}")
            return False

    def toggle_registration_status(self, active: bool) -> bool:
        updated = self.db.update_system_setting(REGISTRATION_SETTING, {
            'active': bool(active),
            'updatedAt': datetime.now(timezone.utc),
        })
        if updated:
            self.logger.info(f"Registration {'opened' if active else 'closed'}")
        return updated

    def get_registration_requests(self) -> List[Dict[str, Any]]:
        """Every registration request, most recently submitted first."""
        try:
            requests = self.db.get_collection(REQUESTS_COLLECTION)
            requests.sort(key=lambda r: timestamp_of(r.get('submittedAt')), reverse=True)
            return requests
        except Exception as e:
            self.logger.error(f"Error fetching registration requests: {str(e)}")
            return []

    def get_pending_requests(self) -> List[Dict[str, Any]]:
        try:
            requests = self.db.query_documents(REQUESTS_COLLECTION, 'status', '==', 'pending')
        except Exception as e:
            self.logger.error(f"Error fetching pending requests: {str(e)}")
            return []

        requests.sort(key=lambda r: timestamp_of(r.get('submittedAt')), reverse=True)
        return [
            {
                'id': r['id'],
                'name': r.get('name', ''),
                'rollNo': r.get('rollNo', ''),
                'class': r.get('class', ''),
                'branch': r.get('branch', ''),
                'email': r.get('email', ''),
                'phone': r.get('phone', ''),
                'skills': r.get('skills', ''),
                'teamNo': r.get('teamNo', ''),
                'photoUrl': r.get('photoUrl'),
                'studentUid': r.get('studentUid', ''),
                'status': r.get('status', 'pending'),
                'submittedAt': r.get('submittedAt'),
            }
            for r in requests
        ]

    def approve_student(self, request_id: str, student_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Approve a registration request.

        Creates the student's ``users`` document, marks the request approved
        and sends the approval message.

        Args:
            request_id (str): Registration request ID
            student_data (dict): Request data including ``studentUid``

        Returns:
            Dict[str, Any]: Approval result
        """
        uid = student_data.get('studentUid')
        if not uid:
            return {'success': False, 'error': 'Missing studentUid'}

        try:
            now = datetime.now(timezone.utc)
            user = dict(student_data)
            user.pop('id', None)
            user.update({'role': ROLE_STUDENT, 'status': 'approved', 'approvedAt': now})
            self.db.set_document(USERS_COLLECTION, uid, user)

            self.db.update_document(REQUESTS_COLLECTION, request_id, {
                'status': 'approved',
                'approvedAt': now,
            })

            self.create_system_message(
                uid, 'Registration Approved',
                self.templates['approval'].render(name=student_data.get('name', '')).strip(),
                'approval'
            )

            self.logger.info(f"Registration approved: {request_id} ({uid})")
            return {'success': True}

        except Exception as e:
            self.logger.error(f"Error approving student: {str(e)}")
            return {'success': False, 'error': str(e)}

    def reject_student(self, request_id: str, uid: str, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Reject a registration request and tell the student why.
        """
        try:
            self.db.update_document(REQUESTS_COLLECTION, request_id, {
                'status': 'rejected',
                'rejectionReason': reason or DEFAULT_REJECTION_REASON,
                'rejectedAt': datetime.now(timezone.utc),
            })

            self.create_system_message(
                uid, 'Registration Rejected',
                self.templates['rejection'].render(reason=reason).strip(),
                'rejection'
            )

            self.logger.info(f"Registration rejected: {request_id} ({uid})")
            return {'success': True}

        except Exception as e:
            self.logger.error(f"Error rejecting student: {str(e)}")
            return {'success': False, 'error': str(e)}

    def _get_approval_template(self) -> str:
        """Get message template for approved registrations."""
        return """
        Your registration has been approved. You can now use the app.
        """

    def _get_rejection_template(self) -> str:
        """Get message template for rejected registrations."""
        return """
        {% if reason %}{{ reason }}{% else %}Your registration was rejected. Please contact the admin.{% endif %}
        """
