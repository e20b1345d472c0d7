"""
Authentication Manager Module - Smart City Lab Admin Dashboard

This module handles authorization of privileged API calls and the Firebase
Auth side of student account management. Admin callers present a Firebase ID
token as a bearer token; the token is verified and the caller's ``users``
document must carry the ``admin`` role.

Features:
- Bearer token extraction and ID token verification
- Role lookup in the users collection
- Firebase Auth account creation and password resets
- Random password generation for bulk-created accounts
- Mapping of known Firebase Auth errors to readable messages
"""

import logging
import secrets
import string
from typing import Any, Dict, Optional

from firebase_admin import auth as firebase_auth

USERS_COLLECTION = 'users'

ROLE_ADMIN = 'admin'
ROLE_STUDENT = 'student'

PASSWORD_SPECIAL_CHARACTERS = '!@#$%^&*'

# Known error codes and the fragments that identify them in SDK messages
AUTH_ERROR_PATTERNS = {
    'email-already-exists': ('email-already-exists', 'EMAIL_EXISTS', 'DUPLICATE_EMAIL'),
    'invalid-email': ('invalid-email', 'INVALID_EMAIL', 'Malformed email'),
    'weak-password': ('weak-password', 'WEAK_PASSWORD', 'at least 6 characters'),
    'user-not-found': ('user-not-found', 'USER_NOT_FOUND', 'No user record found'),
}

DEFAULT_ERROR_MESSAGES = {
    'email-already-exists': 'Email already exists',
    'invalid-email': 'Invalid email address',
    'weak-password': 'Password is too weak',
    'user-not-found': 'User not found',
}

MISSING_TOKEN_MESSAGE = 'Unauthorized - Missing or invalid token'
INVALID_TOKEN_MESSAGE = 'Unauthorized - Invalid token'
FORBIDDEN_MESSAGE = 'Forbidden - Admin access required'


class AuthorizationError(Exception):
    """Raised when a privileged request cannot be authorized."""

    def __init__(self, status_code: int, message: str, caller: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        # Verified identity of a 403 caller, None when the token was not verified
        self.caller = caller


def classify_auth_error(error: Exception) -> Optional[str]:
    """
    Identify a known Firebase Auth failure.

    Args:
        error (Exception): Error raised by the auth client

    Returns:
        str: Error code from AUTH_ERROR_PATTERNS, or None when unknown
    """
    if isinstance(error, firebase_auth.EmailAlreadyExistsError):
        return 'email-already-exists'
    if isinstance(error, firebase_auth.UserNotFoundError):
        return 'user-not-found'

    text = str(error)
    for code, fragments in AUTH_ERROR_PATTERNS.items():
        if any(fragment in text for fragment in fragments):
            return code
    return None


def describe_auth_error(error: Exception, messages: Optional[Dict[str, str]] = None) -> str:
    """
    Turn an auth error into a user-facing message.

    Args:
        error (Exception): Error raised by the auth client
        messages (dict): Per-call overrides of DEFAULT_ERROR_MESSAGES

    Returns:
        str: Readable message; unknown errors fall back to their own text
    """
    code = classify_auth_error(error)
    if code:
        table = dict(DEFAULT_ERROR_MESSAGES)
        if messages:
            table.update(messages)
        return table[code]
    return str(error) or 'Unknown error'


def generate_random_password(length: int = 12) -> str:
    """
    Generate a random password containing at least one uppercase letter,
    lowercase letter, digit and special character.
    """
    alphabet = string.ascii_uppercase + string.ascii_lowercase + string.digits + PASSWORD_SPECIAL_CHARACTERS
    required = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(PASSWORD_SPECIAL_CHARACTERS),
    ]
    characters = required + [secrets.choice(alphabet) for _ in range(max(length - len(required), 0))]
    secrets.SystemRandom().shuffle(characters)
    return ''.join(characters)


class AuthManager:
    """
    Authorization of admin API calls and Firebase Auth account operations.
    """

    def __init__(self, database_manager, auth_client=None):
        """
        Initialize the authentication manager.

        Args:
            database_manager: Database manager instance
            auth_client: Object exposing the ``firebase_admin.auth`` functions
                used here; defaults to the module itself
        """
        self.db = database_manager
        self.auth = auth_client if auth_client is not None else firebase_auth
        self.logger = logging.getLogger(__name__)

        self.logger.info("Authentication manager initialized")

    @staticmethod
    def extract_bearer_token(authorization_header: Optional[str]) -> Optional[str]:
        """Return the token of a ``Bearer <token>`` header, or None."""
        if not authorization_header or not authorization_header.startswith('Bearer '):
            return None
        token = authorization_header.split('Bearer ', 1)[1].strip()
        return token or None

    def verify_admin_request(self, authorization_header: Optional[str]) -> Dict[str, Any]:
        """
        Verify that a request comes from an authenticated admin.

        Args:
            authorization_header (str): Raw Authorization header value

        Returns:
            Dict[str, Any]: Caller's uid, email, name and role

        Raises:
            AuthorizationError: 401 for a missing or invalid token, 403 when
                the caller is not an admin
        """
        token = self.extract_bearer_token(authorization_header)
        if not token:
            raise AuthorizationError(401, MISSING_TOKEN_MESSAGE)

        try:
            decoded_token = self.auth.verify_id_token(token)
        except Exception as e:
            self.logger.warning(f"ID token verification failed: {str(e)}")
            raise AuthorizationError(401, INVALID_TOKEN_MESSAGE)

        uid = decoded_token.get('uid')
        user = self.db.get_document(USERS_COLLECTION, uid) if uid else None

        if not user or user.get('role') != ROLE_ADMIN:
            self.logger.warning(f"Admin access denied for uid {uid}")
            raise AuthorizationError(403, FORBIDDEN_MESSAGE, caller={
                'uid': uid,
                'email': (user or {}).get('email') or decoded_token.get('email'),
                'role': (user or {}).get('role'),
            })

        return {
            'uid': uid,
            'email': user.get('email') or decoded_token.get('email'),
            'name': user.get('name', ''),
            'role': user['role'],
        }

    def get_user_role(self, uid: str) -> Optional[str]:
        """
        Get the role stored for a user.

        Returns:
            str: Role, or None if the user document is missing
        """
        try:
            user = self.db.get_document(USERS_COLLECTION, uid)
            return user.get('role') if user else None
        except Exception as e:
            self.logger.error(f"Failed to get role for {uid}: {str(e)}")
            return None

    def create_auth_user(self, email: str, password: str, display_name: str) -> str:
        """
        Create a Firebase Auth account.

        Returns:
            str: New user's uid

        Raises:
            Exception: Whatever the auth client raises; callers map it with
                describe_auth_error
        """
        user_record = self.auth.create_user(email=email, password=password, display_name=display_name)
        self.logger.info(f"Auth account created for {email} ({user_record.uid})")
        return user_record.uid

    def reset_password(self, email: str, new_password: str) -> Dict[str, Any]:
        """
        Reset the password of the account registered with an email.

        Args:
            email (str): Account email
            new_password (str): New password

        Returns:
            Dict[str, Any]: Reset result
        """
        if not email or not new_password:
            return {'success': False, 'error': 'Missing email or password'}

        try:
            user_record = self.auth.get_user_by_email(email)
            self.auth.update_user(user_record.uid, password=new_password)
            self.logger.info(f"Password reset for {email}")
            return {'success': True, 'message': f'Password reset for {email}'}

        except Exception as e:
            self.logger.error(f"Error resetting password for {email}: {str(e)}")
            return {'success': False, 'error': describe_auth_error(e)}
