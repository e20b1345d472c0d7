import string

import pytest

from smartlab.modules.auth_manager import (
    AuthManager,
    AuthorizationError,
    classify_auth_error,
    describe_auth_error,
    generate_random_password,
)


@pytest.fixture
def auth(db, auth_client, firestore_client):
    firestore_client.collection('users').document('admin-uid').set({'role': 'admin', 'email': 'a@lab.test'})
    firestore_client.collection('users').document('student-uid').set({'role': 'student'})
    auth_client.tokens['good'] = {'uid': 'admin-uid'}
    auth_client.tokens['student'] = {'uid': 'student-uid'}
    auth_client.tokens['orphan'] = {'uid': 'nobody'}
    return AuthManager(db, auth_client)


@pytest.mark.parametrize('header', [None, '', 'Token abc', 'Bearer ', 'bearer abc'])
def test_missing_or_malformed_header(auth, header):
    with pytest.raises(AuthorizationError) as exc:
        auth.verify_admin_request(header)
    assert exc.value.status_code == 401
    assert exc.value.message == 'Unauthorized - Missing or invalid token'


def test_invalid_token(auth):
    with pytest.raises(AuthorizationError) as exc:
        auth.verify_admin_request('Bearer forged')
    assert exc.value.status_code == 401
    assert exc.value.message == 'Unauthorized - Invalid token'


@pytest.mark.parametrize('token', ['student', 'orphan'])
def test_non_admin_is_forbidden(auth, token):
    with pytest.raises(AuthorizationError) as exc:
        auth.verify_admin_request(f'Bearer {token}')
    assert exc.value.status_code == 403
    assert exc.value.message == 'Forbidden - Admin access required'


def test_admin_is_verified(auth):
    caller = auth.verify_admin_request('Bearer good')
    assert caller['uid'] == 'admin-uid'
    assert caller['role'] == 'admin'
    assert caller['email'] == 'a@lab.test'


def test_get_user_role(auth):
    assert auth.get_user_role('student-uid') == 'student'
    assert auth.get_user_role('nobody') is None


@pytest.mark.parametrize('text, code', [
    ('The user with the provided email already exists (EMAIL_EXISTS).', 'email-already-exists'),
    ('auth/invalid-email', 'invalid-email'),
    ('Password should be at least 6 characters', 'weak-password'),
    ('No user record found for the provided email', 'user-not-found'),
    ('quota exceeded', None),
])
def test_classify_auth_error(text, code):
    assert classify_auth_error(Exception(text)) == code


def test_describe_auth_error_overrides_and_fallback():
    assert describe_auth_error(Exception('weak-password')) == 'Password is too weak'
    assert describe_auth_error(Exception('weak-password'), {'weak-password': 'Too weak'}) == 'Too weak'
    assert describe_auth_error(Exception('quota exceeded')) == 'quota exceeded'


def test_generated_password_has_every_character_class():
    for _ in range(20):
        password = generate_random_password(12)
        assert len(password) == 12
        assert any(c in string.ascii_uppercase for c in password)
        assert any(c in string.ascii_lowercase for c in password)
        assert any(c in string.digits for c in password)
        assert any(c in '!@#$%^&*' for c in password)


def test_reset_password(auth, auth_client):
    auth_client.create_user(email='s@x.test', password='old-pass')
    assert auth.reset_password('s@x.test', 'brand-new') == {
        'success': True, 'message': 'Password reset for s@x.test'
    }
    assert auth_client.get_user_by_email('s@x.test').password == 'brand-new'
    assert auth.reset_password('', 'x')['error'] == 'Missing email or password'
    assert auth.reset_password('ghost@x.test', 'brand-new')['error'] == 'User not found'
