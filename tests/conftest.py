"""
Shared fixtures: an in-memory Firestore double, a fake Firebase Auth client
and a Flask app wired to both.
"""

import copy
import uuid

import pytest

from smartlab import create_app
from smartlab.modules.database_manager import DatabaseManager

ADMIN_TOKEN = 'admin-token'
STUDENT_TOKEN = 'student-token'

OPERATORS = {
    '==': lambda a, b: a == b,
    '!=': lambda a, b: a != b,
    '<': lambda a, b: a is not None and a < b,
    '<=': lambda a, b: a is not None and a <= b,
    '>': lambda a, b: a is not None and a > b,
    '>=': lambda a, b: a is not None and a >= b,
    'in': lambda a, b: a in b,
    'array_contains': lambda a, b: isinstance(a, list) and b in a,
}


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, store, path, doc_id):
        self._store = store
        self._path = path
        self.id = doc_id

    def _docs(self):
        return self._store.setdefault(self._path, {})

    def get(self):
        return FakeSnapshot(self, self._docs().get(self.id))

    def set(self, data, merge=False):
        docs = self._docs()
        if merge and self.id in docs:
            docs[self.id].update(copy.deepcopy(data))
        else:
            docs[self.id] = copy.deepcopy(data)

    def update(self, data):
        docs = self._docs()
        if self.id not in docs:
            raise KeyError(f'No document to update: {self._path}/{self.id}')
        docs[self.id].update(copy.deepcopy(data))

    def delete(self):
        self._docs().pop(self.id, None)

    def collection(self, name):
        return FakeCollection(self._store, f'{self._path}/{self.id}/{name}')


class FakeQuery:
    def __init__(self, collection, filters, order=None, limit=None):
        self._collection = collection
        self._filters = filters
        self._order = order
        self._limit = limit

    def where(self, filter=None):
        return FakeQuery(self._collection, self._filters + [filter], self._order, self._limit)

    def order_by(self, field_path, direction='ASCENDING'):
        return FakeQuery(self._collection, self._filters, (field_path, direction), self._limit)

    def limit(self, count):
        return FakeQuery(self._collection, self._filters, self._order, count)

    def stream(self):
        matches = [
            snapshot for snapshot in self._collection.stream()
            if all(OPERATORS[f.op_string](snapshot.to_dict().get(f.field_path), f.value) for f in self._filters)
        ]
        if self._order:
            field_path, direction = self._order
            matches = [s for s in matches if s.to_dict().get(field_path) is not None]
            matches.sort(key=lambda s: s.to_dict()[field_path], reverse=direction == 'DESCENDING')
        if self._limit is not None:
            matches = matches[:self._limit]
        return iter(matches)


class FakeCollection:
    def __init__(self, store, path):
        self._store = store
        self._path = path

    def document(self, doc_id=None):
        return FakeDocument(self._store, self._path, doc_id or uuid.uuid4().hex[:20])

    def stream(self):
        docs = self._store.get(self._path, {})
        for doc_id in list(docs):
            yield FakeDocument(self._store, self._path, doc_id).get()

    def where(self, filter=None):
        return FakeQuery(self, [filter])

    def order_by(self, field_path, direction='ASCENDING'):
        return FakeQuery(self, [], (field_path, direction))

    def limit(self, count):
        return FakeQuery(self, [], limit=count)


class FakeBatch:
    def __init__(self):
        self._deletes = []

    def delete(self, reference):
        self._deletes.append(reference)

    def commit(self):
        for reference in self._deletes:
            reference.delete()
        self._deletes = []


class FakeFirestore:
    """Dictionary backed stand-in for ``google.cloud.firestore.Client``."""

    def __init__(self):
        self.store = {}

    def collection(self, name):
        return FakeCollection(self.store, name)

    def batch(self):
        return FakeBatch()

    def docs(self, path):
        return self.store.get(path, {})


class FakeUserRecord:
    def __init__(self, uid, email, password, display_name=None):
        self.uid = uid
        self.email = email
        self.password = password
        self.display_name = display_name


class FakeAuth:
    """Subset of ``firebase_admin.auth`` used by the dashboard."""

    class InvalidIdTokenError(Exception):
        pass

    def __init__(self):
        self.users = {}
        self.tokens = {}

    def verify_id_token(self, token):
        if token not in self.tokens:
            raise self.InvalidIdTokenError('Token could not be verified')
        return dict(self.tokens[token])

    def create_user(self, email=None, password=None, display_name=None):
        if email in {u.email for u in self.users.values()}:
            raise ValueError('email-already-exists: The user with the provided email already exists')
        if not email or '@' not in email:
            raise ValueError('invalid-email: Malformed email address string')
        if not password or len(password) < 6:
            raise ValueError('weak-password: Password should be at least 6 characters')
        record = FakeUserRecord(f'uid-{len(self.users) + 1}', email, password, display_name)
        self.users[record.uid] = record
        return record

    def get_user_by_email(self, email):
        for record in self.users.values():
            if record.email == email:
                return record
        raise ValueError(f'user-not-found: No user record found for the provided email: {email}')

    def update_user(self, uid, password=None):
        self.users[uid].password = password
        return self.users[uid]


@pytest.fixture
def firestore_client():
    return FakeFirestore()


@pytest.fixture
def auth_client():
    return FakeAuth()


@pytest.fixture
def db(firestore_client):
    return DatabaseManager(firestore_client)


@pytest.fixture
def app(firestore_client, auth_client, tmp_path, monkeypatch):
    from smartlab.config import TestingConfig
    monkeypatch.setattr(TestingConfig, 'EXPORT_FOLDER', tmp_path / 'exports')

    firestore_client.collection('users').document('admin-uid').set({
        'uid': 'admin-uid', 'email': 'admin@lab.test', 'name': 'Lab Admin', 'role': 'admin',
    })
    firestore_client.collection('users').document('student-uid').set({
        'uid': 'student-uid', 'email': 'student@lab.test', 'name': 'A Student', 'role': 'student',
    })
    auth_client.tokens[ADMIN_TOKEN] = {'uid': 'admin-uid', 'email': 'admin@lab.test'}
    auth_client.tokens[STUDENT_TOKEN] = {'uid': 'student-uid', 'email': 'student@lab.test'}

    return create_app('testing', firestore_client=firestore_client, auth_client=auth_client)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {'Authorization': f'Bearer {ADMIN_TOKEN}'}


@pytest.fixture
def managers(app):
    return app.extensions['smartlab']


def add_student(firestore_client, uid, roll_no, name, **fields):
    """Put a student profile straight into the fake store."""
    data = {'uid': uid, 'rollNo': roll_no, 'name': name}
    data.update(fields)
    firestore_client.collection('students').document(uid).set(data)
    return data
