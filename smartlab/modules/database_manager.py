"""
Database Manager Module - Smart City Lab Admin Dashboard

This module handles all document store operations for the dashboard.
Every screen of the dashboard reads and writes loosely-typed Firestore
documents; this module is the single place that talks to the Firestore
client so the other managers deal only in plain dictionaries.

Features:
- Firebase Admin initialization from service account or default credentials
- Collection reads returning dictionaries with their document IDs
- Document create, update, merge and delete helpers
- Field filter queries
- User message subcollections
- Batched collection deletes
- Application settings stored in the appConfig collection
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud.firestore_v1.base_query import FieldFilter

# Firestore batches accept at most 500 writes
BATCH_LIMIT = 500

SETTINGS_COLLECTION = 'appConfig'


class DatabaseManager:
    """
    Thin wrapper around a Firestore client used by every manager in the
    dashboard. Reads are returned as dictionaries carrying an ``id`` key.
    """

    def __init__(self, client):
        """
        Initialize the database manager with a Firestore client.

        Args:
            client: ``google.cloud.firestore.Client`` (or compatible) instance
        """
        self.client = client
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config_class) -> 'DatabaseManager':
        """
        Initialize Firebase Admin (once per process) and build a manager.

        Args:
            config_class: Configuration class with Firebase settings

        Returns:
            DatabaseManager: Manager bound to the default Firestore client
        """
        if not firebase_admin._apps:
            options = {}
            if config_class.FIREBASE_PROJECT_ID:
                options['projectId'] = config_class.FIREBASE_PROJECT_ID

            service_account = config_class.firebase_credentials()
            if service_account:
                cred = credentials.Certificate(service_account)
            else:
                cred = credentials.ApplicationDefault()

            firebase_admin.initialize_app(cred, options or None)
            logging.getLogger(__name__).info("Firebase Admin initialized")

        return cls(firestore.client())

    @staticmethod
    def _snapshot_to_dict(snapshot) -> Dict[str, Any]:
        data = snapshot.to_dict() or {}
        data['id'] = snapshot.id
        return data

    def get_collection(self, collection: str) -> List[Dict[str, Any]]:
        """
        Fetch every document in a collection.

        Args:
            collection (str): Collection name

        Returns:
            List[Dict[str, Any]]: Documents with their ``id``
        """
        try:
            return [self._snapshot_to_dict(doc) for doc in self.client.collection(collection).stream()]
        except Exception as e:
            self.logger.error(f"Failed to read collection {collection}: {str(e)}")
            raise

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a single document.

        Args:
            collection (str): Collection name
            doc_id (str): Document ID

        Returns:
            Dict[str, Any]: Document data with ``id`` or None if missing
        """
        try:
            snapshot = self.client.collection(collection).document(doc_id).get()
            if not snapshot.exists:
                return None
            return self._snapshot_to_dict(snapshot)
        except Exception as e:
            self.logger.error(f"Failed to read {collection}/{doc_id}: {str(e)}")
            raise

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any],
                     merge: bool = False) -> str:
        """
        Create or overwrite a document with a known ID.

        Args:
            collection (str): Collection name
            doc_id (str): Document ID
            data (Dict[str, Any]): Document fields
            merge (bool): Merge into an existing document instead of replacing it

        Returns:
            str: Document ID
        """
        try:
            self.client.collection(collection).document(doc_id).set(data, merge=merge)
            return doc_id
        except Exception as e:
            self.logger.error(f"Failed to write {collection}/{doc_id}: {str(e)}")
            raise

    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        """
        Create a document with a generated ID.

        Returns:
            str: Generated document ID
        """
        try:
            doc_ref = self.client.collection(collection).document()
            doc_ref.set(data)
            return doc_ref.id
        except Exception as e:
            self.logger.error(f"Failed to add document to {collection}: {str(e)}")
            raise

    def update_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> bool:
        """
        Update fields of an existing document.

        Returns:
            bool: False when the document does not exist
        """
        try:
            doc_ref = self.client.collection(collection).document(doc_id)
            if not doc_ref.get().exists:
                self.logger.warning(f"Update skipped, {collection}/{doc_id} not found")
                return False
            doc_ref.update(data)
            return True
        except Exception as e:
            self.logger.error(f"Failed to update {collection}/{doc_id}: {str(e)}")
            raise

    def delete_document(self, collection: str, doc_id: str) -> bool:
        """
        Delete a document.

        Returns:
            bool: False when the document did not exist
        """
        try:
            doc_ref = self.client.collection(collection).document(doc_id)
            if not doc_ref.get().exists:
                return False
            doc_ref.delete()
            return True
        except Exception as e:
            self.logger.error(f"Failed to delete {collection}/{doc_id}: {str(e)}")
            raise

    def query_documents(self, collection: str, field: str, op: str, value: Any) -> List[Dict[str, Any]]:
        """
        Run a single field filter query.

        Args:
            collection (str): Collection name
            field (str): Field path
            op (str): Comparison operator (``==``, ``<``, ``in`` ...)
            value: Value to compare against

        Returns:
            List[Dict[str, Any]]: Matching documents
        """
        try:
            query = self.client.collection(collection).where(filter=FieldFilter(field, op, value))
            return [self._snapshot_to_dict(doc) for doc in query.stream()]
        except Exception as e:
            self.logger.error(f"Query on {collection} ({field} {op} {value!r}) failed: {str(e)}")
            raise

    def get_latest_documents(self, collection: str, order_field: str, limit: int) -> List[Dict[str, Any]]:
        """
        Fetch the newest documents of a collection.

        Args:
            collection (str): Collection name
            order_field (str): Field sorted in descending order
            limit (int): Maximum number of documents

        Returns:
            List[Dict[str, Any]]: Documents, newest first
        """
        try:
            query = (self.client.collection(collection)
                     .order_by(order_field, direction=firestore.Query.DESCENDING)
                     .limit(limit))
            return [self._snapshot_to_dict(doc) for doc in query.stream()]
        except Exception as e:
            self.logger.error(f"Failed to read latest {collection} by {order_field}: {str(e)}")
            raise

    def get_subcollection(self, collection: str, doc_id: str, subcollection: str) -> List[Dict[str, Any]]:
        """Fetch every document of ``collection/doc_id/subcollection``."""
        try:
            sub_ref = self.client.collection(collection).document(doc_id).collection(subcollection)
            return [self._snapshot_to_dict(doc) for doc in sub_ref.stream()]
        except Exception as e:
            self.logger.error(f"Failed to read {collection}/{doc_id}/{subcollection}: {str(e)}")
            raise

    def add_subdocument(self, collection: str, doc_id: str, subcollection: str,
                        data: Dict[str, Any]) -> str:
        """Create a document with a generated ID under ``collection/doc_id/subcollection``."""
        try:
            sub_ref = self.client.collection(collection).document(doc_id).collection(subcollection)
            doc_ref = sub_ref.document()
            doc_ref.set(data)
            return doc_ref.id
        except Exception as e:
            self.logger.error(f"Failed to add to {collection}/{doc_id}/{subcollection}: {str(e)}")
            raise

    def count_documents(self, collection: str) -> int:
        """Number of documents in a collection."""
        return len(self.get_collection(collection))

    def delete_collection(self, collection: str) -> int:
        """
        Delete every document in a collection using batched writes.

        Args:
            collection (str): Collection name

        Returns:
            int: Number of deleted documents
        """
        try:
            deleted = 0
            batch = self.client.batch()
            pending = 0

            for doc in self.client.collection(collection).stream():
                batch.delete(doc.reference)
                pending += 1
                deleted += 1

                if pending == BATCH_LIMIT:
                    batch.commit()
                    batch = self.client.batch()
                    pending = 0

            if pending:
                batch.commit()

            self.logger.info(f"Deleted {deleted} documents from {collection}")
            return deleted

        except Exception as e:
            self.logger.error(f"Failed to delete collection {collection}: {str(e)}")
            raise

    def get_system_setting(self, key: str, default_value: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        Get an application setting document from ``appConfig``.

        Args:
            key (str): Setting key (document ID)
            default_value: Value returned when missing or unreadable

        Returns:
            Dict[str, Any]: Setting document
        """
        try:
            setting = self.get_document(SETTINGS_COLLECTION, key)
            return setting if setting is not None else default_value
        except Exception as e:
            self.logger.error(f"Failed to get system setting {key}: {str(e)}")
            return default_value

    def update_system_setting(self, key: str, values: Dict[str, Any]) -> bool:
        """
        Merge values into an application setting document.

        Returns:
            bool: Success status
        """
        try:
            self.set_document(SETTINGS_COLLECTION, key, values, merge=True)
            return True
        except Exception as e:
            self.logger.error(f"Failed to update system setting {key}: {str(e)}")
            return False


def timestamp_of(value: Any) -> float:
    """
    Sortable number for a stored timestamp.

    Firestore returns datetimes; documents written by other clients may hold
    epoch milliseconds or ISO strings. Anything else sorts first.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, (int, float)):
        return float(value) / 1000.0
    if isinstance(value, str) and value:
        try:
            return timestamp_of(datetime.fromisoformat(value.replace('Z', '+00:00')))
        except ValueError:
            return 0.0
    return 0.0
