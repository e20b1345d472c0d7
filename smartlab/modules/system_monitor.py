"""
System Monitor Module - Smart City Lab Admin Dashboard

This module backs the data management screen. Firestore does not report
storage per collection, so sizes are estimated from document counts.

Features:
- Per-collection document counts and estimated sizes
- Read usage of the stats scan against the daily free-tier limits
- Storage usage against a reference quota
- Clearing a collection with batched deletes
- System health heartbeat: read-only check and admin-triggered write
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

HEALTH_COLLECTION = 'systemHealth'
HEALTH_DOCUMENT = 'status'
SYSTEM_VERSION = '1.0.0'

STORAGE_LIMIT_BYTES = 5 * 1024 * 1024 * 1024  # reference quota, 5GB

DEFAULT_COLLECTIONS = ['students', 'attendance', 'announcements', 'syllabus', 'teams',
                       'teamScores', 'registrationRequests', 'mentors']

DEFAULT_DAILY_LIMITS = {'reads': 50000, 'writes': 20000, 'deletes': 20000}


def format_bytes(num_bytes: float) -> str:
    """
    Human readable size in 1024 steps, e.g. ``1.46 KB``.

    Args:
        num_bytes (float): Size in bytes

    Returns:
        str: Size with two decimals and a unit, ``0 Bytes`` for zero
    """
    if num_bytes <= 0:
        return '0 Bytes'
    sizes = ['Bytes', 'KB', 'MB', 'GB']
    i = min(int(math.floor(math.log(num_bytes) / math.log(1024))), len(sizes) - 1)
    return f"{round(num_bytes / math.pow(1024, i), 2):.2f} {sizes[i]}"


class SystemMonitor:
    """
    Collection statistics and maintenance operations.
    """

    def __init__(self, database_manager, collections: Optional[List[str]] = None,
                 doc_size_bytes: int = 1500, daily_limits: Optional[Dict[str, int]] = None):
        """
        Initialize the system monitor.

        Args:
            database_manager: Database manager instance
            collections (List[str]): Collections shown on the data screen
            doc_size_bytes (int): Estimated size of one document
            daily_limits (dict): reads/writes/deletes allowed per day
        """
        self.db = database_manager
        self.collections = list(collections or DEFAULT_COLLECTIONS)
        self.doc_size_bytes = doc_size_bytes
        self.daily_limits = dict(daily_limits or DEFAULT_DAILY_LIMITS)
        self.logger = logging.getLogger(__name__)

    def get_collection_stats(self) -> Dict[str, Any]:
        """
        Count documents in every monitored collection.

        Each collection fetch counts as one read. A collection that cannot
        be read is reported as empty.

        Returns:
            Dict[str, Any]: collections (largest first), totalFirestoreSize,
            totalFirestoreSizeFormatted and usageStats
        """
        collections = []
        total_size = 0
        reads = 0

        for name in self.collections:
            reads += 1
            try:
                doc_count = self.db.count_documents(name)
            except Exception as e:
                self.logger.error(f"Error reading {name}: {str(e)}")
                doc_count = 0

            size = doc_count * self.doc_size_bytes
            total_size += size
            collections.append({
                'name': name,
                'docCount': doc_count,
                'estimatedSize': size,
                'estimatedSizeFormatted': format_bytes(size),
            })

        collections.sort(key=lambda c: -c['estimatedSize'])

        usage = {'reads': reads, 'writes': 0, 'deletes': 0}
        return {
            'collections': collections,
            'totalFirestoreSize': total_size,
            'totalFirestoreSizeFormatted': format_bytes(total_size),
            'usageStats': dict(usage, lastUpdated=datetime.now(timezone.utc).isoformat()),
            'limits': {
                kind: {
                    'used': used,
                    'limit': self.daily_limits[kind],
                    'percent': round(used / self.daily_limits[kind] * 100),
                    'remaining': max(0, self.daily_limits[kind] - used),
                }
                for kind, used in usage.items()
            },
        }

    def get_storage_usage(self) -> Dict[str, Any]:
        """Estimated storage against the reference quota."""
        stats = self.get_collection_stats()
        size = stats['totalFirestoreSize']
        return {
            'firestoreDocuments': sum(c['docCount'] for c in stats['collections']),
            'firestoreEstimatedSize': size,
            'firestoreSizeFormatted': format_bytes(size),
            'firestorePercentage': min(round(size / STORAGE_LIMIT_BYTES * 100), 100),
            'firestoreRemaining': format_bytes(max(STORAGE_LIMIT_BYTES - size, 0)),
        }

    def clear_collection(self, name: str) -> Dict[str, Any]:
        """
        Delete every document of a monitored collection.

        Args:
            name (str): Collection name

        Returns:
            Dict[str, Any]: Result with the number of deleted documents
        """
        if name not in self.collections:
            return {'success': False, 'error': f'Unknown collection: {name}'}

        try:
            if self.db.count_documents(name) == 0:
                return {'success': False, 'error': f'{name} is already empty'}

            deleted = self.db.delete_collection(name)
            self.logger.warning(f"Collection cleared: {name} ({deleted} documents)")
            return {'success': True, 'deleted': deleted,
                    'message': f'Deleted {deleted} documents from {name}'}

        except Exception as e:
            self.logger.error(f"Failed to clear {name}: {str(e)}")
            return {'success': False, 'error': f'Failed to clear {name}: {str(e)}'}

    def check_connection(self) -> Dict[str, Any]:
        """Read the heartbeat document without writing it."""
        try:
            status = self.db.get_document(HEALTH_COLLECTION, HEALTH_DOCUMENT) or {}
            return {'connected': True, 'status': status.get('status', 'unknown')}
        except Exception as e:
            self.logger.error(f"Error reading system health: {str(e)}")
            return {'connected': False, 'status': 'unknown'}

    def update_system_health(self) -> Dict[str, bool]:
        """Write the heartbeat document, then read it back."""
        try:
            self.db.set_document(HEALTH_COLLECTION, HEALTH_DOCUMENT, {
                'lastPing': datetime.now(timezone.utc),
                'status': 'online',
                'version': SYSTEM_VERSION,
            })
            return {'connected': self.db.get_document(HEALTH_COLLECTION, HEALTH_DOCUMENT) is not None}
        except Exception as e:
            self.logger.error(f"Error updating system health: {str(e)}")
            return {'connected': False}
