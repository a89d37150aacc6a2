"""
Panelist Reassignment Module
============================
Bulk re-pointing of in-flight shipment events (PENDING / NOTIFIED) from
one panelist's node to another's, or to no node, over a date range.

Features:
- Preview: exact count at preview time, plus affected nodes
- Execute: single transaction, recounted, drift reported
- Phase-specific failure reporting
"""

from .reassignment_data import ReassignmentData
from .reassignment_engine import BulkReassignmentEngine, ReassignmentPreview, ReassignmentResult
from .reassignment_validators import ReassignmentValidator
from .reassignment_service import PanelistReassignmentService, CONCURRENCY_NOTICE

__all__ = [
    'ReassignmentData',
    'BulkReassignmentEngine',
    'ReassignmentPreview',
    'ReassignmentResult',
    'ReassignmentValidator',
    'PanelistReassignmentService',
    'CONCURRENCY_NOTICE',
]

__version__ = '1.0.0'
