"""Record change tracking and collection filters."""

from .collection import RecordCollection
from .record import Record

__all__ = [
    "Record",
    "RecordCollection",
]
