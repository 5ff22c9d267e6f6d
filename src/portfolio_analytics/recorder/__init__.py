"""
Attribution recorder.

Runs once per page view or interaction on the visitor side, with browser
storage abstracted behind ``KeyValueStorage``.
"""

from .first_touch import FIRST_TOUCH_KEY, FIRST_TOUCH_TTL, FirstTouchStore
from .identity import SESSION_ID_KEY, VISITOR_ID_KEY, VisitorIdentity
from .recorder import AttributionRecorder, PageContext
from .storage import KeyValueStorage, MemoryStorage
from .transport import BeaconTransport, Transport

__all__ = [
    "AttributionRecorder", "PageContext",
    "KeyValueStorage", "MemoryStorage",
    "VisitorIdentity", "FirstTouchStore",
    "BeaconTransport", "Transport",
    "FIRST_TOUCH_KEY", "FIRST_TOUCH_TTL", "VISITOR_ID_KEY", "SESSION_ID_KEY",
]
