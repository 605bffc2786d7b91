"""HTTP surface and live audit stream for the arbitration engine."""

from .broadcaster import AuditBroadcaster
from .models import StreamEnvelope
from .server import create_app

__all__ = ["AuditBroadcaster", "StreamEnvelope", "create_app"]
