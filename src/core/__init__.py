"""
AppRemind Core Package

Database access, messaging, and the reliable delivery pieces built on them:
outbox, inbox, idempotency keys and scheduled jobs.
"""

from . import database
from . import outbox

__all__ = ["database", "outbox"]
