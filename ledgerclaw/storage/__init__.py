"""
Persistence layer: SQLAlchemy models and the LedgerStore facade.
"""

from .database import Classification, LedgerStore, Message

__all__ = ["Classification", "LedgerStore", "Message"]
