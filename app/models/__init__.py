"""Domain models decoded from ledger account storage."""
from .subscription import Subscription

__all__ = ["Subscription"]
