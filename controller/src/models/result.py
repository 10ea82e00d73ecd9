"""
Reconcile outcome models.
"""

from dataclasses import dataclass
from typing import Optional
from enum import Enum

class OperationResult(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"

    @property
    def changed(self) -> bool:
        return self is not OperationResult.UNCHANGED

@dataclass
class Result:
    """What the dispatcher should do with a key after a reconcile."""
    requeue: bool = False
    requeue_after: Optional[float] = None
