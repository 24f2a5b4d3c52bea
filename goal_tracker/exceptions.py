"""
Error taxonomy for the goal lifecycle engine.
"""

from typing import List, Tuple


class GoalTrackerError(Exception):
    """Base class for goal tracker failures."""


class TransientDeliveryError(GoalTrackerError):
    """Delivery failed with a retryable condition (throttling or gateway error)."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class StorageError(GoalTrackerError):
    """A table operation failed."""

    def __init__(self, message: str, table_name: str = None, partition_key: str = None):
        super().__init__(message)
        self.table_name = table_name
        self.partition_key = partition_key


class AggregateFailureError(GoalTrackerError):
    """Raised after a per-item loop completes with one or more failed items."""

    def __init__(self, message: str, failures: List[Tuple[str, BaseException]]):
        super().__init__(f"{message} ({len(failures)} failed)")
        self.failures = failures

    @property
    def failed_ids(self) -> List[str]:
        return [item_id for item_id, _ in self.failures]


class TeamFanOutError(AggregateFailureError):
    """One or more team members did not receive a team reminder."""


class CascadeClosureError(AggregateFailureError):
    """One or more members' aligned goals could not be closed."""
