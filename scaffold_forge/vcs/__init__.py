"""scaffold-forge version-control automation.

Key classes:
    RepoAutomation  - ensure / stage / commit / push / status for an output root
    CommitOutcome   - combined result of commit_and_push
    PushResult      - push outcome, including soft precondition failures
    RepoStatus      - parsed working-tree status
"""

from .repository import (
    CommitOutcome,
    PushResult,
    PushUpdate,
    RepoAutomation,
    RepoStatus,
)

__all__ = [
    "RepoAutomation",
    "CommitOutcome",
    "PushResult",
    "PushUpdate",
    "RepoStatus",
]
