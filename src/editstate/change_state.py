"""
Per-key change state tag.

Every key a tracker knows about is in exactly one of these states at any
instant. Keys that were added and then deleted in the same session are not
tracked at all, so they have no state.
"""
from enum import Enum


class ChangeState(Enum):
    """Change state of one tracked entity relative to its baseline."""
    UNCHANGED = "unchanged"  # working copy equals baseline
    ADDED = "added"          # no baseline yet
    MODIFIED = "modified"    # baseline exists, one or more properties diverge
    DELETED = "deleted"      # baseline exists, removed on next save

    @property
    def is_pending(self) -> bool:
        """True for every state that a save would persist."""
        return self is not ChangeState.UNCHANGED
