"""Upload of a local vault into a remote vault's history.

``SyncOrchestrator`` diffs every local item against the remote replica and
records the difference as a revision on the remote, where divergence is
merged or queued as conflicts.

Public exports
--------------
``SyncOrchestrator``, ``SyncAction``, ``SyncResult``, ``SyncReport``,
``diff_fields``.
"""

from .models import SyncAction, SyncReport, SyncResult
from .orchestrator import SyncOrchestrator, diff_fields

__all__ = [
    "SyncAction",
    "SyncOrchestrator",
    "SyncReport",
    "SyncResult",
    "diff_fields",
]
