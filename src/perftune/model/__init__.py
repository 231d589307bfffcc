"""Model package - core data structures for perftune."""

from perftune.model.action import Action, ActionKind
from perftune.model.outcome import Outcome, OutcomeStatus
from perftune.model.run import ActionState, Manifest, ManifestEntry, RunState
from perftune.model.snapshot import Snapshot

__all__ = [
    "Action",
    "ActionKind",
    "ActionState",
    "Manifest",
    "ManifestEntry",
    "Outcome",
    "OutcomeStatus",
    "RunState",
    "Snapshot",
]
