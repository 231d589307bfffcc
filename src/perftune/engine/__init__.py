"""Engine package - applying action lists and reverting recorded runs."""

from perftune.engine.applier import Applier, PreviewItem, preview
from perftune.engine.revert import InverseStep, RevertPlan, RevertPlanner, StepOperation

__all__ = [
    "Applier",
    "InverseStep",
    "PreviewItem",
    "RevertPlan",
    "RevertPlanner",
    "StepOperation",
    "preview",
]
