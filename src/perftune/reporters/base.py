"""Base Reporter Interface."""

from abc import ABC, abstractmethod

from rich.console import Console

from perftune.engine.applier import PreviewItem
from perftune.engine.revert import RevertPlan
from perftune.model.run import ManifestEntry
from perftune.report import RunReport
from perftune.storage.runs import RunSummary


class BaseReporter(ABC):
    """Abstract base class for all run reporters."""

    def __init__(self, console: Console) -> None:
        self.console = console

    def report_entry(self, entry: ManifestEntry) -> None:
        """Progress line after each recorded action. Silent by default."""

    @abstractmethod
    def report_run(self, report: RunReport) -> int:
        """Report a finished apply or revert. Returns the exit code."""

    @abstractmethod
    def report_plan(self, plan: RevertPlan) -> None:
        """Show the inverse steps of a run."""

    @abstractmethod
    def report_preview(self, items: list[PreviewItem]) -> None:
        """Show what an apply would do."""

    @abstractmethod
    def report_runs(self, runs: list[RunSummary]) -> None:
        """List recorded runs."""
