"""Plain Text Reporter Implementation."""

from perftune.engine.applier import PreviewItem
from perftune.engine.revert import RevertPlan
from perftune.model.run import ManifestEntry
from perftune.report import RunReport
from perftune.reporters.base import BaseReporter
from perftune.storage.runs import RunSummary


class PlainReporter(BaseReporter):
    """Generates clean, text-only output."""

    def _line(self, text: str) -> None:
        self.console.print(text, markup=False, highlight=False)

    def report_entry(self, entry: ManifestEntry) -> None:
        self._line(f"[{entry.seq}] {entry.status.value.upper()}: {entry.action.id}")

    def report_run(self, report: RunReport) -> int:
        self.console.print()
        self._line(report.summary())
        return report.exit_code

    def report_plan(self, plan: RevertPlan) -> None:
        self._line(f"REVERT PLAN for run {plan.run_id} ({plan.run_state.value})")
        for step in plan.steps:
            line = f"[{step.seq}] {step.operation.value.upper()}: {step.action.id} - {step.reason}"
            if step.error:
                line += f" (error: {step.error})"
            self._line(line)
        for warning in plan.warnings:
            self._line(f"WARNING: {warning}")

    def report_preview(self, items: list[PreviewItem]) -> None:
        self._line("DRY RUN - no changes made")
        for item in items:
            self._line(f"[{item.seq}] {item.status.upper()}: {item.action.id} - {item.detail}")

    def report_runs(self, runs: list[RunSummary]) -> None:
        if not runs:
            self._line("No runs recorded.")
            return
        for run in runs:
            flag = " reverted" if run.reverted else ""
            self._line(f"{run.run_id} {run.state}{flag} {run.source} {run.host}")
