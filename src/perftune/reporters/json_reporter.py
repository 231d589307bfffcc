"""JSON Reporter Implementation."""

import json
from dataclasses import asdict

from perftune.engine.applier import PreviewItem
from perftune.engine.revert import RevertPlan
from perftune.report import RunReport
from perftune.reporters.base import BaseReporter
from perftune.storage.runs import RunSummary


class JsonReporter(BaseReporter):
    """Generates machine-readable JSON output."""

    def _dump(self, data: object) -> None:
        self.console.print(json.dumps(data, indent=2, default=str), markup=False, highlight=False, soft_wrap=True)

    def report_run(self, report: RunReport) -> int:
        self._dump(report.to_dict())
        return report.exit_code

    def report_plan(self, plan: RevertPlan) -> None:
        self._dump(plan.to_dict())

    def report_preview(self, items: list[PreviewItem]) -> None:
        self._dump(
            [
                {
                    "seq": item.seq,
                    "action_id": item.action.id,
                    "kind": item.action.kind.value,
                    "status": item.status,
                    "detail": item.detail,
                }
                for item in items
            ]
        )

    def report_runs(self, runs: list[RunSummary]) -> None:
        self._dump([asdict(run) for run in runs])
