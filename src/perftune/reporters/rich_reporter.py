"""Rich Reporter Implementation."""

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from perftune.engine.applier import PreviewItem
from perftune.engine.revert import RevertPlan, StepOperation
from perftune.model.outcome import OutcomeStatus
from perftune.model.run import ManifestEntry, RunState
from perftune.report import RunReport
from perftune.reporters.base import BaseReporter
from perftune.storage.runs import RunSummary

STATUS_STYLE = {
    OutcomeStatus.APPLIED: ("green", "+"),
    OutcomeStatus.ALREADY_SATISFIED: ("dim", "="),
    OutcomeStatus.SKIPPED: ("yellow", "-"),
    OutcomeStatus.FAILED: ("red", "x"),
}

STATE_COLOR = {
    RunState.COMPLETED: "green",
    RunState.COMPLETED_WITH_FAILURES: "yellow",
    RunState.ABORTED: "red",
    RunState.INTERRUPTED: "red",
    RunState.RUNNING: "blue",
}


class RichReporter(BaseReporter):
    """Generates high-fidelity terminal output using Rich."""

    def report_entry(self, entry: ManifestEntry) -> None:
        color, icon = STATUS_STYLE[entry.status]
        line = f"   [{color}]{icon}[/] [bold]{entry.action.id}[/] [dim]{entry.status.value}[/]"
        if entry.outcome.is_failure:
            line += f"\n      [red]{escape(entry.outcome.reason)}[/]"
        for warning in entry.outcome.warnings:
            line += f"\n      [yellow]! {escape(warning)}[/]"
        self.console.print(line)

    def report_run(self, report: RunReport) -> int:
        counts = report.counts
        color = STATE_COLOR.get(report.state, "white")

        grid = Table.grid(expand=True)
        grid.add_column()
        grid.add_column(justify="right")
        grid.add_row("Restored" if report.mode == "revert" else "Applied", f"[green]{counts['applied']}[/]")
        grid.add_row("Already satisfied", str(counts["already_satisfied"]))
        grid.add_row("Skipped", f"[yellow]{counts['skipped']}[/]")
        grid.add_row("Failed", f"[red]{counts['failed']}[/]" if counts["failed"] else "0")
        if report.not_attempted:
            grid.add_row("Not attempted", f"[red]{report.not_attempted}[/]")

        self.console.print()
        self.console.print(
            Panel(
                grid,
                title=f"[{color}]Run {report.run_id}: {report.state.value}[/]",
                subtitle=f"{report.source} -> {report.host}",
                border_style=color,
            )
        )

        if report.failures:
            self.console.print("[bold red]Failures[/]")
            for entry in report.failures:
                self.console.print(f"   [red]x[/] [{entry.seq}] {entry.action.id} [dim]({entry.outcome.error_kind})[/]")
                self.console.print(f"      {escape(entry.outcome.reason)}")
        if report.warnings:
            self.console.print("[bold yellow]Warnings[/]")
            for action_id, warning in report.warnings:
                self.console.print(f"   [yellow]![/] {action_id}: {escape(warning)}")

        for name, location in report.locations.items():
            self.console.print(f"[dim]{name}:[/] {location}")
        if report.mode == "apply" and report.entries:
            self.console.print(f"\n[dim]Undo with:[/] [bold]perftune revert {report.run_id}[/]")
        return report.exit_code

    def report_plan(self, plan: RevertPlan) -> None:
        table = Table(title=f"Revert plan for {plan.run_id} ({plan.run_state.value})")
        table.add_column("#", justify="right")
        table.add_column("Action")
        table.add_column("Step")
        table.add_column("Detail")
        for step in plan.steps:
            if step.error:
                op = "[red]cannot restore[/]"
                detail = escape(step.error)
            elif step.operation == StepOperation.RESTORE:
                op = "[green]restore[/]"
                detail = escape(step.reason)
            else:
                op = "[dim]no-op[/]"
                detail = f"[dim]{escape(step.reason)}[/]"
            table.add_row(str(step.seq), step.action.id, op, detail)
        self.console.print(table)
        for warning in plan.warnings:
            self.console.print(f"[yellow]! {escape(warning)}[/]")

    def report_preview(self, items: list[PreviewItem]) -> None:
        styles = {"change": "green", "satisfied": "dim", "skip": "yellow", "error": "red"}
        table = Table(title="Dry run - no changes made")
        table.add_column("#", justify="right")
        table.add_column("Action")
        table.add_column("Would")
        table.add_column("Detail")
        for item in items:
            style = styles.get(item.status, "white")
            table.add_row(str(item.seq), item.action.id, f"[{style}]{item.status}[/]", escape(item.detail))
        self.console.print(table)

    def report_runs(self, runs: list[RunSummary]) -> None:
        if not runs:
            self.console.print("[yellow]No runs recorded.[/]")
            return
        table = Table(title="Recorded runs")
        table.add_column("Run")
        table.add_column("State")
        table.add_column("Changed", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Source")
        table.add_column("Host")
        for run in runs:
            state = run.state + (" (reverted)" if run.reverted else "")
            table.add_row(
                run.run_id,
                state,
                str(run.counts.get("applied", 0)),
                str(run.counts.get("failed", 0)),
                run.source,
                run.host,
            )
        self.console.print(table)
