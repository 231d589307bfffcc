"""Run registry - one directory per apply run under the state directory."""

from __future__ import annotations

import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

from perftune.errors import ManifestError, RunNotFound
from perftune.model.run import Manifest, RunState
from perftune.storage.backup import DIR_MODE, BackupStore
from perftune.storage.manifest import load_manifest

logger = logging.getLogger(__name__)

RUN_ID_FORMAT = "%Y%m%d-%H%M%S"
RUN_ID_PATTERN = re.compile(r"^\d{8}-\d{6}(-\d+)?$")


@dataclass
class RunPaths:
    """Well-known files of a run directory."""

    run_id: str
    run_dir: Path

    @property
    def manifest(self) -> Path:
        return self.run_dir / "manifest.jsonl"

    @property
    def revert_plan(self) -> Path:
        return self.run_dir / "revert-plan.json"

    @property
    def readme(self) -> Path:
        return self.run_dir / "README"

    @property
    def log(self) -> Path:
        return self.run_dir / "run.log"

    def revert_records(self) -> list[Path]:
        return sorted(self.run_dir.glob("revert-*.jsonl"))

    def new_revert_record(self) -> Path:
        stamp = datetime.now().strftime(RUN_ID_FORMAT)
        path = self.run_dir / f"revert-{stamp}.jsonl"
        suffix = 2
        while path.exists():
            path = self.run_dir / f"revert-{stamp}-{suffix}.jsonl"
            suffix += 1
        return path

    @property
    def store(self) -> BackupStore:
        return BackupStore(self.run_dir)


@dataclass
class RunSummary:
    """One line of ``perftune runs``."""

    run_id: str
    started_at: str
    state: str
    source: str = ""
    host: str = ""
    counts: dict[str, int] = field(default_factory=dict)
    reverted: bool = False


class RunRegistry:
    """Creates, finds, lists and prunes runs below ``state_dir``."""

    def __init__(self, state_dir: str | Path) -> None:
        self.state_dir = Path(state_dir).expanduser()

    def create_run(self, now: datetime | None = None) -> RunPaths:
        """Allocate a fresh, owner-only run directory."""
        self.state_dir.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
        base = (now or datetime.now()).strftime(RUN_ID_FORMAT)
        run_id = base
        suffix = 2
        while True:
            run_dir = self.state_dir / run_id
            try:
                run_dir.mkdir(mode=DIR_MODE)
                break
            except FileExistsError:
                run_id = f"{base}-{suffix}"
                suffix += 1

        os.chmod(run_dir, DIR_MODE)
        BackupStore.create(run_dir)
        logger.debug("Created run directory %s", run_dir)
        return RunPaths(run_id=run_id, run_dir=run_dir)

    def open_run(self, run_id: str) -> RunPaths:
        """Return the paths of an existing run. Raises RunNotFound."""
        if not RUN_ID_PATTERN.match(run_id):
            raise RunNotFound(f"Invalid run id: {run_id}")
        paths = RunPaths(run_id=run_id, run_dir=self.state_dir / run_id)
        if not paths.manifest.exists():
            raise RunNotFound(f"No manifest for run {run_id} in {self.state_dir}")
        if not paths.store.exists:
            raise RunNotFound(f"Backup store for run {run_id} is missing")
        return paths

    def run_ids(self) -> list[str]:
        """All run ids, newest first."""
        if not self.state_dir.is_dir():
            return []
        ids = [p.name for p in self.state_dir.iterdir() if p.is_dir() and RUN_ID_PATTERN.match(p.name)]
        return sorted(ids, key=_sort_key, reverse=True)

    def list_runs(self) -> list[RunSummary]:
        summaries = []
        for run_id in self.run_ids():
            paths = RunPaths(run_id=run_id, run_dir=self.state_dir / run_id)
            try:
                manifest = load_manifest(paths.manifest)
            except ManifestError as e:
                logger.warning("Skipping run %s: %s", run_id, e)
                summaries.append(RunSummary(run_id=run_id, started_at="", state="unreadable"))
                continue
            summaries.append(_summarize(manifest, reverted=bool(paths.revert_records())))
        return summaries

    def prune(self, keep: int, older_than_days: int | None = None, now: datetime | None = None) -> list[str]:
        """Delete runs beyond the newest ``keep``.

        With ``older_than_days`` only runs older than that are deleted, still
        never touching the newest ``keep``.

        Returns:
            Ids of the deleted runs.
        """
        if keep < 0:
            raise ValueError("keep must be >= 0")

        candidates = self.run_ids()[keep:]
        if older_than_days is not None:
            cutoff = (now or datetime.now()) - timedelta(days=older_than_days)
            candidates = [run_id for run_id in candidates if _run_time(run_id) < cutoff]

        removed = []
        for run_id in candidates:
            try:
                shutil.rmtree(self.state_dir / run_id)
            except OSError as e:
                logger.warning("Cannot prune run %s: %s", run_id, e)
                continue
            logger.info("Pruned run %s", run_id)
            removed.append(run_id)
        return removed


def _sort_key(run_id: str) -> tuple[str, int]:
    suffix = run_id[16:]
    return run_id[:15], int(suffix) if suffix else 1


def _run_time(run_id: str) -> datetime:
    return datetime.strptime(run_id[:15], RUN_ID_FORMAT)


def _summarize(manifest: Manifest, reverted: bool) -> RunSummary:
    counts: dict[str, int] = {}
    for entry in manifest.entries:
        counts[entry.status.value] = counts.get(entry.status.value, 0) + 1
    state = manifest.state if manifest.is_complete else RunState.INTERRUPTED
    return RunSummary(
        run_id=manifest.run_id,
        started_at=manifest.started_at,
        state=state.value,
        source=manifest.source,
        host=manifest.host,
        counts=counts,
        reverted=reverted,
    )
