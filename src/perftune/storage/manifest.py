"""Manifest - append-only JSON-lines record of a run.

    {"type": "run", "run_id": ..., "started_at": ..., ...}     header
    {"type": "entry", "seq": 1, "action": {...}, "outcome": {...}}
    ...
    {"type": "end", "state": "completed", "finished_at": ...}  footer

Each record is flushed and fsynced before the writer returns, so a killed
process leaves a manifest that is consistent up to its last full line. After
the footer the file is made read-only.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from perftune.errors import ManifestError
from perftune.model.run import Manifest, ManifestEntry, RunState

logger = logging.getLogger(__name__)


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


class ManifestWriter:
    """Incremental manifest writer.

    Example:
        >>> with ManifestWriter(path, manifest) as writer:
        ...     writer.append(entry)
        ...     writer.finish(RunState.COMPLETED)
    """

    def __init__(self, path: Path, manifest: Manifest) -> None:
        self.path = Path(path)
        self.manifest = manifest
        self._handle = None

    def open(self) -> None:
        if self.path.exists():
            raise ManifestError(f"Manifest already exists: {self.path}")
        self._handle = open(self.path, "a", encoding="utf-8")
        os.chmod(self.path, 0o600)
        self._write(self.manifest.header())

    def __enter__(self) -> "ManifestWriter":
        self.open()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _write(self, record: dict[str, Any]) -> None:
        if self._handle is None:
            raise ManifestError("Manifest writer is not open")
        self._handle.write(json.dumps(record, sort_keys=True) + "\n")
        self._handle.flush()
        os.fsync(self._handle.fileno())

    def append(self, entry: ManifestEntry) -> None:
        self._write(entry.to_dict())
        self.manifest.entries.append(entry)

    def finish(self, state: RunState) -> None:
        """Write the footer and freeze the file."""
        finished_at = now_iso()
        self._write({"type": "end", "state": state.value, "finished_at": finished_at})
        self.manifest.state = state
        self.manifest.finished_at = finished_at
        self.close()
        os.chmod(self.path, 0o400)

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


def load_manifest(path: Path) -> Manifest:
    """Load a manifest, tolerating a truncated final line.

    A manifest without footer is returned with state INTERRUPTED.
    """
    path = Path(path)
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError as e:
        raise ManifestError(f"Manifest not found: {path}") from e
    except OSError as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}") from e

    records: list[dict[str, Any]] = []
    for index, line in enumerate(lines):
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except ValueError as e:
            if index == len(lines) - 1:
                logger.warning("Ignoring truncated last record in %s", path)
                break
            raise ManifestError(f"Corrupt manifest {path} at line {index + 1}") from e

    if not records or records[0].get("type") != "run":
        raise ManifestError(f"Manifest {path} has no header")

    header = records[0]
    manifest = Manifest(
        run_id=header["run_id"],
        mode=header.get("mode", "apply"),
        started_at=header.get("started_at", ""),
        host=header.get("host", ""),
        source=header.get("source", ""),
        total_actions=int(header.get("total_actions", 0)),
    )
    for record in records[1:]:
        kind = record.get("type")
        if kind == "entry":
            manifest.entries.append(ManifestEntry.from_dict(record))
        elif kind == "end":
            manifest.state = RunState(record["state"])
            manifest.finished_at = record.get("finished_at")
    return manifest
