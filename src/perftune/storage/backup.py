"""Backup Store - per-run snapshot persistence.

Layout inside a run directory (all owner-only):

    snapshots/<slug>-<hash>.json    snapshot metadata, one per action id
    backup/etc/sysctl.d/99-perf.conf    original file bytes, mirroring the
                                        absolute target path

A store is never shared between runs. Every ``put`` is durable (fsync)
before it returns, so a run that dies halfway leaves a consistent store for
every action that reached the snapshot stage.
"""

import hashlib
import json
import logging
import os
import re
import tempfile
from pathlib import Path

from perftune.errors import SnapshotFailed
from perftune.model.snapshot import Snapshot

logger = logging.getLogger(__name__)

DIR_MODE = 0o700
FILE_MODE = 0o600


def write_durable(path: Path, data: bytes, mode: int = FILE_MODE) -> None:
    """Atomically write ``data`` to ``path`` and fsync it."""
    path.parent.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class BackupStore:
    """Snapshot storage for exactly one run."""

    def __init__(self, run_dir: Path) -> None:
        self.run_dir = Path(run_dir)
        self.snapshot_dir = self.run_dir / "snapshots"
        self.backup_dir = self.run_dir / "backup"

    @classmethod
    def create(cls, run_dir: Path) -> "BackupStore":
        """Create an empty store with restrictive permissions."""
        store = cls(run_dir)
        for directory in (store.snapshot_dir, store.backup_dir):
            directory.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
            os.chmod(directory, DIR_MODE)
        return store

    @property
    def exists(self) -> bool:
        return self.snapshot_dir.is_dir()

    def _meta_path(self, action_id: str) -> Path:
        slug = re.sub(r"[^A-Za-z0-9_.-]+", "_", action_id).strip("_")[:60] or "action"
        digest = hashlib.sha256(action_id.encode("utf-8")).hexdigest()[:10]
        return self.snapshot_dir / f"{slug}-{digest}.json"

    def _content_path(self, snapshot: Snapshot) -> Path:
        target = str(snapshot.action.get("target", snapshot.action_id))
        mirrored = self.backup_dir / target.lstrip("/")
        # A second action on the same path keeps its own copy
        if mirrored.exists():
            mirrored = mirrored.with_name(f"{mirrored.name}.~{snapshot.seq}")
        return mirrored

    def put(self, action_id: str, snapshot: Snapshot) -> None:
        """Persist a snapshot. Raises SnapshotFailed if it is not on disk."""
        if snapshot.action_id != action_id:
            raise ValueError(f"Snapshot for {snapshot.action_id} stored under {action_id}")

        meta = snapshot.to_dict()
        try:
            if snapshot.content is not None:
                content_path = self._content_path(snapshot)
                write_durable(content_path, snapshot.content)
                meta["content_path"] = str(content_path.relative_to(self.run_dir))
                meta["content_sha256"] = hashlib.sha256(snapshot.content).hexdigest()
            write_durable(self._meta_path(action_id), json.dumps(meta, indent=2).encode("utf-8"))
        except OSError as e:
            raise SnapshotFailed(f"Cannot store snapshot for {action_id}: {e}") from e

    def get(self, action_id: str) -> Snapshot | None:
        """Load a snapshot, or None if the action never reached the snapshot stage."""
        meta_path = self._meta_path(action_id)
        if not meta_path.exists():
            return None
        return self._load(meta_path)

    def snapshots(self, skip_unreadable: bool = False) -> list[Snapshot]:
        """All snapshots in the store, in run order.

        Args:
            skip_unreadable: Log and skip snapshots that fail to load instead
                of raising SnapshotFailed.
        """
        if not self.snapshot_dir.is_dir():
            return []
        loaded = []
        for path in self.snapshot_dir.glob("*.json"):
            try:
                loaded.append(self._load(path))
            except SnapshotFailed as e:
                if not skip_unreadable:
                    raise
                logger.error("Skipping snapshot: %s", e)
        return sorted(loaded, key=lambda snap: snap.seq)

    def backed_up_files(self) -> list[str]:
        """Relative paths of every file copy in the backup tree."""
        if not self.backup_dir.is_dir():
            return []
        return sorted(
            str(path.relative_to(self.backup_dir)) for path in self.backup_dir.rglob("*") if path.is_file()
        )

    def _load(self, meta_path: Path) -> Snapshot:
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise SnapshotFailed(f"Snapshot {meta_path.name} is unreadable: {e}") from e

        content = None
        if meta.get("content_path"):
            content_file = self.run_dir / meta["content_path"]
            try:
                content = content_file.read_bytes()
            except OSError as e:
                raise SnapshotFailed(f"Backup copy {content_file} is unreadable: {e}") from e
            if hashlib.sha256(content).hexdigest() != meta.get("content_sha256"):
                raise SnapshotFailed(f"Backup copy {content_file} does not match its checksum")

        return Snapshot.from_dict(meta, content=content)
