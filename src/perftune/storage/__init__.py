"""Storage package - per-run backup store, manifests and the run registry."""

from perftune.storage.backup import BackupStore
from perftune.storage.manifest import ManifestWriter, load_manifest
from perftune.storage.runs import RunPaths, RunRegistry, RunSummary

__all__ = [
    "BackupStore",
    "ManifestWriter",
    "RunPaths",
    "RunRegistry",
    "RunSummary",
    "load_manifest",
]
