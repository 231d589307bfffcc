"""Write File Action - replace a configuration file with declared content.

CONTRACT:
- snapshot: original bytes, existence, mode, owner, parent dirs created
- rollback_support: True
- reload: optional command run after write and after restore
"""

import hashlib

from perftune.actions.base import ActionHandler
from perftune.errors import ActionError, MutationFailed
from perftune.model.action import Action, ActionKind
from perftune.model.snapshot import Snapshot


class WriteFileHandler(ActionHandler):
    """Write a file atomically with the given mode."""

    kind = ActionKind.WRITE_FILE

    @staticmethod
    def _desired(action: Action) -> tuple[bytes, int]:
        return action.params["content"].encode("utf-8"), int(action.params.get("mode", 0o644))

    def is_satisfied(self, action: Action) -> bool:
        content, mode = self._desired(action)
        st = self.host.stat(action.target)
        if st is None:
            return False
        return st.mode == mode and self.host.read_bytes(action.target) == content

    def capture(self, action: Action) -> tuple[dict, bytes | None]:
        data = self.host.read_bytes(action.target)
        st = self.host.stat(action.target)
        if data is None or st is None:
            return {
                "existed": False,
                "created_dirs": self.host.missing_parents(action.target),
            }, None

        return {
            "existed": True,
            "mode": st.mode,
            "uid": st.uid,
            "gid": st.gid,
            "size": len(data),
            "sha256": hashlib.sha256(data).hexdigest(),
            "created_dirs": [],
        }, data

    def mutate(self, action: Action, snapshot: Snapshot) -> list[str]:
        content, mode = self._desired(action)
        for directory in snapshot.state.get("created_dirs", []):
            self.host.make_dir(directory)

        self.host.write_bytes(action.target, content, mode)

        # Keep the original owner, as an in-place rewrite would
        if snapshot.state.get("existed"):
            self._restore_owner(action.target, snapshot.state)

        return self._reload(action)

    def verify(self, action: Action) -> bool:
        return self.is_satisfied(action)

    def restore(self, action: Action, snapshot: Snapshot) -> list[str]:
        state = snapshot.state
        if state.get("existed"):
            if snapshot.content is None:
                raise MutationFailed(f"Backup content for {action.target} is missing")
            self.host.write_bytes(action.target, snapshot.content, int(state["mode"]))
            self._restore_owner(action.target, state)

            restored = self.host.read_bytes(action.target) or b""
            if hashlib.sha256(restored).hexdigest() != state.get("sha256"):
                raise MutationFailed(f"{action.target} does not match its backup after restore")
        else:
            self.host.remove(action.target)
            # Deepest first; leave directories something else has written into
            for directory in reversed(state.get("created_dirs", [])):
                self.host.remove_dir(directory)

        return self._reload(action)

    def describe_inverse(self, action: Action, snapshot: Snapshot) -> str | None:
        state = snapshot.state
        if state.get("existed"):
            return f"restore {action.target} from backup ({state.get('size', 0)} bytes, mode {int(state['mode']):04o})"
        created = state.get("created_dirs") or []
        suffix = f" and empty directories {', '.join(created)}" if created else ""
        return f"delete {action.target}{suffix}"

    def _restore_owner(self, path: str, state: dict) -> None:
        st = self.host.stat(path)
        if st is not None and (st.uid, st.gid) != (state["uid"], state["gid"]):
            self.host.chown(path, state["uid"], state["gid"])

    def _reload(self, action: Action) -> list[str]:
        reload = action.params.get("reload")
        if not reload:
            return []
        try:
            result = self.host.run(reload, timeout=self.timeout)
        except ActionError as e:
            return [f"reload '{' '.join(reload)}' failed: {e}"]
        if not result.success:
            return [f"reload '{' '.join(reload)}' exited {result.exit_code}: {result.output}"]
        return []
