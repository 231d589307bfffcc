"""Configuration management for perftune settings and SSH host profiles."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import keyring
import yaml
from keyring.errors import KeyringError

from perftune.connector.ssh import SSHConfig
from perftune.errors import ConfigError

logger = logging.getLogger(__name__)

SYSTEM_STATE_DIR = Path("/var/lib/perftune/runs")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class Settings:
    """Values from settings.yaml after environment overrides."""

    state_dir: Path
    default_timeout: float = 30.0
    keep_runs: int = 20
    log_level: str = "WARNING"


class ConfigManager:
    """Manages settings and server profiles stored in YAML format with secure keyring for passwords."""

    def __init__(self, config_dir: Path | None = None) -> None:
        if config_dir is None:
            # Check for environment variable override
            env_config = os.getenv("PERFTUNE_CONFIG")
            if env_config:
                config_dir = Path(env_config).expanduser().resolve()
            else:
                config_dir = Path.home() / ".perftune"

        self.config_dir = Path(config_dir)
        self.settings_file = self.config_dir / "settings.yaml"
        self.profiles_file = self.config_dir / "profiles.yaml"
        self.service_id = "perftune"

    def _read_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping")
        return data

    def default_state_dir(self) -> Path:
        """Root keeps runs system-wide, everyone else under the config dir."""
        if os.geteuid() == 0:
            return SYSTEM_STATE_DIR
        return self.config_dir / "runs"

    def load_settings(self) -> Settings:
        """Load settings.yaml, applying PERFTUNE_STATE_DIR on top."""
        data = self._read_yaml(self.settings_file)
        unknown = set(data) - {"state_dir", "default_timeout", "keep_runs", "log_level"}
        if unknown:
            raise ConfigError(f"Unknown settings in {self.settings_file}: {', '.join(sorted(unknown))}")

        state_dir = os.getenv("PERFTUNE_STATE_DIR") or data.get("state_dir")
        try:
            settings = Settings(
                state_dir=Path(state_dir).expanduser() if state_dir else self.default_state_dir(),
                default_timeout=float(data.get("default_timeout", 30.0)),
                keep_runs=int(data.get("keep_runs", 20)),
                log_level=str(data.get("log_level", "WARNING")).upper(),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value in {self.settings_file}: {e}") from e

        if settings.default_timeout <= 0:
            raise ConfigError("default_timeout must be positive")
        if settings.keep_runs < 0:
            raise ConfigError("keep_runs must be >= 0")
        if settings.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return settings

    def _load_profiles(self) -> dict[str, Any]:
        """Load all profiles from the YAML file."""
        return self._read_yaml(self.profiles_file)

    def _save_profiles(self, profiles: dict[str, Any]) -> None:
        """Save profiles to the YAML file with proper permissions."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.profiles_file.touch(mode=0o600)
        os.chmod(self.profiles_file, 0o600)
        with open(self.profiles_file, "w") as f:
            yaml.safe_dump(profiles, f)

    def add_profile(self, name: str, config: SSHConfig) -> None:
        """Add or update a server profile."""
        profiles = self._load_profiles()

        # Handle password via keyring
        password_ref = None
        if config.password:
            try:
                keyring.set_password(self.service_id, name, config.password)
                password_ref = "__keyring__"
            except KeyringError as e:
                # Headless systems often have no keyring backend
                logger.warning("Keyring unavailable (%s); storing password for %s in %s", e, name, self.profiles_file)
                password_ref = config.password

        profiles[name] = {
            "host": config.host,
            "user": config.user,
            "port": config.port,
            "key_path": config.key_path,
            "use_sudo": config.use_sudo,
            "password": password_ref,
        }
        self._save_profiles(profiles)

    def get_profile(self, name: str) -> SSHConfig | None:
        """Get an SSHConfig by profile name."""
        data = self._load_profiles().get(name)
        if not data:
            return None

        password = data.get("password")
        if password == "__keyring__":
            try:
                password = keyring.get_password(self.service_id, name)
            except KeyringError as e:
                logger.warning("Cannot read password for %s from keyring: %s", name, e)
                password = None

        return SSHConfig(
            host=data["host"],
            user=data.get("user", "root"),
            port=data.get("port", 22),
            key_path=data.get("key_path"),
            use_sudo=data.get("use_sudo", True),
            password=password,
        )

    def list_profiles(self) -> dict[str, Any]:
        """List all available profiles."""
        return self._load_profiles()

    def remove_profile(self, name: str) -> bool:
        """Remove a server profile."""
        profiles = self._load_profiles()
        if name not in profiles:
            return False

        if profiles[name].get("password") == "__keyring__":
            try:
                keyring.delete_password(self.service_id, name)
            except KeyringError as e:
                logger.warning("Cannot remove password for %s from keyring: %s", name, e)

        del profiles[name]
        self._save_profiles(profiles)
        return True
