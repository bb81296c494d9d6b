"""Unified configuration loaded from .wayfarer.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".wayfarer.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
    Path.home() / ".config" / "wayfarer",
]


class ApiSectionConfig(BaseModel):
    """[api] section."""

    base_url: str = "http://localhost:8080"
    auth_url: str = "http://localhost:8082/api/auth"
    timeout: float = 10.0
    upload_timeout: float = 60.0


class SessionSectionConfig(BaseModel):
    """[session] section."""

    path: str = "~/.config/wayfarer/session.json"

    @property
    def resolved_path(self) -> Path:
        return Path(self.path).expanduser()


class PostcardSectionConfig(BaseModel):
    """[postcards] section."""

    reset_delay_seconds: float = 3.0


class ExploreSectionConfig(BaseModel):
    """[explore] section."""

    recent_journals: int = 2


class WayfarerConfig(BaseModel):
    """Top-level configuration for the wayfarer client."""

    api: ApiSectionConfig = Field(default_factory=ApiSectionConfig)
    session: SessionSectionConfig = Field(default_factory=SessionSectionConfig)
    postcards: PostcardSectionConfig = Field(default_factory=PostcardSectionConfig)
    explore: ExploreSectionConfig = Field(default_factory=ExploreSectionConfig)

    def to_backend_config(self) -> object:
        """Convert to BackendConfig for the backend client."""
        from wayfarer.integrations.backend import BackendConfig

        return BackendConfig(
            base_url=self.api.base_url,
            auth_url=self.api.auth_url,
            timeout=self.api.timeout,
            upload_timeout=self.api.upload_timeout,
        )


def load_config(path: str | Path | None = None) -> WayfarerConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .wayfarer.toml in CWD
    3. ~/.config/wayfarer/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged WayfarerConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        global_config = Path.home() / ".config" / "wayfarer" / "config.toml"
        if not data and global_config.exists():
            data = _load_toml(global_config)
            logger.info("Loaded config from %s", global_config)

    config = WayfarerConfig.model_validate(data) if data else WayfarerConfig()

    return _apply_env_vars(config)


def merge_cli_overrides(config: WayfarerConfig, **cli_kwargs: object) -> WayfarerConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).

    Args:
        config: Base config.
        **cli_kwargs: CLI flag values, e.g. ``api_url``, ``session_file``.

    Returns:
        Updated config with CLI overrides applied.
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "api_url": ("api", "base_url"),
        "auth_url": ("api", "auth_url"),
        "timeout": ("api", "timeout"),
        "session_file": ("session", "path"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return WayfarerConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: WayfarerConfig) -> WayfarerConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "WAYFARER_API_URL": ("api", "base_url"),
        "WAYFARER_AUTH_URL": ("api", "auth_url"),
        "WAYFARER_SESSION_FILE": ("session", "path"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    timeout_raw = os.environ.get("WAYFARER_TIMEOUT")
    if timeout_raw is not None:
        try:
            data["api"]["timeout"] = float(timeout_raw)
        except ValueError:
            logger.warning("Ignoring non-numeric WAYFARER_TIMEOUT=%r", timeout_raw)

    return WayfarerConfig.model_validate(data)
