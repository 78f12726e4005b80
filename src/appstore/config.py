"""
Registry configuration.

Settings live in ~/.config/zos/appstore.json; every key is optional and
falls back to the defaults below.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Dict, Any

from common.exceptions import InvalidConfigError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "zos"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "appstore.json"
DEFAULT_STATE_PATH = CONFIG_DIR / "installed-apps.json"

MAX_PER_PAGE = 100


@dataclass
class RegistryConfig:
    """Where to discover apps and where to keep installed state."""
    organization: str = "z-os4"
    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"
    branch: str = "main"
    descriptor_path: str = "package.json"
    marker_key: str = "zos"

    per_page: int = MAX_PER_PAGE
    max_pages: int = 10
    timeout: float = 15.0
    skip_archived: bool = True

    state_path: Path = field(default_factory=lambda: DEFAULT_STATE_PATH)
    token: Optional[str] = None

    # Upper bound for a single install/update, None waits forever
    operation_timeout: Optional[float] = None

    def __post_init__(self):
        self.state_path = Path(self.state_path).expanduser()
        self.validate()

    def validate(self) -> None:
        """
        Check field types and ranges.

        Raises:
            InvalidConfigError: on the first bad field
        """
        for name in ("organization", "api_url", "raw_url", "branch",
                     "descriptor_path", "marker_key"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise InvalidConfigError(name, value, "must be a non-empty string")

        if isinstance(self.per_page, bool) or not isinstance(self.per_page, int) \
                or not 1 <= self.per_page <= MAX_PER_PAGE:
            raise InvalidConfigError(
                "per_page", self.per_page, f"must be between 1 and {MAX_PER_PAGE}"
            )
        if isinstance(self.max_pages, bool) or not isinstance(self.max_pages, int) \
                or self.max_pages < 1:
            raise InvalidConfigError("max_pages", self.max_pages, "must be at least 1")
        if not isinstance(self.timeout, (int, float)) or self.timeout <= 0:
            raise InvalidConfigError("timeout", self.timeout, "must be positive")
        if self.operation_timeout is not None and (
            not isinstance(self.operation_timeout, (int, float))
            or self.operation_timeout <= 0
        ):
            raise InvalidConfigError(
                "operation_timeout", self.operation_timeout, "must be positive or null"
            )
        if not isinstance(self.skip_archived, bool):
            raise InvalidConfigError("skip_archived", self.skip_archived, "must be a boolean")

    @property
    def catalog_url(self) -> str:
        """Human-facing link to the organization."""
        return f"https://github.com/{self.organization}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (token masked)."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["state_path"] = str(self.state_path)
        if self.token:
            data["token"] = "***"
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        for key in data:
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
        return cls(**{k: v for k, v in data.items() if k in known})


def load_config(path: Optional[Path] = None) -> RegistryConfig:
    """
    Load registry configuration.

    Args:
        path: Config file (default ~/.config/zos/appstore.json)

    Returns:
        RegistryConfig; defaults when the file does not exist.

    Raises:
        InvalidConfigError: if the file is not valid JSON or holds bad values
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    data: Dict[str, Any] = {}

    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise InvalidConfigError("file", config_path, str(e))
        if not isinstance(data, dict):
            raise InvalidConfigError("file", config_path, "top level must be an object")
        logger.debug(f"Loaded config from {config_path}")

    config = RegistryConfig.from_dict(data)
    if not config.token:
        config.token = os.environ.get("GITHUB_TOKEN") or None
    return config
