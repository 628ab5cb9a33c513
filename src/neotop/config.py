"""Runtime configuration for neotop."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

from neotop.errors import ConfigError

logger = logging.getLogger(__name__)

REFRESH_RATE_OPTIONS: tuple[int, ...] = (1000, 2000, 5000, 10000, 30000)
ITEMS_PER_PAGE_OPTIONS: tuple[int, ...] = (15, 25, 50, 100, 250, 500)
STATUS_FILTER_OPTIONS: tuple[str, ...] = ("all", "running", "sleeping", "idle", "unknown")


@dataclass(slots=True, frozen=True)
class AppConfig:
    """Behaviour settings consumed by the process table."""

    refresh_rate_ms: int = 1000
    items_per_page: int = 15
    default_status_filter: str = "all"

    def __post_init__(self) -> None:
        if self.refresh_rate_ms not in REFRESH_RATE_OPTIONS:
            raise ConfigError(
                f"refresh_rate_ms must be one of {REFRESH_RATE_OPTIONS}, got {self.refresh_rate_ms!r}"
            )
        if self.items_per_page not in ITEMS_PER_PAGE_OPTIONS:
            raise ConfigError(
                f"items_per_page must be one of {ITEMS_PER_PAGE_OPTIONS}, got {self.items_per_page!r}"
            )
        if self.default_status_filter not in STATUS_FILTER_OPTIONS:
            raise ConfigError(
                f"default_status_filter must be one of {STATUS_FILTER_OPTIONS}, "
                f"got {self.default_status_filter!r}"
            )

    @property
    def refresh_interval(self) -> float:
        """Refresh rate in seconds."""
        return self.refresh_rate_ms / 1000

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "AppConfig":
        """
        Build a config from a partial mapping, keeping defaults for missing keys.

        Unknown keys are logged and ignored.

        Raises:
            ConfigError: If a known key holds a value outside its allowed set.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        return cls(**{key: value for key, value in mapping.items() if key in known})

    def replace(self, **changes: Any) -> "AppConfig":
        """Return a copy with the given fields changed (validated)."""
        return replace(self, **changes)


def configure_logging(log_file: str | None = None, level: int | str = logging.INFO) -> None:
    """
    Attach a file handler to the ``neotop`` logger.

    A terminal UI owns stdout/stderr, so records only go to a file. Does nothing
    when no file is given or a handler is already attached.
    """
    root = logging.getLogger("neotop")
    root.setLevel(level)
    if log_file is None or root.handlers:
        return

    handler = logging.FileHandler(log_file)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root.addHandler(handler)
