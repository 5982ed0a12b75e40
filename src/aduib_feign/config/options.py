"""Per-client timeout options and their refreshable, named variant."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

__all__ = [
    "DEFAULT_CONNECT_TIMEOUT_MS",
    "DEFAULT_READ_TIMEOUT_MS",
    "OPTIONS_NAME_PREFIX",
    "Options",
    "OptionsCell",
    "OptionsRegistry",
    "options_name",
]

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_MS = 10_000
DEFAULT_READ_TIMEOUT_MS = 60_000
OPTIONS_NAME_PREFIX = "aduib_feign.Options"


def options_name(context_id: str) -> str:
    return f"{OPTIONS_NAME_PREFIX}-{context_id}"


@dataclass(frozen=True, slots=True)
class Options:
    """Connect/read timeouts and redirect policy, always replaced as a whole."""

    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS
    follow_redirects: bool = True

    def __post_init__(self) -> None:
        if self.connect_timeout_ms < 0:
            raise ValueError("connect_timeout_ms must be >= 0")
        if self.read_timeout_ms < 0:
            raise ValueError("read_timeout_ms must be >= 0")

    @property
    def connect_timeout(self) -> float:
        return self.connect_timeout_ms / 1000.0

    @property
    def read_timeout(self) -> float:
        return self.read_timeout_ms / 1000.0


class OptionsCell:
    """A named, versioned holder of the current ``Options`` value."""

    def __init__(self, name: str, initial: Options | None = None) -> None:
        self.name = name
        self._value = initial or Options()
        self._version = 1
        self._lock = threading.Lock()

    def get(self) -> Options:
        return self._value

    @property
    def version(self) -> int:
        return self._version

    def replace(self, value: Options) -> int:
        with self._lock:
            self._value = value
            self._version += 1
            return self._version


class OptionsRegistry:
    """Named options cells shared by every client of a context."""

    def __init__(self) -> None:
        self._cells: dict[str, OptionsCell] = {}
        self._lock = threading.Lock()

    def register(self, name: str, initial: Options | None = None) -> OptionsCell:
        with self._lock:
            cell = self._cells.get(name)
            if cell is None:
                cell = OptionsCell(name, initial)
                self._cells[name] = cell
            return cell

    def get(self, name: str) -> OptionsCell | None:
        return self._cells.get(name)

    def remove(self, name: str) -> OptionsCell | None:
        with self._lock:
            return self._cells.pop(name, None)

    def current(self, name: str) -> Options:
        cell = self._cells.get(name)
        if cell is None:
            raise KeyError(f"No options registered under '{name}'")
        return cell.get()

    def refresh(self, name: str, value: Options) -> int:
        cell = self.get(name)
        if cell is None:
            cell = self.register(name, value)
            return cell.version
        version = cell.replace(value)
        logger.info("Refreshed options %s to version %d: %s", name, version, value)
        return version

    def names(self) -> list[str]:
        return list(self._cells)
