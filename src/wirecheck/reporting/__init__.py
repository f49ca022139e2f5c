"""Reporter registry and built-in reporters."""
from __future__ import annotations

from typing import Any, Callable, Dict, List

from .base import ReportManager, Reporter
from .console import ConsoleReporter
from .json_reporter import JsonReporter
from .junit import JunitReporter
from .tap import TapReporter

ReporterFactory = Callable[..., Reporter]

_FACTORIES: Dict[str, ReporterFactory] = {
    "console": ConsoleReporter,
    "json": JsonReporter,
    "tap": TapReporter,
    "junit": JunitReporter,
}


def register_reporter(name: str, factory: ReporterFactory) -> None:
    """Make a reporter available to ``--format``; plugins call this from ``register()``."""

    if name in _FACTORIES:
        raise ValueError(f"Reporter '{name}' already registered")
    _FACTORIES[name] = factory


def create_reporter(name: str, **options: Any) -> Reporter:
    try:
        factory = _FACTORIES[name]
    except KeyError as exc:
        raise ValueError(f"Unknown reporter '{name}'. Available: {', '.join(available_reporters())}") from exc
    return factory(**options)


def available_reporters() -> List[str]:
    return sorted(_FACTORIES)


__all__ = [
    "ConsoleReporter",
    "JsonReporter",
    "JunitReporter",
    "ReportManager",
    "Reporter",
    "TapReporter",
    "available_reporters",
    "create_reporter",
    "register_reporter",
]
