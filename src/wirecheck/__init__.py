"""wirecheck package initialization.

Plugins are plain modules named in the comma-separated ``WIRECHECK_PLUGINS``
environment variable. Each one may expose a ``register()`` callable, run once
by ``bootstrap()``, that adds report formats through
``wirecheck.reporting.register_reporter``; the CLI then accepts those names
for ``--format``.
"""
from __future__ import annotations

import importlib
import os

from .version import __version__

__all__ = [
    "__version__",
    "bootstrap",
]

_BOOTSTRAPPED = False


def bootstrap() -> None:
    """Initialize wirecheck plugins (idempotent)."""

    global _BOOTSTRAPPED
    if _BOOTSTRAPPED:
        return
    _load_plugins()
    _BOOTSTRAPPED = True


def _load_plugins() -> None:
    plugin_env = os.environ.get("WIRECHECK_PLUGINS")
    if not plugin_env:
        return
    for item in plugin_env.split(","):
        module_name = item.strip()
        if not module_name:
            continue
        module = importlib.import_module(module_name)
        register = getattr(module, "register", None)
        if callable(register):
            register()
