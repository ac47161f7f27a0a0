"""
Framework-wide settings.

Process-wide defaults are stored behind a lock; ``settings_context()`` overrides
them for the current context using contextvars, so nested overrides and
concurrent threads/tasks do not leak into each other.

Usage:
    from paramkit.settings import settings_context, get_settings

    with settings_context(detect_cycles=False):
        assert get_settings().detect_cycles is False
"""

import contextvars
import dataclasses
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    """Behaviour switches shared by every BaseObject."""
    step_parameter: str = "current_iteration"  # consulted by BaseObject.get_step()
    default_step: int = -1
    check_serialization_hooks: bool = True
    detect_cycles: bool = True
    strict_observers: bool = True


_lock = threading.Lock()
_global_settings = Settings()

# Innermost settings_context() override, None when no override is active
_current_settings: contextvars.ContextVar = contextvars.ContextVar('paramkit_settings', default=None)


def get_settings() -> Settings:
    """Return the settings in effect for the current context."""
    override = _current_settings.get()
    if override is not None:
        return override
    with _lock:
        return _global_settings


def set_settings(settings: Settings = None, **changes) -> Settings:
    """Replace process-wide settings.

    Args:
        settings: Complete Settings instance to install (optional)
        **changes: Individual fields to change on top of the current defaults

    Returns:
        The installed Settings
    """
    global _global_settings
    with _lock:
        base = settings if settings is not None else _global_settings
        _global_settings = dataclasses.replace(base, **changes)
        logger.debug(f"Installed settings: {_global_settings}")
        return _global_settings


def reset_settings() -> Settings:
    """Restore process-wide defaults. For testing only."""
    global _global_settings
    with _lock:
        _global_settings = Settings()
        return _global_settings


@contextmanager
def settings_context(**changes):
    """Override settings for the duration of a ``with`` block."""
    token = _current_settings.set(dataclasses.replace(get_settings(), **changes))
    try:
        yield _current_settings.get()
    finally:
        _current_settings.reset(token)
