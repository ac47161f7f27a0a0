"""Tests for process-wide and scoped settings."""
import dataclasses
import threading

import pytest

from paramkit import Settings, get_settings, reset_settings, set_settings, settings_context

from sample_objects import Link


class TestSettings:
    """Test the settings store."""

    def test_defaults(self):
        """Defaults match the documented values."""
        settings = get_settings()
        assert settings == Settings()
        assert settings.step_parameter == 'current_iteration'
        assert settings.default_step == -1
        assert settings.check_serialization_hooks
        assert settings.detect_cycles
        assert settings.strict_observers

    def test_set_and_reset(self):
        """set_settings() changes fields; reset_settings() restores defaults."""
        installed = set_settings(default_step=0)
        assert installed.default_step == 0
        assert get_settings().default_step == 0
        reset_settings()
        assert get_settings().default_step == -1

    def test_set_full_instance(self):
        """A complete Settings instance can be installed."""
        set_settings(Settings(strict_observers=False))
        assert not get_settings().strict_observers

    def test_settings_are_frozen(self):
        """Settings cannot be mutated in place."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            get_settings().default_step = 3

    def test_context_override_nests(self):
        """settings_context() overrides nest and restore on exit."""
        with settings_context(default_step=1):
            with settings_context(strict_observers=False) as inner:
                assert inner.default_step == 1
                assert not inner.strict_observers
            assert get_settings().strict_observers
        assert get_settings().default_step == -1

    def test_context_is_thread_local(self):
        """An override in one thread is invisible to others."""
        seen = []
        with settings_context(default_step=5):
            worker = threading.Thread(target=lambda: seen.append(get_settings().default_step))
            worker.start()
            worker.join()
        assert seen == [-1]

    def test_cycle_detection_switch(self):
        """Acyclic graphs compare the same with cycle detection off."""
        first, second = Link('a'), Link('b')
        first.put('next', second)
        with settings_context(detect_cycles=False):
            assert first.clone().equals(first)
            assert first.hash() == first.clone().hash()
