"""Unit tests for settings loading."""

import pytest

from pastestore.config import Settings


def test_overrides_apply_per_instance():
    custom = Settings(TEST_MODE=True, ID_LENGTH=16)

    assert custom.TEST_MODE is True
    assert custom.ID_LENGTH == 16
    assert Settings().ID_LENGTH == Settings.ID_LENGTH


def test_unknown_override_rejected():
    with pytest.raises(AttributeError, match='REDIS_HOST'):
        Settings(REDIS_HOST='localhost')
