"""Settings validation — bad pool constants fail at construction."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from coinbeat.config import Settings


def test_defaults():
    settings = Settings()
    assert settings.pool_size == 6
    assert settings.stake_cost == 2
    assert settings.reward_multiplier == 2
    assert settings.verified_display_days == 30


def test_pool_size_from_env(monkeypatch):
    monkeypatch.setenv("COINBEAT_POOL_SIZE", "20")
    assert Settings().pool_size == 20


@pytest.mark.parametrize("field", ["pool_size", "stake_cost", "reward_multiplier", "verified_display_days"])
def test_non_positive_values_rejected(field):
    with pytest.raises(ValidationError):
        Settings(**{field: 0})


def test_negative_starting_eggs_rejected():
    with pytest.raises(ValidationError):
        Settings(starting_eggs=-1)
