"""Tests for environment-driven settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from companion.config import DEFAULT_DATA_DIR, Settings, load_settings
from companion.mood import FOUR_TIER, THREE_TIER


def test_defaults_when_env_empty():
    settings = load_settings({})
    assert settings == Settings()
    assert settings.data_dir == DEFAULT_DATA_DIR
    assert settings.pre_delay == 0.1
    assert settings.post_delay == 0.2
    assert settings.image_seed == 778822
    assert settings.table() is FOUR_TIER


def test_reads_prefixed_variables():
    settings = load_settings({
        "COMPANION_API_URL": "http://localhost:8080/v1",
        "COMPANION_API_KEY": "secret",
        "COMPANION_DATA_DIR": "/tmp/companion",
        "COMPANION_TIER_TABLE": "three-tier",
        "COMPANION_PRE_DELAY": "0",
        "COMPANION_POST_DELAY": "0.5",
        "COMPANION_IMAGE_SEED": "42",
    })
    assert settings.api_url == "http://localhost:8080/v1"
    assert settings.api_key == "secret"
    assert settings.data_dir == Path("/tmp/companion")
    assert settings.table() is THREE_TIER
    assert settings.pre_delay == 0
    assert settings.post_delay == 0.5
    assert settings.image_seed == 42


def test_empty_values_fall_back():
    settings = load_settings({"COMPANION_TEXT_MODEL": "", "COMPANION_TIMEOUT": ""})
    assert settings.text_model == Settings().text_model
    assert settings.timeout == 120.0


def test_unprefixed_variables_ignored():
    assert load_settings({"API_KEY": "nope"}).api_key == ""


def test_unknown_tier_table_rejected():
    with pytest.raises(ValidationError):
        load_settings({"COMPANION_TIER_TABLE": "five-tier"})


def test_negative_delay_rejected():
    with pytest.raises(ValidationError):
        load_settings({"COMPANION_POST_DELAY": "-1"})
