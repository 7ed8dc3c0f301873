"""Runtime settings read from the environment (and a .env file, if present).

Variables (all optional):

    COMPANION_API_URL       base URL of the hosted model API
    COMPANION_API_KEY       bearer token
    COMPANION_TEXT_MODEL    model id for chat replies
    COMPANION_IMAGE_MODEL   model id for images
    COMPANION_AUDIO_MODEL   model id for speech
    COMPANION_DATA_DIR      storage directory (default ./data)
    COMPANION_TIER_TABLE    "four-tier" (default) or "three-tier"
    COMPANION_PRE_DELAY     seconds before each queued call (default 0.1)
    COMPANION_POST_DELAY    seconds after each queued call (default 0.2)
    COMPANION_TIMEOUT       HTTP timeout in seconds (default 120)
    COMPANION_IMAGE_SEED    fixed image seed (default 778822)
    COMPANION_LOG_LEVEL     logging level name (default INFO)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from companion.mood import TierTable, get_tier_table

ROOT = Path(__file__).parent.parent
DEFAULT_DATA_DIR = ROOT / "data"

_ENV_PREFIX = "COMPANION_"
_FIELDS = {
    "API_URL": "api_url",
    "API_KEY": "api_key",
    "TEXT_MODEL": "text_model",
    "IMAGE_MODEL": "image_model",
    "AUDIO_MODEL": "audio_model",
    "DATA_DIR": "data_dir",
    "TIER_TABLE": "tier_table",
    "PRE_DELAY": "pre_delay",
    "POST_DELAY": "post_delay",
    "TIMEOUT": "timeout",
    "IMAGE_SEED": "image_seed",
    "LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    api_url: str = "https://api.bytez.ai/v1"
    api_key: str = ""
    text_model: str = "NousResearch/Hermes-2-Pro-Llama-3-8B"
    image_model: str = "runwayml/stable-diffusion-v1-5"
    audio_model: str = "suno/bark-small"
    data_dir: Path = DEFAULT_DATA_DIR
    tier_table: Literal["three-tier", "four-tier"] = "four-tier"
    pre_delay: float = Field(default=0.1, ge=0)
    post_delay: float = Field(default=0.2, ge=0)
    timeout: float = Field(default=120.0, gt=0)
    image_seed: int = 778822
    log_level: str = "INFO"

    def table(self) -> TierTable:
        return get_tier_table(self.tier_table)


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from `env` (default: os.environ after loading .env).

    Unset or empty variables fall back to the defaults.
    """
    if env is None:
        load_dotenv(ROOT / ".env")
        env = os.environ
    values = {}
    for suffix, field in _FIELDS.items():
        raw = env.get(_ENV_PREFIX + suffix, "")
        if raw != "":
            values[field] = raw
    return Settings.model_validate(values)
