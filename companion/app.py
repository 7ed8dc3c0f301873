from __future__ import annotations

import logging
import random

from fastapi import FastAPI

from companion import storage
from companion.config import Settings, load_settings
from companion.gateway import Gateway, HttpGateway
from companion.persona import PersonaResponder
from companion.routes import router
from companion.scheduler import Scheduler
from companion.session import Companion

logger = logging.getLogger(__name__)


def build_gateway(settings: Settings) -> HttpGateway:
    return HttpGateway(
        base_url=settings.api_url,
        api_key=settings.api_key,
        text_model=settings.text_model,
        image_model=settings.image_model,
        audio_model=settings.audio_model,
        timeout=settings.timeout,
    )


def build_companion(
    settings: Settings,
    gateway: Gateway | None = None,
    rng: random.Random | None = None,
) -> Companion:
    store = storage.init_store(settings.data_dir)
    return Companion.load(
        store=store,
        gateway=gateway or build_gateway(settings),
        table=settings.table(),
        scheduler=Scheduler(pre_delay=settings.pre_delay, post_delay=settings.post_delay),
        responder=PersonaResponder(rng=rng),
        image_seed=settings.image_seed,
    )


def create_app(
    settings: Settings | None = None,
    gateway: Gateway | None = None,
    rng: random.Random | None = None,
) -> FastAPI:
    resolved = settings or load_settings()
    app = FastAPI(title="Companion")
    app.state.settings = resolved
    app.state.companion = build_companion(resolved, gateway, rng)
    app.include_router(router, prefix="/api")
    logger.info("app ready data_dir=%s tier_table=%s", resolved.data_dir, resolved.tier_table)
    return app
