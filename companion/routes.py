"""FastAPI API endpoints under /api.

Endpoint groups: health, status, chat (send / history / clear / greeting),
memories, gallery (list / generate), speech, settings, stats and reset.
All of them operate on the Companion stored in app.state.companion.
"""

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from companion.gateway import RemoteCallFailed
from companion.scheduler import QueueCleared
from companion.session import Companion

router = APIRouter()


# ── Request bodies ───────────────────────────────────────


class ChatBody(BaseModel):
    message: str
    show_thoughts: bool | None = None


class ImageBody(BaseModel):
    prompt: str
    seed: int | None = None


class SpeechBody(BaseModel):
    text: str
    voice: str = "default"


class UpdateSettings(BaseModel):
    show_thoughts: bool | None = None
    mood: int | None = Field(default=None, description="Clamped into [0, 100]")


def _companion(request: Request) -> Companion:
    return request.app.state.companion


# ── Health / status ──────────────────────────────────────


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/health/remote")
async def remote_health(request: Request):
    """Whether the model backend answers. Queued behind pending remote calls."""
    try:
        online = await _companion(request).check_remote()
    except QueueCleared:
        raise HTTPException(409, "Request was cancelled")
    return {"online": online}


@router.get("/status")
async def status(request: Request):
    """Mood, tier, header status line and queue state."""
    return _companion(request).status()


@router.get("/stats")
async def stats(request: Request):
    """Record counts per table."""
    return _companion(request).stats()


# ── Chat ─────────────────────────────────────────────────


@router.post("/chat")
async def chat(request: Request, body: ChatBody):
    """Send a user message and return the whole turn."""
    message = body.message.strip()
    if not message:
        raise HTTPException(400, "Message is empty")
    turn = await _companion(request).send_message(message, want_thoughts=body.show_thoughts)
    return turn.model_dump(mode="json")


@router.get("/messages")
async def get_messages(
    request: Request,
    limit: int = Query(50, ge=0),
    offset: int = Query(0, ge=0),
):
    """Chat history, newest first."""
    messages = _companion(request).recent_messages(limit, offset)
    return [m.model_dump(mode="json") for m in messages]


@router.delete("/messages")
async def clear_messages(request: Request):
    """Clear the conversation and reset the persona."""
    _companion(request).clear_chat()
    return {"ok": True}


@router.post("/greeting")
async def greeting(request: Request):
    """Store and return a greeting for the current tier."""
    return _companion(request).greet().model_dump(mode="json")


# ── Memories / gallery / speech ──────────────────────────


@router.get("/memories")
async def get_memories(request: Request, limit: int = Query(50, ge=0)):
    """Sampled memories, newest first."""
    return [m.model_dump(mode="json") for m in _companion(request).recent_memories(limit)]


@router.get("/gallery")
async def get_gallery(request: Request, limit: int = Query(100, ge=0)):
    """Generated images, newest first."""
    return [g.model_dump(mode="json") for g in _companion(request).gallery(limit)]


@router.post("/images")
async def create_image(request: Request, body: ImageBody):
    """Generate an image and add it to the gallery."""
    try:
        item = await _companion(request).generate_image(body.prompt, seed=body.seed)
    except RemoteCallFailed as e:
        raise HTTPException(502, str(e))
    except QueueCleared:
        raise HTTPException(409, "Request was cancelled")
    return item.model_dump(mode="json")


@router.post("/speech")
async def speech(request: Request, body: SpeechBody):
    """Synthesize speech for `text`."""
    try:
        audio = await _companion(request).speak(body.text, voice=body.voice)
    except RemoteCallFailed as e:
        raise HTTPException(502, str(e))
    except QueueCleared:
        raise HTTPException(409, "Request was cancelled")
    return Response(content=audio.data, media_type=audio.content_type)


# ── Settings / reset ─────────────────────────────────────


@router.patch("/settings")
async def update_settings(request: Request, body: UpdateSettings):
    """Toggle thoughts or force the mood (clamped)."""
    companion = _companion(request)
    if body.show_thoughts is not None:
        companion.set_show_thoughts(body.show_thoughts)
    if body.mood is not None:
        companion.set_mood(body.mood)
    return companion.status()


@router.post("/reset")
async def reset(request: Request):
    """Delete all messages, memories, gallery items and preferences."""
    _companion(request).hard_reset()
    return {"ok": True}
