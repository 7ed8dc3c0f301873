"""Remote model gateway — HTTP connection to the hosted model backend.

The companion injects a gateway callable matching the protocol:

    async def __call__(self, capability: Capability, payload: BaseModel) -> Result: ...

`capability` is one of "text", "image", "audio"; the payload is the
matching request model (TextRequest, ImageRequest, AudioRequest).

Two implementations are provided:

    HttpGateway — real HTTP client for an OpenAI-style hosted API
                  (chat completions, image generations, speech).
    EchoGateway — answers locally without a network call. Useful for
                  smoke-testing the wiring without credentials.

Any failure — connection, timeout, non-2xx status, any other transport
error, malformed body — is raised as RemoteCallFailed. `check_status()`
calls `GET {base}/models` and reports reachability as a bool instead.
Nothing here retries; every call goes through the Scheduler, which owns
pacing.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, Union

import httpx
from pydantic import BaseModel

from companion.models import (
    AudioRequest,
    AudioResult,
    Capability,
    ImageRequest,
    ImageResult,
    TextRequest,
    TextResult,
)

logger = logging.getLogger(__name__)

GatewayResult = Union[TextResult, ImageResult, AudioResult]


# ---------------------------------------------------------------------------
# Protocol: every gateway implementation must match this signature
# ---------------------------------------------------------------------------

class Gateway(Protocol):
    async def __call__(self, capability: Capability, payload: BaseModel) -> GatewayResult: ...

    async def check_status(self) -> bool: ...


# ---------------------------------------------------------------------------
# RemoteCallFailed: raised for all connection and protocol failures
# ---------------------------------------------------------------------------

class RemoteCallFailed(RuntimeError):
    """Raised when the backend cannot be reached or returns an error.

    Attributes:
        status: HTTP status code, when the backend answered at all.
        body:   Raw error body as returned by the backend.
    """

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


# ---------------------------------------------------------------------------
# HttpGateway: connects to the hosted backend
# ---------------------------------------------------------------------------

DEFAULT_TEXT_PARAMS: dict[str, Any] = {
    "temperature": 0.8,
    "max_tokens": 150,
    "top_p": 0.9,
    "frequency_penalty": 0.1,
    "presence_penalty": 0.1,
}
DEFAULT_IMAGE_SIZE = (512, 512)

_PAYLOAD_TYPES: dict[str, type[BaseModel]] = {
    "text": TextRequest,
    "image": ImageRequest,
    "audio": AudioRequest,
}


class HttpGateway:
    """Async HTTP client for the hosted model API.

    Endpoints:
      text   — POST {base}/chat/completions
               Response: {"choices": [{"message": {"content": "..."}}], "usage": {...}}
      image  — POST {base}/images/generations
               Response: {"data": [{"url": "..."}]}
      audio  — POST {base}/audio/speech
               Response: raw audio bytes

    Args:
        base_url:     Base URL of the API, e.g. "https://api.example.com/v1".
        api_key:      Bearer token, or empty string if not required.
        text_model:   Model id for the text capability.
        image_model:  Model id for the image capability.
        audio_model:  Model id for the audio capability.
        timeout:      HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        text_model: str = "",
        image_model: str = "",
        audio_model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._models: dict[str, str] = {
            "text": text_model,
            "image": image_model,
            "audio": audio_model,
        }
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _with_model(self, capability: str, body: dict[str, Any]) -> dict[str, Any]:
        if self._models.get(capability):
            body["model"] = self._models[capability]
        return body

    def _build_request(self, capability: Capability, payload: BaseModel) -> tuple[str, dict]:
        """Return (url, body) for the capability."""
        if capability in _PAYLOAD_TYPES and not isinstance(payload, _PAYLOAD_TYPES[capability]):
            raise TypeError(
                f"{capability} capability expects {_PAYLOAD_TYPES[capability].__name__}, "
                f"got {type(payload).__name__}"
            )

        if capability == "text":
            messages = [{"role": "system", "content": payload.system_prompt}]
            messages.extend(payload.history)
            messages.append({"role": "user", "content": payload.prompt})
            body = self._with_model("text", {"messages": messages, **DEFAULT_TEXT_PARAMS})
            return f"{self._base_url}/chat/completions", body

        if capability == "image":
            width, height = DEFAULT_IMAGE_SIZE
            body = self._with_model("image", {
                "prompt": payload.prompt,
                "n": 1,
                "size": f"{width}x{height}",
                "response_format": "url",
                "seed": payload.seed,
            })
            return f"{self._base_url}/images/generations", body

        if capability == "audio":
            body = self._with_model("audio", {
                "input": payload.text,
                "voice": payload.voice,
                "response_format": "mp3",
            })
            return f"{self._base_url}/audio/speech", body

        raise ValueError(f"Unknown capability {capability!r}")

    def _parse_response(self, capability: Capability, payload: BaseModel, resp: Any) -> GatewayResult:
        """Turn a successful response into the capability's result model."""
        if capability == "audio":
            content_type = resp.headers.get("content-type", "audio/mpeg")
            return AudioResult(data=resp.content, content_type=content_type)

        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteCallFailed(f"Malformed {capability} response body") from e
        if not isinstance(data, dict):
            raise RemoteCallFailed(f"Unexpected response format from {capability} API")

        if capability == "text":
            choices = data.get("choices")
            try:
                content = choices[0]["message"]["content"]
            except (TypeError, IndexError, KeyError) as e:
                raise RemoteCallFailed("Unexpected response format from text API") from e
            return TextResult(text=str(content).strip(), usage=data.get("usage"))

        items = data.get("data")
        try:
            url = items[0]["url"]
        except (TypeError, IndexError, KeyError) as e:
            raise RemoteCallFailed("Unexpected response format from image API") from e
        return ImageResult(url=url, seed=payload.seed)

    async def __call__(self, capability: Capability, payload: BaseModel) -> GatewayResult:
        url, body = self._build_request(capability, payload)
        logger.debug("remote call capability=%s url=%s", capability, url)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise RemoteCallFailed(f"Cannot connect to model backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise RemoteCallFailed(
                f"Model backend returned HTTP {status}",
                status=status,
                body=_error_body(e.response),
            ) from e
        except httpx.TimeoutException as e:
            raise RemoteCallFailed(f"Model backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            # Read/write errors, protocol errors, proxy errors and the like
            raise RemoteCallFailed(f"Request to model backend failed: {e}") from e

        result = self._parse_response(capability, payload, resp)
        logger.debug("remote response capability=%s", capability)
        return result

    async def check_status(self) -> bool:
        """GET {base}/models; True when the backend answers with a 2xx status."""
        url = f"{self._base_url}/models"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning("status check against %s failed: %s", url, e)
            return False
        return 200 <= resp.status_code < 300


def _error_body(response: Any) -> str:
    return str(getattr(response, "text", "") or "")


# ---------------------------------------------------------------------------
# EchoGateway: no network; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoGateway:
    """Answers every capability locally.

    text  — echoes the user's prompt back
    image — returns a placeholder URL carrying the seed
    audio — returns empty audio
    """

    async def __call__(self, capability: Capability, payload: BaseModel) -> GatewayResult:
        logger.debug("EchoGateway capability=%s", capability)
        if isinstance(payload, TextRequest):
            return TextResult(text=payload.prompt)
        if isinstance(payload, ImageRequest):
            return ImageResult(url=f"echo://image/{payload.seed}", seed=payload.seed)
        if isinstance(payload, AudioRequest):
            return AudioResult(data=b"")
        raise ValueError(f"Unknown capability {capability!r}")

    async def check_status(self) -> bool:
        return True
