"""Provider-abstracted text generation with key rotation and single-hop failover.

The gateway tries its backends in order: Amazon Bedrock first, using a
credential taken from a rotating API key pool, then a self-hosted Ollama
instance. A failing backend is never retried in place; the next one gets the
request exactly once. Callers receive raw model text and own the parsing.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import threading
from typing import Any, Optional, Protocol, Sequence

import httpx
from fastapi.concurrency import run_in_threadpool

from skillcheck.config.settings import settings
from skillcheck.services.aws import create_boto3_client
from skillcheck.telemetry import record_backend_failure

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    """Raised when every configured text-generation backend failed."""

    def __init__(
        self,
        message: str,
        failures: Sequence[tuple[str, BaseException]] = (),
    ) -> None:
        super().__init__(message)
        self.failures = tuple(failures)


class TextGenerationBackend(Protocol):
    """Contract shared by the concrete backends."""

    name: str
    uses_key_pool: bool
    timeout_seconds: float

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        api_key: str | None = None,
    ) -> str:
        ...


class KeyRotation:
    """Round-robin cursor over a fixed API key pool.

    The cursor advances once per request, whether or not the request
    succeeds, and is guarded by a lock so concurrent callers never observe
    the same position twice.
    """

    def __init__(self, keys: Sequence[str] = ()) -> None:
        self._keys = tuple(keys)
        self._cursor = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def position(self) -> int:
        with self._lock:
            return self._cursor

    def next_key(self) -> str | None:
        if not self._keys:
            return None
        with self._lock:
            index = self._cursor
            self._cursor += 1
        return self._keys[index % len(self._keys)]


def _decode_bedrock_api_key(secret_value: Optional[str]) -> tuple[str, str] | None:
    """Decode one pool entry into access/secret key components."""

    if not secret_value:
        return None

    try:
        decoded_bytes = base64.b64decode(secret_value.strip())
    except ValueError:
        decoded_bytes = secret_value.encode("utf-8", "ignore")

    filtered = "".join(chr(b) for b in decoded_bytes if 31 < b < 127)
    if ":" not in filtered:
        return None
    access_key, secret_key = filtered.split(":", 1)
    return access_key, secret_key


class BedrockBackend:
    """Amazon Bedrock `converse` backend, one boto3 client per pool key."""

    name = "bedrock"
    uses_key_pool = True

    def __init__(
        self,
        *,
        model_id: str | None = None,
        region: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        config = settings.bedrock
        self._model_id = model_id or config.model_id
        self._region = region or config.region
        self._inference_cfg = {
            "maxTokens": max_tokens or config.max_tokens,
            "temperature": temperature if temperature is not None else config.temperature,
            "topP": top_p if top_p is not None else config.top_p,
        }
        self.timeout_seconds = timeout_seconds or config.timeout_seconds
        self._clients: dict[str, Any] = {}
        self._clients_lock = threading.Lock()

    def _client_for(self, api_key: str) -> Any:
        with self._clients_lock:
            client = self._clients.get(api_key)
            if client is None:
                credentials = _decode_bedrock_api_key(api_key)
                if credentials is None:
                    raise ValueError("Bedrock API key is not a base64 access:secret pair")
                client = create_boto3_client(
                    "bedrock-runtime",
                    region_name=self._region,
                    aws_access_key_id=credentials[0],
                    aws_secret_access_key=credentials[1],
                    timeout_seconds=self.timeout_seconds,
                )
                self._clients[api_key] = client
        return client

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        api_key: str | None = None,
    ) -> str:
        if not api_key:
            raise ValueError("Bedrock backend requires an API key from the pool")

        client = self._client_for(api_key)

        def _call() -> str:
            response = client.converse(
                modelId=self._model_id,
                system=[{"text": system_prompt}],
                messages=[{"role": "user", "content": [{"text": user_prompt}]}],
                inferenceConfig=self._inference_cfg,
            )
            content_blocks = (
                response.get("output", {})
                .get("message", {})
                .get("content", [])
            )
            texts = [block.get("text", "") for block in content_blocks if block.get("text")]
            return "\n".join(texts).strip()

        return await run_in_threadpool(_call)


class OllamaBackend:
    """Self-hosted Ollama backend through its OpenAI-compatible endpoint."""

    name = "ollama"
    uses_key_pool = False

    def __init__(
        self,
        *,
        base_url: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        config = settings.ollama
        self._base_url = (base_url or config.base_url).rstrip("/")
        self._model = model or config.model
        self._temperature = temperature if temperature is not None else config.temperature
        self._max_tokens = max_tokens or config.max_tokens
        self.timeout_seconds = timeout_seconds or config.timeout_seconds
        self._transport = transport

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        api_key: str | None = None,
    ) -> str:
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
            "stream": False,
        }
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
        ) as client:
            response = await client.post("/v1/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()

        choices = data.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return str(message.get("content") or "")


class TextGenerationGateway:
    """Ordered failover across text-generation backends."""

    def __init__(
        self,
        backends: Sequence[TextGenerationBackend],
        *,
        keys: KeyRotation | Sequence[str] = (),
    ) -> None:
        if not backends:
            raise ValueError("At least one text-generation backend is required")
        self._backends = tuple(backends)
        self._keys = keys if isinstance(keys, KeyRotation) else KeyRotation(keys)

    @property
    def key_rotation(self) -> KeyRotation:
        return self._keys

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return raw text from the first backend that answers."""

        api_key = self._keys.next_key()
        failures: list[tuple[str, BaseException]] = []

        for backend in self._backends:
            if backend.uses_key_pool and api_key is None:
                logger.debug("Skipping %s backend: no API keys configured", backend.name)
                continue
            try:
                text = await asyncio.wait_for(
                    backend.generate(
                        system_prompt,
                        user_prompt,
                        api_key=api_key if backend.uses_key_pool else None,
                    ),
                    timeout=backend.timeout_seconds,
                )
            except Exception as exc:
                failures.append((backend.name, exc))
                record_backend_failure(backend.name)
                logger.warning("Text generation backend %s failed: %r", backend.name, exc)
                continue

            if failures:
                logger.info("Text generation served by fallback backend %s", backend.name)
            return text or ""

        summary = ", ".join(f"{name}: {exc!r}" for name, exc in failures) or "no usable backend"
        raise GatewayError(f"All text-generation backends failed ({summary})", failures)


def build_text_generation_gateway() -> TextGenerationGateway:
    """Assemble the gateway from settings: Bedrock first, Ollama second."""

    backends: list[TextGenerationBackend] = [BedrockBackend()]
    if settings.ollama.enabled:
        backends.append(OllamaBackend())
    return TextGenerationGateway(backends, keys=settings.bedrock.key_pool)


_DEFAULT_GATEWAY: TextGenerationGateway | None = None


def get_text_generation_gateway() -> TextGenerationGateway:
    """Return a lazily-instantiated gateway singleton."""

    global _DEFAULT_GATEWAY
    if _DEFAULT_GATEWAY is None:
        _DEFAULT_GATEWAY = build_text_generation_gateway()
    return _DEFAULT_GATEWAY


__all__ = [
    "BedrockBackend",
    "GatewayError",
    "KeyRotation",
    "OllamaBackend",
    "TextGenerationBackend",
    "TextGenerationGateway",
    "build_text_generation_gateway",
    "get_text_generation_gateway",
]
