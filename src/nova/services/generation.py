"""Text generation providers for build turns.

The model is an opaque producer of text chunks. ``OpenAICompatibleClient``
talks to any endpoint implementing ``/chat/completions`` with SSE streaming
(OpenAI, xAI, vLLM, Ollama's OpenAI shim); ``ScriptedClient`` replays a fixed
response and is used for local development and tests.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Dict, Iterator, List, Optional, Protocol, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)
LOG = logging.getLogger("nova.llm")

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
_STREAM_TIMEOUT = (
    int(os.getenv("NOVA_LLM_CONNECT_TIMEOUT", "3")),
    int(os.getenv("NOVA_LLM_READ_TIMEOUT", "60")),
)


class GenerationError(Exception):
    """The provider failed before or during the stream."""


class CancellationToken:
    """Cooperative cancel flag shared by a turn and whoever may stop it."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class GenerationClient(Protocol):
    name: str
    model: str

    def stream(self, messages: List[Dict[str, str]], cancel_token: Optional[CancellationToken] = None) -> Iterator[str]: ...


def _build_session() -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=2,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["POST", "GET"]),
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class OpenAICompatibleClient:
    name = "openai"

    def __init__(self, base_url: str, api_key: Optional[str], model: str) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._api_key = api_key
        self._session = _build_session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def stream(self, messages: List[Dict[str, str]], cancel_token: Optional[CancellationToken] = None) -> Iterator[str]:
        LOG.debug(
            "llm_stream_start",
            extra={"model": self.model, "base_url": self.base_url, "messages": len(messages)},
        )
        payload = {"model": self.model, "messages": messages, "stream": True}
        try:
            with self._session.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=self._headers(),
                timeout=_STREAM_TIMEOUT,
                stream=True,
            ) as resp:
                resp.raise_for_status()
                for raw_line in resp.iter_lines():
                    if cancel_token is not None and cancel_token.cancelled:
                        LOG.info("llm_stream_cancelled", extra={"model": self.model})
                        return
                    if not raw_line:
                        continue
                    line = raw_line.decode("utf-8") if isinstance(raw_line, bytes) else raw_line
                    if not line.startswith("data: "):
                        continue
                    data = line[6:].strip()
                    if data == "[DONE]":
                        break
                    try:
                        parsed = json.loads(data)
                    except json.JSONDecodeError:
                        continue
                    delta = (parsed.get("choices") or [{}])[0].get("delta") or {}
                    token = delta.get("content") or ""
                    if token:
                        yield token
        except requests.exceptions.RequestException as exc:
            LOG.warning("llm_stream_failed", extra={"model": self.model, "err": str(exc)})
            raise GenerationError(str(exc)) from exc


DEMO_RESPONSE = """Creating a simple landing page.

📋 Plan:
• Step 1: Create the landing page
• Step 2: Add shared styles

FILE: index.html
```html
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <title>My App</title>
  <script src="https://cdn.tailwindcss.com"></script>
  <link rel="stylesheet" href="css/styles.css">
</head>
<body class="bg-gray-950 text-gray-100">
  <h1 class="text-3xl p-8">Hello from Nova</h1>
</body>
</html>
```

FILE: css/styles.css
```css
h1 { color: #8b5cf6; }
```
"""


class ScriptedClient:
    """Replays ``response`` in fixed-size chunks."""

    name = "scripted"

    def __init__(self, response: str = DEMO_RESPONSE, chunk_size: int = 24, model: str = "scripted") -> None:
        self.response = response
        self.chunk_size = max(1, chunk_size)
        self.model = model
        self.calls: List[List[Dict[str, str]]] = []

    def stream(self, messages: List[Dict[str, str]], cancel_token: Optional[CancellationToken] = None) -> Iterator[str]:
        self.calls.append(list(messages))
        for i in range(0, len(self.response), self.chunk_size):
            if cancel_token is not None and cancel_token.cancelled:
                return
            yield self.response[i : i + self.chunk_size]


class FailingClient:
    """Yields ``chunks`` and then fails; useful to exercise upstream errors."""

    name = "failing"

    def __init__(self, chunks: Sequence[str] = (), message: str = "upstream unavailable") -> None:
        self.chunks = list(chunks)
        self.message = message
        self.model = "failing"

    def stream(self, messages: List[Dict[str, str]], cancel_token: Optional[CancellationToken] = None) -> Iterator[str]:
        yield from self.chunks
        raise GenerationError(self.message)


def provider_settings() -> Dict[str, Optional[str]]:
    api_key = os.getenv("NOVA_LLM_API_KEY") or os.getenv("OPENAI_API_KEY") or os.getenv("XAI_API_KEY")
    impl = (os.getenv("NOVA_GENERATION_IMPL") or ("openai" if api_key else "scripted")).lower()
    return {
        "provider": impl,
        "base_url": os.getenv("NOVA_LLM_BASE_URL") or os.getenv("OPENAI_BASE_URL") or DEFAULT_BASE_URL,
        "model": os.getenv("NOVA_LLM_MODEL") or os.getenv("OPENAI_MODEL") or DEFAULT_MODEL,
        "api_key": api_key,
    }


_override: Optional[GenerationClient] = None


def set_generation_client(client: Optional[GenerationClient]) -> None:
    """Install a process-wide client (``None`` restores env-driven selection)."""
    global _override
    _override = client


def get_generation_client(model: Optional[str] = None) -> GenerationClient:
    if _override is not None:
        return _override
    cfg = provider_settings()
    if cfg["provider"] == "openai":
        logger.info("Using generation provider base_url=%s model=%s", cfg["base_url"], model or cfg["model"])
        return OpenAICompatibleClient(
            base_url=str(cfg["base_url"]),
            api_key=cfg["api_key"],
            model=model or str(cfg["model"]),
        )
    return ScriptedClient()
