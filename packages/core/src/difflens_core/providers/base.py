"""Common interface for chat-completion clients.

Every client speaks the OpenAI-style ``POST /v1/chat/completions`` contract
and exposes two calls:

    get_response(messages, options)           -> full assistant text
    get_streaming_response(messages, options) -> iterator of text chunks

Subclasses only differ in how they reach the server. Request-body
construction and parsing of ``data:`` stream frames live here so both
clients build identical requests and skip malformed frames the same way.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:1234"
CHAT_COMPLETIONS_PATH = "v1/chat/completions"
STREAM_DONE = "[DONE]"

_DEFAULT_TEMPERATURE = 0.7


class StreamFrameError(ValueError):
    """A single streaming frame could not be decoded."""


@dataclass(frozen=True)
class ChatOptions:
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


def user_message(content: str) -> dict[str, str]:
    return {"role": "user", "content": content}


def build_request(
    messages: Iterable[dict],
    options: ChatOptions | None,
    default_model: str,
    stream: bool = False,
) -> dict:
    """Build the JSON request body for one chat-completion call."""
    options = options or ChatOptions()
    body = {
        "model": options.model or default_model,
        "temperature": options.temperature if options.temperature is not None else _DEFAULT_TEMPERATURE,
        "messages": [{"role": m.get("role", "user"), "content": m.get("content", "")} for m in messages],
        "stream": stream,
    }
    if options.max_tokens is not None:
        body["max_tokens"] = options.max_tokens
    return body


def parse_stream_frame(payload: str) -> str | None:
    """Return the content delta of one JSON stream frame, or None if it carries none.

    Raises StreamFrameError when the payload is not JSON or lacks
    ``choices[0].delta``.
    """
    try:
        frame = json.loads(payload)
        delta = frame["choices"][0]["delta"]
    except (json.JSONDecodeError, KeyError, IndexError, TypeError) as e:
        raise StreamFrameError(f"Malformed stream frame {payload[:80]!r}: {e}") from e
    if not isinstance(delta, dict):
        raise StreamFrameError(f"Malformed stream frame {payload[:80]!r}: delta is not an object")
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


def iter_stream_chunks(lines: Iterable[str | bytes], source: str = "stream") -> Iterator[str]:
    """Yield text chunks from newline-delimited ``data: <json>`` frames.

    Stops at the ``[DONE]`` sentinel. Blank lines are skipped; frames that fail
    to parse are logged and skipped without ending the stream.
    """
    for raw in lines:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        line = raw.strip()
        if not line:
            continue
        if line.startswith("data:"):
            line = line[len("data:") :].strip()
        if line == STREAM_DONE:
            return
        try:
            chunk = parse_stream_frame(line)
        except StreamFrameError as e:
            logger.warning("[%s] Stream parse error: %s", source, e)
            continue
        if chunk:
            yield chunk


class BaseClient(ABC):
    """A chat-completion client bound to one server."""

    DEFAULT_MODEL: str = "gpt-oss-20b"

    def __init__(self, base_url: str = DEFAULT_BASE_URL):
        self.base_url = base_url.rstrip("/")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{CHAT_COMPLETIONS_PATH}"

    @abstractmethod
    def get_response(self, messages: list[dict], options: ChatOptions | None = None) -> str:
        """Send one request and return the assistant's full reply text.

        Raises on transport errors and non-success HTTP status.
        """

    @abstractmethod
    def get_streaming_response(self, messages: list[dict], options: ChatOptions | None = None) -> Iterator[str]:
        """Send one streaming request and yield the reply as it arrives.

        The iterator ends at the server's end-of-stream sentinel and cannot be
        restarted.
        """

    def close(self) -> None:
        """Release the underlying HTTP resources. Safe to call more than once."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
