from __future__ import annotations

from collections.abc import Iterator

import requests

from difflens_core.providers.base import DEFAULT_BASE_URL, BaseClient, ChatOptions, build_request, iter_stream_chunks


class LMStudioClient(BaseClient):
    """Talks to an LM Studio (or any OpenAI-compatible) server over plain HTTP."""

    DEFAULT_MODEL = "gemma-3-4b-it"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ):
        super().__init__(base_url)
        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()
        # None waits on the server indefinitely; local models can be slow.
        self.timeout = timeout

    def get_response(self, messages: list[dict], options: ChatOptions | None = None) -> str:
        body = build_request(messages, options, self.DEFAULT_MODEL)
        response = self.session.post(self.endpoint, json=body, timeout=self.timeout)
        response.raise_for_status()
        payload = response.json()
        return payload["choices"][0]["message"]["content"] or ""

    def get_streaming_response(self, messages: list[dict], options: ChatOptions | None = None) -> Iterator[str]:
        body = build_request(messages, options, self.DEFAULT_MODEL, stream=True)
        with self.session.post(self.endpoint, json=body, stream=True, timeout=self.timeout) as response:
            response.raise_for_status()
            # Raw bytes: text/event-stream without a charset would otherwise decode as ISO-8859-1.
            yield from iter_stream_chunks(response.iter_lines(), source=self.__class__.__name__)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()
