from __future__ import annotations

import logging
import os
from collections.abc import Iterator

from openai import OpenAI

from difflens_core.providers.base import DEFAULT_BASE_URL, BaseClient, ChatOptions, build_request

logger = logging.getLogger(__name__)

# Local OpenAI-compatible servers ignore the key, but the SDK refuses to start without one.
_PLACEHOLDER_API_KEY = "not-needed"


class OpenAICompatibleClient(BaseClient):
    """Chat-completion client built on the official ``openai`` SDK.

    ``base_url`` is the server root (``http://host:port``); the SDK is pointed
    at its ``/v1`` prefix.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = BaseClient.DEFAULT_MODEL,
        api_key: str | None = None,
        timeout: float | None = None,
        client: OpenAI | None = None,
    ):
        super().__init__(base_url)
        self.model = model
        self._owns_client = client is None
        self.client = client if client is not None else OpenAI(
            base_url=f"{self.base_url}/v1",
            api_key=api_key or os.environ.get("OPENAI_API_KEY") or _PLACEHOLDER_API_KEY,
            timeout=timeout,
            max_retries=0,
        )

    def _create(self, messages: list[dict], options: ChatOptions | None, stream: bool):
        body = build_request(messages, options, self.model, stream=stream)
        return self.client.chat.completions.create(**body)

    def get_response(self, messages: list[dict], options: ChatOptions | None = None) -> str:
        response = self._create(messages, options, stream=False)
        return response.choices[0].message.content or ""

    def get_streaming_response(self, messages: list[dict], options: ChatOptions | None = None) -> Iterator[str]:
        stream = self._create(messages, options, stream=True)
        try:
            for chunk in stream:
                try:
                    content = chunk.choices[0].delta.content
                except (IndexError, AttributeError) as e:
                    logger.warning("[%s] Stream parse error: %s", self.__class__.__name__, e)
                    continue
                if content:
                    yield content
        finally:
            stream.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
