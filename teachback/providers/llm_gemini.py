from __future__ import annotations

import logging
import os
import time
from collections.abc import AsyncIterator

from teachback.providers.base import Attachment, LLMProvider

log = logging.getLogger("teachback.llm")


class GeminiProvider(LLMProvider):
    def __init__(self, model: str = "gemini-2.5-flash"):
        from google import genai
        self.client = genai.Client(
            api_key=os.environ.get("GEMINI_API_KEY", ""),
        )
        self.model = model

    def _contents(self, prompt: str, attachment: Attachment | None) -> list:
        from google.genai import types

        if attachment is None:
            return [prompt]
        part = types.Part.from_bytes(data=attachment.data, mime_type=attachment.mime_type)
        return [part, prompt]

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        *,
        system: str | None = None,
        attachment: Attachment | None = None,
        schema: dict | None = None,
    ) -> str:
        from google.genai import types

        config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=temperature,
        )
        if schema is not None:
            config.response_mime_type = "application/json"
            config.response_schema = schema

        log.info("── PROMPT (%s) ──\n%s", self.model, prompt)
        t0 = time.monotonic()
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=self._contents(prompt, attachment),
            config=config,
        )
        text = response.text or ""
        log.info("── RESPONSE (%.1fs) ──\n%s", time.monotonic() - t0, text)
        return text

    async def generate_stream(
        self, prompt: str, temperature: float = 0.7, system: str | None = None
    ) -> AsyncIterator[str]:
        from google.genai import types

        config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=temperature,
        )
        stream = await self.client.aio.models.generate_content_stream(
            model=self.model,
            contents=prompt,
            config=config,
        )
        async for chunk in stream:
            if chunk.text:
                yield chunk.text

    def name(self) -> str:
        return f"gemini/{self.model}"
