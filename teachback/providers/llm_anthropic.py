from __future__ import annotations

import base64
import json
import os

from teachback.providers.base import Attachment, LLMProvider


class AnthropicProvider(LLMProvider):
    def __init__(self, model: str = "claude-sonnet-4-20250514"):
        import anthropic
        self.client = anthropic.AsyncAnthropic(
            api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
        )
        self.model = model

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        *,
        system: str | None = None,
        attachment: Attachment | None = None,
        schema: dict | None = None,
    ) -> str:
        if schema is not None:
            prompt += "\n\nRespond with a JSON object matching this schema:\n" + json.dumps(schema)
        content: list[dict] = []
        if attachment is not None:
            if not attachment.mime_type.startswith("image/"):
                raise ValueError(f"anthropic provider cannot read {attachment.mime_type}")
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": attachment.mime_type,
                    "data": base64.b64encode(attachment.data).decode(),
                },
            })
        content.append({"type": "text", "text": prompt})

        kwargs = {}
        if system:
            kwargs["system"] = system
        message = await self.client.messages.create(
            model=self.model,
            max_tokens=4096,
            temperature=temperature,
            messages=[{"role": "user", "content": content}],
            **kwargs,
        )
        return message.content[0].text

    def name(self) -> str:
        return f"anthropic/{self.model}"
