from __future__ import annotations

import base64
import json
import os

from teachback.providers.base import Attachment, LLMProvider


class OpenAIProvider(LLMProvider):
    def __init__(self, model: str = "gpt-4o-mini"):
        import openai
        self.client = openai.AsyncOpenAI(
            api_key=os.environ.get("OPENAI_API_KEY", ""),
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
        if attachment is not None:
            if not attachment.mime_type.startswith("image/"):
                raise ValueError(f"openai provider cannot read {attachment.mime_type}")
            url = f"data:{attachment.mime_type};base64,{base64.b64encode(attachment.data).decode()}"
            user = [
                {"type": "image_url", "image_url": {"url": url}},
                {"type": "text", "text": prompt},
            ]
        else:
            user = prompt

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": user})

        kwargs = {}
        if schema is not None:
            kwargs["response_format"] = {"type": "json_object"}
        resp = await self.client.chat.completions.create(
            model=self.model,
            temperature=temperature,
            messages=messages,
            **kwargs,
        )
        return resp.choices[0].message.content

    def name(self) -> str:
        return f"openai/{self.model}"
