from __future__ import annotations

import base64
import json
import logging
import time
from collections.abc import AsyncIterator

import httpx

from teachback.providers.base import Attachment, LLMProvider

log = logging.getLogger("teachback.llm")


class OllamaProvider(LLMProvider):
    def __init__(self, base_url: str = "http://localhost:11434", model: str = "qwen2.5vl:7b"):
        self.base_url = base_url.rstrip("/")
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
        log.info("── PROMPT (%s) ──\n%s", self.model, prompt)
        body: dict = {
            "model": self.model,
            "prompt": prompt,
            "options": {"temperature": temperature},
            "stream": False,
            "think": False,
        }
        if system:
            body["system"] = system
        if schema is not None:
            body["format"] = schema
        if attachment is not None:
            if not attachment.mime_type.startswith("image/"):
                raise ValueError(f"ollama provider cannot read {attachment.mime_type}")
            body["images"] = [base64.b64encode(attachment.data).decode()]

        t0 = time.monotonic()
        async with httpx.AsyncClient(timeout=120.0) as client:
            resp = await client.post(f"{self.base_url}/api/generate", json=body)
            resp.raise_for_status()
            data = resp.json()
        elapsed = time.monotonic() - t0
        response = data["response"]
        tokens = data.get("eval_count", "?")
        log.info("── RESPONSE (%.1fs, %s tokens) ──\n%s", elapsed, tokens, response)
        return response

    async def generate_stream(
        self, prompt: str, temperature: float = 0.7, system: str | None = None
    ) -> AsyncIterator[str]:
        """Stream tokens from Ollama, stripping <think>...</think> blocks."""
        log.info("── STREAM PROMPT (%s) ──\n%s", self.model, prompt)
        t0 = time.monotonic()
        buf = ""
        in_think = False

        body: dict = {
            "model": self.model,
            "prompt": prompt,
            "options": {"temperature": temperature},
            "stream": True,
        }
        if system:
            body["system"] = system

        async with httpx.AsyncClient(timeout=120.0) as client:
            async with client.stream(
                "POST",
                f"{self.base_url}/api/generate",
                json=body,
            ) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if not line.strip():
                        continue
                    token = json.loads(line).get("response", "")
                    if not token:
                        continue

                    buf += token

                    # Reasoning models emit <think> blocks inline
                    while True:
                        if in_think:
                            idx = buf.find("</think>")
                            if idx >= 0:
                                buf = buf[idx + 8:]
                                in_think = False
                            else:
                                buf = ""
                                break
                        else:
                            idx = buf.find("<think>")
                            if idx >= 0:
                                if idx > 0:
                                    yield buf[:idx]
                                buf = buf[idx + 7:]
                                in_think = True
                            else:
                                # Hold back a possible partial tag
                                if len(buf) > 6:
                                    yield buf[:-6]
                                    buf = buf[-6:]
                                break

        if buf and not in_think:
            yield buf

        log.info("── STREAM COMPLETE (%.1fs) ──", time.monotonic() - t0)

    def name(self) -> str:
        return f"ollama/{self.model}"
