"""Schema-constrained calls to the generative backend with a single retry."""
from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from teachback.errors import GenerationFailure
from teachback.models import SourceContent
from teachback.prompts import RETRY_DIRECTIVE
from teachback.providers.base import Attachment
from teachback.schemas import SchemaError

if TYPE_CHECKING:
    from teachback.providers.base import LLMProvider

log = logging.getLogger("teachback.gateway")

T = TypeVar("T")

MAX_ATTEMPTS = 2


@dataclass
class PromptSpec:
    system_instruction: str
    prompt: str
    source: SourceContent
    temperature: float = 0.5
    label: str = "call"

    @property
    def attachment(self) -> Attachment | None:
        if self.source.is_image:
            return Attachment(self.source.image, self.source.mime_type)
        return None


def extract_json(text: str) -> dict | None:
    """Extract a JSON object from a model reply, tolerating code fences.

    Strips ``<think>`` blocks first, then tries code-fenced JSON, then the
    balanced ``{…}`` blocks in the text, last-first, since models sometimes
    draft partial JSON before the final answer.
    """
    text = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()

    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    m = re.search(r"```(?:json)?\s*\n?({.*?})\s*\n?```", text, re.DOTALL)
    if m:
        try:
            return json.loads(m.group(1))
        except json.JSONDecodeError:
            pass

    for candidate in reversed(_find_json_objects(text)):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    return None


def _find_json_objects(text: str) -> list[str]:
    """Find balanced top-level ``{…}`` substrings in *text*."""
    results: list[str] = []
    i = 0
    while i < len(text):
        if text[i] == "{":
            depth = 0
            in_str = False
            escape = False
            start = i
            for j in range(i, len(text)):
                ch = text[j]
                if escape:
                    escape = False
                    continue
                if ch == "\\":
                    escape = True
                    continue
                if ch == '"':
                    in_str = not in_str
                    continue
                if in_str:
                    continue
                if ch == "{":
                    depth += 1
                elif ch == "}":
                    depth -= 1
                    if depth == 0:
                        results.append(text[start : j + 1])
                        i = j + 1
                        break
            else:
                # Unbalanced, skip this opening brace
                i += 1
        else:
            i += 1
    return results


class AIGateway:
    """Wraps an ``LLMProvider`` with schema attachment, parsing and one retry.

    Any failed attempt (backend error, timeout, no JSON in the reply, or a
    parser rejecting its shape) is retried once with ``RETRY_DIRECTIVE``
    appended.  A second failure raises ``GenerationFailure``; nothing partial
    is ever returned.
    """

    def __init__(self, llm: LLMProvider, timeout_seconds: float = 120.0):
        self.llm = llm
        self.timeout_seconds = timeout_seconds

    async def call(self, spec: PromptSpec, schema: dict, parse: Callable[[dict], T]) -> T:
        prompt = spec.prompt
        last_error: Exception | None = None
        for attempt in range(MAX_ATTEMPTS):
            log.info("%s: attempt %d/%d via %s", spec.label, attempt + 1, MAX_ATTEMPTS, self.llm.name())
            try:
                raw = await asyncio.wait_for(
                    self.llm.generate(
                        prompt,
                        spec.temperature,
                        system=spec.system_instruction,
                        attachment=spec.attachment,
                        schema=schema,
                    ),
                    timeout=self.timeout_seconds,
                )
                data = extract_json(raw or "")
                if data is None:
                    raise SchemaError("reply did not contain a JSON object")
                result = parse(data)
                log.info("%s: OK", spec.label)
                return result
            except asyncio.TimeoutError as e:
                last_error = e
                log.warning("%s: timed out after %.0fs", spec.label, self.timeout_seconds)
            except SchemaError as e:
                last_error = e
                log.warning("%s: invalid reply: %s", spec.label, e)
            except Exception as e:
                last_error = e
                log.warning("%s: backend error: %s", spec.label, e)
            prompt = spec.prompt + "\n\n" + RETRY_DIRECTIVE

        raise GenerationFailure(
            f"Failed to generate a valid {spec.label} result after retry."
        ) from last_error
