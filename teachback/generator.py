"""Second pipeline stage: simplified text, quiz and domain details."""
from __future__ import annotations

from teachback.gateway import AIGateway, PromptSpec
from teachback.models import CATEGORIES, SourceContent, TeachBackContent
from teachback.prompts import CATEGORY_HINTS, GENERATION_PROMPT, SYSTEM_INSTRUCTION, format_source
from teachback.schemas import TEACHBACK_SCHEMA, parse_teachback


async def generate_content(
    gateway: AIGateway,
    source: SourceContent,
    category: str,
    temperature: float = 0.5,
) -> TeachBackContent:
    """Generate teach-back content for *source* under *category*.

    Only the domain branch matching *category* survives parsing; a missing
    or malformed branch leaves ``domain_details`` as ``None``.
    """
    if category not in CATEGORIES:
        raise ValueError(f"unknown category: {category!r}")
    prompt = GENERATION_PROMPT.format(
        category=category,
        category_hint=CATEGORY_HINTS[category],
        source_section=format_source(source.text),
    )
    spec = PromptSpec(
        system_instruction=SYSTEM_INSTRUCTION,
        prompt=prompt,
        source=source,
        temperature=temperature,
        label="teach-back",
    )
    return await gateway.call(spec, TEACHBACK_SCHEMA, lambda data: parse_teachback(data, category))
