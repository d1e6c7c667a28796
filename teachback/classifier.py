"""First pipeline stage: decide which kind of medical document we were given."""
from __future__ import annotations

from teachback.gateway import AIGateway, PromptSpec
from teachback.models import ClassificationResult, SourceContent
from teachback.prompts import CLASSIFICATION_PROMPT, SYSTEM_INSTRUCTION, format_source
from teachback.schemas import CLASSIFICATION_SCHEMA, parse_classification

# Classification is a judgement call, keep it steady
CLASSIFY_TEMPERATURE = 0.2


async def classify(gateway: AIGateway, source: SourceContent) -> ClassificationResult:
    """Return the model's best-guess category.

    The confidence threshold is not applied here; callers decide whether the
    guess is confident enough to use.  ``GenerationFailure`` propagates.
    """
    if source.text is not None and not source.text.strip():
        raise ValueError("cannot classify empty text")
    spec = PromptSpec(
        system_instruction=SYSTEM_INSTRUCTION,
        prompt=CLASSIFICATION_PROMPT.format(source_section=format_source(source.text)),
        source=source,
        temperature=CLASSIFY_TEMPERATURE,
        label="classification",
    )
    return await gateway.call(spec, CLASSIFICATION_SCHEMA, parse_classification)
