"""Response schemas and strict parsers for the classify and generate stages.

The schemas are attached to backend requests so the model is constrained at
the source; the parsers run on whatever comes back anyway, because not every
backend honours a schema and some only approximate it.  A parser either
returns a fully-typed result or raises ``SchemaError``; the gateway treats the
latter as a failed attempt.
"""
from __future__ import annotations

from dataclasses import fields

from teachback.models import (
    CATEGORIES,
    DOMAIN_TYPES,
    SELECTABLE_CATEGORIES,
    Alternate,
    ClassificationResult,
    QAItem,
    Remediation,
    SafetyFlags,
    TeachBackContent,
)

MIN_QUESTIONS = 3
MAX_QUESTIONS = 5
MIN_DISTRACTORS = 2
MAX_DISTRACTORS = 3
MIN_GRADE = 5
MAX_GRADE = 12
MAX_ALTERNATES = 3


class SchemaError(ValueError):
    """A model reply did not have the shape its stage requires."""


_STR = {"type": "string"}
_STR_LIST = {"type": "array", "items": _STR}

CLASSIFICATION_SCHEMA = {
    "type": "object",
    "properties": {
        "context": {
            "type": "string",
            "enum": list(CATEGORIES),
            "description": "The single best document category, or 'unknown' when unsure.",
        },
        "confidence": {
            "type": "number",
            "description": "Confidence in the chosen category, from 0 to 1.",
        },
        "top_k": {
            "type": "array",
            "description": "Up to 3 alternative categories with scores.",
            "items": {
                "type": "object",
                "properties": {
                    "label": {"type": "string", "enum": list(SELECTABLE_CATEGORIES)},
                    "score": {"type": "number"},
                },
                "required": ["label", "score"],
            },
        },
        "unknown_reasons": {
            "type": "array",
            "description": "Why the document could not be classified, when context is 'unknown'.",
            "items": _STR,
        },
    },
    "required": ["context", "confidence", "top_k", "unknown_reasons"],
}

_DOMAIN_SCHEMAS = {
    "prescription": {
        "type": "object",
        "properties": {
            "dose": _STR,
            "route": _STR,
            "frequency": _STR,
            "timing": _STR,
            "missed_dose_instructions": _STR,
            "common_side_effects": _STR_LIST,
            "interaction_warnings": _STR_LIST,
        },
    },
    "eob": {
        "type": "object",
        "properties": {
            "claim_id": _STR,
            "service_date": _STR,
            "billed": _STR,
            "allowed": _STR,
            "deductible": _STR,
            "copay": _STR,
            "coinsurance": _STR,
            "not_covered_reason": _STR,
            "appeal_window_days": {"type": "integer"},
            "next_steps": _STR_LIST,
        },
    },
    "prior_auth": {
        "type": "object",
        "properties": {
            "status": _STR,
            "missing_items": _STR_LIST,
            "clinical_criteria": _STR_LIST,
            "deadline": _STR,
            "checklist": _STR_LIST,
            "template_addendum": _STR,
        },
    },
    "discharge": {
        "type": "object",
        "properties": {
            "followups": _STR_LIST,
            "med_changes": _STR_LIST,
            "when_to_call": _STR_LIST,
            "activity_restrictions": _STR_LIST,
        },
    },
    "lab": {
        "type": "object",
        "properties": {
            "test": _STR,
            "value": _STR,
            "unit": _STR,
            "reference_range": _STR,
            "interpretation": _STR,
            "next_steps": _STR_LIST,
        },
    },
    "unknown": {
        "type": "object",
        "properties": {
            "key_points": _STR_LIST,
            "action_checklist": _STR_LIST,
            "questions_to_ask_provider": _STR_LIST,
        },
    },
}

TEACHBACK_SCHEMA = {
    "type": "object",
    "properties": {
        "simplified_text": {
            "type": "string",
            "description": "The simplified version of the medical text.",
        },
        "reading_grade": {
            "type": "integer",
            "description": "Estimated reading grade level (5-12) of the simplified text.",
        },
        "qa": {
            "type": "array",
            "description": "An array of 3-5 quiz questions.",
            "items": {
                "type": "object",
                "properties": {
                    "q": {"type": "string", "description": "The quiz question."},
                    "a_correct": {"type": "string", "description": "The single correct answer."},
                    "a_distractors": {
                        "type": "array",
                        "description": "2-3 incorrect answer choices, none equal to the correct answer.",
                        "items": _STR,
                    },
                    "rationale_correct": {"type": "string"},
                    "rationale_incorrect": {"type": "string"},
                    "concept_tag": {"type": "string"},
                },
                "required": ["q", "a_correct", "a_distractors", "rationale_correct", "rationale_incorrect"],
            },
        },
        "remediation": {
            "type": "object",
            "description": "Guidance for users who answer incorrectly.",
            "properties": {
                "if_wrong": {"type": "string"},
                "examples": _STR_LIST,
            },
            "required": ["if_wrong", "examples"],
        },
        "safety_flags": {
            "type": "object",
            "properties": {
                "urgent_contact": {"type": "boolean"},
                "contraindication_mentioned": {"type": "boolean"},
                "red_flags": _STR_LIST,
            },
            "required": ["urgent_contact", "contraindication_mentioned", "red_flags"],
        },
        "domain": {
            "type": "object",
            "description": "Fill ONLY the branch named by the document category.",
            "properties": _DOMAIN_SCHEMAS,
        },
    },
    "required": ["simplified_text", "reading_grade", "qa", "remediation", "safety_flags", "domain"],
}


# ── Helpers ───────────────────────────────────────────────────────────────

def _require(data: dict, keys: tuple[str, ...], where: str) -> None:
    missing = [k for k in keys if k not in data]
    if missing:
        raise SchemaError(f"{where}: missing fields: {', '.join(missing)}")


def _text(value, where: str) -> str:
    if not isinstance(value, str):
        raise SchemaError(f"{where}: expected string, got {type(value).__name__}")
    return value.strip()


def _text_list(value, where: str) -> list[str]:
    if not isinstance(value, list):
        raise SchemaError(f"{where}: expected list, got {type(value).__name__}")
    return [_text(v, where) for v in value if not (isinstance(v, str) and not v.strip())]


def _flag(value, where: str) -> bool:
    if not isinstance(value, bool):
        raise SchemaError(f"{where}: expected boolean, got {value!r}")
    return value


def _number(value, where: str) -> float:
    # Coerce numeric strings (common LLM mistake)
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise SchemaError(f"{where}: not a number: {value!r}") from None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaError(f"{where}: not a number: {value!r}")
    return float(value)


# ── Classification ───────────────────────────────────────────────────────

def parse_classification(data) -> ClassificationResult:
    if not isinstance(data, dict):
        raise SchemaError("classification: expected an object")
    _require(data, ("context", "confidence"), "classification")

    context = _text(data["context"], "context").lower()
    if context not in CATEGORIES:
        raise SchemaError(f"context must be one of {', '.join(CATEGORIES)} (got {context!r})")
    confidence = min(1.0, max(0.0, _number(data["confidence"], "confidence")))

    alternates: list[Alternate] = []
    raw_alternates = data.get("top_k", [])
    if not isinstance(raw_alternates, list):
        raise SchemaError("top_k: expected list")
    for alt in raw_alternates:
        if not isinstance(alt, dict) or "label" not in alt:
            raise SchemaError("top_k: each entry needs a label and score")
        label = str(alt["label"]).strip().lower()
        # Alternates only ever offer selectable categories
        if label not in SELECTABLE_CATEGORIES:
            continue
        score = min(1.0, max(0.0, _number(alt.get("score", 0), "top_k.score")))
        alternates.append(Alternate(label, score))
    alternates = alternates[:MAX_ALTERNATES]

    return ClassificationResult(
        context=context,
        confidence=confidence,
        alternates=alternates,
        unknown_reasons=_text_list(data.get("unknown_reasons", []), "unknown_reasons"),
    )


# ── Generation ───────────────────────────────────────────────────────────

def _parse_qa_item(raw, index: int) -> QAItem:
    where = f"qa[{index}]"
    if not isinstance(raw, dict):
        raise SchemaError(f"{where}: expected object")
    _require(raw, ("q", "a_correct", "a_distractors", "rationale_correct", "rationale_incorrect"), where)

    correct = _text(raw["a_correct"], f"{where}.a_correct")
    distractors = _text_list(raw["a_distractors"], f"{where}.a_distractors")
    if not (MIN_DISTRACTORS <= len(distractors) <= MAX_DISTRACTORS):
        raise SchemaError(
            f"{where}: needs {MIN_DISTRACTORS}-{MAX_DISTRACTORS} distractors (got {len(distractors)})"
        )
    lowered = [d.casefold() for d in distractors]
    if correct.casefold() in lowered:
        raise SchemaError(f"{where}: correct answer {correct!r} also appears among the distractors")
    if len(set(lowered)) != len(lowered):
        raise SchemaError(f"{where}: duplicate distractors")

    tag = raw.get("concept_tag")
    return QAItem(
        question=_text(raw["q"], f"{where}.q"),
        correct_answer=correct,
        distractors=distractors,
        rationale_correct=_text(raw["rationale_correct"], f"{where}.rationale_correct"),
        rationale_incorrect=_text(raw["rationale_incorrect"], f"{where}.rationale_incorrect"),
        concept_tag=tag.strip() if isinstance(tag, str) and tag.strip() else None,
    )


def parse_domain_details(domain, category: str):
    """Build the details for *category* from a ``domain`` object, leniently.

    Other branches are ignored.  A missing or malformed matching branch
    yields ``None``; individual bad fields fall back to their defaults.
    """
    if not isinstance(domain, dict):
        return None
    branch = domain.get(category)
    if not isinstance(branch, dict) or not branch:
        return None

    cls = DOMAIN_TYPES[category]
    kwargs = {}
    for f in fields(cls):
        if f.name not in branch:
            continue
        value = branch[f.name]
        if f.type == "int":
            try:
                kwargs[f.name] = int(value)
            except (TypeError, ValueError):
                continue
        elif f.type == "list[str]":
            if isinstance(value, list):
                kwargs[f.name] = [str(v) for v in value if v is not None]
            elif isinstance(value, str) and value.strip():
                kwargs[f.name] = [value]
        elif value is not None:
            kwargs[f.name] = str(value)
    return cls(**kwargs)


def parse_teachback(data, category: str) -> TeachBackContent:
    if category not in CATEGORIES:
        raise ValueError(f"unknown category: {category!r}")
    if not isinstance(data, dict):
        raise SchemaError("teach-back: expected an object")
    _require(data, ("simplified_text", "reading_grade", "qa", "remediation", "safety_flags"), "teach-back")

    simplified = _text(data["simplified_text"], "simplified_text")
    if not simplified:
        raise SchemaError("simplified_text is empty")

    grade = int(round(_number(data["reading_grade"], "reading_grade")))
    grade = min(MAX_GRADE, max(MIN_GRADE, grade))

    qa = data["qa"]
    if not isinstance(qa, list):
        raise SchemaError("qa: expected list")
    if not (MIN_QUESTIONS <= len(qa) <= MAX_QUESTIONS):
        raise SchemaError(f"qa: needs {MIN_QUESTIONS}-{MAX_QUESTIONS} questions (got {len(qa)})")
    items = [_parse_qa_item(raw, i) for i, raw in enumerate(qa)]

    rem = data["remediation"]
    if not isinstance(rem, dict) or "if_wrong" not in rem:
        raise SchemaError("remediation: needs if_wrong")
    remediation = Remediation(
        if_wrong=_text(rem["if_wrong"], "remediation.if_wrong"),
        examples=_text_list(rem.get("examples", []), "remediation.examples"),
    )

    flags = data["safety_flags"]
    if not isinstance(flags, dict):
        raise SchemaError("safety_flags: expected object")
    safety = SafetyFlags(
        urgent_contact=_flag(flags.get("urgent_contact", False), "safety_flags.urgent_contact"),
        contraindication_mentioned=_flag(
            flags.get("contraindication_mentioned", False), "safety_flags.contraindication_mentioned"
        ),
        red_flags=_text_list(flags.get("red_flags", []), "safety_flags.red_flags"),
    )

    return TeachBackContent(
        context=category,
        simplified_text=simplified,
        reading_grade_after=grade,
        qa_items=items,
        remediation=remediation,
        safety_flags=safety,
        domain_details=parse_domain_details(data.get("domain"), category),
    )
