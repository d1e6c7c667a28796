from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum

# Closed document taxonomy. "unknown" is the general-mode fallback.
CATEGORIES = ("prescription", "eob", "prior_auth", "discharge", "lab", "unknown")
SELECTABLE_CATEGORIES = ("prescription", "eob", "prior_auth", "discharge", "lab")

SUPPORTED_LANGUAGES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "hi": "Hindi",
}


class QuizState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    MASTERED = "MASTERED"


@dataclass
class Alternate:
    label: str
    score: float


@dataclass
class ClassificationResult:
    context: str
    confidence: float
    alternates: list[Alternate] = field(default_factory=list)
    unknown_reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "context": self.context,
            "confidence": self.confidence,
            "top_k": [{"label": a.label, "score": a.score} for a in self.alternates],
            "unknown_reasons": list(self.unknown_reasons),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ClassificationResult:
        return cls(
            context=data["context"],
            confidence=float(data["confidence"]),
            alternates=[Alternate(a["label"], float(a["score"])) for a in data.get("top_k", [])],
            unknown_reasons=list(data.get("unknown_reasons", [])),
        )


@dataclass
class QAItem:
    question: str
    correct_answer: str
    distractors: list[str]
    rationale_correct: str
    rationale_incorrect: str
    concept_tag: str | None = None

    @property
    def options(self) -> list[str]:
        """Unshuffled answer options: distractors followed by the correct answer."""
        return [*self.distractors, self.correct_answer]

    def to_dict(self) -> dict:
        d = {
            "q": self.question,
            "a_correct": self.correct_answer,
            "a_distractors": list(self.distractors),
            "rationale_correct": self.rationale_correct,
            "rationale_incorrect": self.rationale_incorrect,
        }
        if self.concept_tag:
            d["concept_tag"] = self.concept_tag
        return d

    @classmethod
    def from_dict(cls, data: dict) -> QAItem:
        return cls(
            question=data["q"],
            correct_answer=data["a_correct"],
            distractors=list(data["a_distractors"]),
            rationale_correct=data["rationale_correct"],
            rationale_incorrect=data["rationale_incorrect"],
            concept_tag=data.get("concept_tag"),
        )


@dataclass
class Remediation:
    if_wrong: str
    examples: list[str] = field(default_factory=list)


@dataclass
class SafetyFlags:
    urgent_contact: bool = False
    contraindication_mentioned: bool = False
    red_flags: list[str] = field(default_factory=list)


# ── Domain variants (one per category) ────────────────────────────────────

@dataclass
class PrescriptionDetails:
    dose: str = ""
    route: str = ""
    frequency: str = ""
    timing: str = ""
    missed_dose_instructions: str = ""
    common_side_effects: list[str] = field(default_factory=list)
    interaction_warnings: list[str] = field(default_factory=list)


@dataclass
class EobDetails:
    claim_id: str = ""
    service_date: str = ""
    billed: str = ""
    allowed: str = ""
    deductible: str = ""
    copay: str = ""
    coinsurance: str = ""
    not_covered_reason: str = ""
    appeal_window_days: int = 0
    next_steps: list[str] = field(default_factory=list)


@dataclass
class PriorAuthDetails:
    status: str = ""
    missing_items: list[str] = field(default_factory=list)
    clinical_criteria: list[str] = field(default_factory=list)
    deadline: str = ""
    checklist: list[str] = field(default_factory=list)
    template_addendum: str = ""


@dataclass
class DischargeDetails:
    followups: list[str] = field(default_factory=list)
    med_changes: list[str] = field(default_factory=list)
    when_to_call: list[str] = field(default_factory=list)
    activity_restrictions: list[str] = field(default_factory=list)


@dataclass
class LabDetails:
    test: str = ""
    value: str = ""
    unit: str = ""
    reference_range: str = ""
    interpretation: str = ""
    next_steps: list[str] = field(default_factory=list)


@dataclass
class GeneralDetails:
    key_points: list[str] = field(default_factory=list)
    action_checklist: list[str] = field(default_factory=list)
    questions_to_ask_provider: list[str] = field(default_factory=list)


DOMAIN_TYPES = {
    "prescription": PrescriptionDetails,
    "eob": EobDetails,
    "prior_auth": PriorAuthDetails,
    "discharge": DischargeDetails,
    "lab": LabDetails,
    "unknown": GeneralDetails,
}


@dataclass
class TeachBackContent:
    context: str
    simplified_text: str
    reading_grade_after: int
    qa_items: list[QAItem]
    remediation: Remediation
    safety_flags: SafetyFlags
    # Only the branch matching ``context``; None means "no details available".
    domain_details: object | None = None

    def to_dict(self) -> dict:
        domain = {}
        if self.domain_details is not None:
            domain[self.context] = asdict(self.domain_details)
        return {
            "context": self.context,
            "simplified_text": self.simplified_text,
            "reading_grade_after": self.reading_grade_after,
            "qa": [item.to_dict() for item in self.qa_items],
            "remediation": asdict(self.remediation),
            "safety_flags": asdict(self.safety_flags),
            "domain": domain,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TeachBackContent:
        context = data["context"]
        details = None
        branch = data.get("domain", {}).get(context)
        if isinstance(branch, dict):
            details = DOMAIN_TYPES[context](**branch)
        return cls(
            context=context,
            simplified_text=data["simplified_text"],
            reading_grade_after=int(data["reading_grade_after"]),
            qa_items=[QAItem.from_dict(q) for q in data["qa"]],
            remediation=Remediation(**data["remediation"]),
            safety_flags=SafetyFlags(**data["safety_flags"]),
            domain_details=details,
        )


@dataclass
class SessionMetrics:
    attempts: int = 0
    mastery_time_seconds: int | None = None
    reading_grade_after: int | None = None


@dataclass
class GlossaryTerm:
    term: str
    definition: str


@dataclass
class ChatTurn:
    role: str  # user | model
    text: str
    definition: GlossaryTerm | None = None

    def to_dict(self) -> dict:
        d = {"role": self.role, "text": self.text}
        if self.definition is not None:
            d["definition"] = asdict(self.definition)
        return d


@dataclass
class SourceContent:
    """What the user submitted: pasted text or a single raster image."""
    text: str | None = None
    image: bytes | None = None
    mime_type: str | None = None

    def __post_init__(self):
        if (self.text is None) == (self.image is None):
            raise ValueError("source content must be either text or an image")
        if self.image is not None and not self.mime_type:
            raise ValueError("image source requires a mime_type")

    @property
    def is_image(self) -> bool:
        return self.image is not None


@dataclass
class Notice:
    level: str  # success | info | error
    message: str
