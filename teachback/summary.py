"""Printable Markdown summary of a finished teach-back session."""
from __future__ import annotations

from dataclasses import fields
from datetime import datetime

from teachback.models import TeachBackContent

CATEGORY_TITLES = {
    "prescription": "Prescription",
    "eob": "Explanation of Benefits",
    "prior_auth": "Prior Authorization",
    "discharge": "Discharge Instructions",
    "lab": "Lab Result",
    "unknown": "General",
}


def _label(name: str) -> str:
    return name.replace("_", " ").capitalize()


def _details_lines(details) -> list[str]:
    lines: list[str] = []
    for f in fields(details):
        value = getattr(details, f.name)
        if not value:
            continue
        if isinstance(value, list):
            lines.append(f"**{_label(f.name)}:**")
            lines.extend(f"- {v}" for v in value)
        else:
            lines.append(f"**{_label(f.name)}:** {value}")
    return lines


def render_summary(
    content: TeachBackContent,
    answers: dict[int, str] | None = None,
    generated_at: datetime | None = None,
) -> str:
    answers = answers or {}
    when = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M")
    out = [
        "# Teach-Back Summary",
        "",
        f"*{CATEGORY_TITLES.get(content.context, content.context)} · generated {when}*",
        "",
    ]

    flags = content.safety_flags
    if flags.urgent_contact or flags.red_flags:
        out.append("## Safety")
        if flags.urgent_contact:
            out.append("**Contact your care team right away if any warning sign appears.**")
        if flags.contraindication_mentioned:
            out.append("Your instructions mention a contraindication.")
        out.extend(f"- {f}" for f in flags.red_flags)
        out.append("")

    out += ["## Your Instructions", "", content.simplified_text, ""]

    if content.domain_details is not None:
        lines = _details_lines(content.domain_details)
        if lines:
            out += ["## Key Details", "", *lines, ""]

    out += ["## Your Answers", ""]
    for i, item in enumerate(content.qa_items):
        chosen = answers.get(i)
        out.append(f"**{i + 1}. {item.question}**")
        if chosen is None:
            out.append("- Your answer: (not answered)")
        else:
            mark = "correct" if chosen == item.correct_answer else "incorrect"
            out.append(f"- Your answer: {chosen} ({mark})")
        out.append(f"- Correct answer: {item.correct_answer}")
        out.append("")

    out.append(f"Reading level: grade {content.reading_grade_after}")
    return "\n".join(out) + "\n"
