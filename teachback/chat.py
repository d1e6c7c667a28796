"""Streaming chat helper with structured "definition" replies."""
from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from teachback.demo_data import DEMO_CHAT_TURNS
from teachback.errors import QuizStateError
from teachback.gateway import extract_json
from teachback.models import ChatTurn, GlossaryTerm
from teachback.prompts import CHAT_SYSTEM_INSTRUCTION

if TYPE_CHECKING:
    from teachback.glossary import Glossary
    from teachback.providers.base import LLMProvider

log = logging.getLogger("teachback.chat")

GREETING = (
    "Hello! How can I help you understand your medical instructions today? You can ask me "
    'to define a term like "What is an anticoagulant?" or rephrase a sentence.'
)
ERROR_REPLY = "Sorry, I encountered an error. Please try again."

CHAT_TEMPERATURE = 0.7


def parse_definition(text: str) -> GlossaryTerm | None:
    """Interpret a finished reply as ``{isDefinition, term, definition}``.

    Anything else (plain prose, partial JSON, a false flag) returns None;
    that is the normal case, not an error.
    """
    stripped = text.strip()
    if not stripped.startswith(("{", "```")):
        return None
    data = extract_json(stripped)
    if not isinstance(data, dict) or data.get("isDefinition") is not True:
        return None
    term, definition = data.get("term"), data.get("definition")
    if not isinstance(term, str) or not isinstance(definition, str):
        return None
    if not term.strip() or not definition.strip():
        return None
    return GlossaryTerm(term.strip(), definition.strip())


class ChatSession:
    """Append-only conversation; the first turn is always the greeting.

    In demo mode the session shows canned turns and refuses to send.
    """

    def __init__(self, llm: LLMProvider | None, glossary: Glossary, demo: bool = False):
        self.llm = llm
        self.glossary = glossary
        self.demo = demo
        self.sending = False
        if demo:
            self.turns = [ChatTurn(t.role, t.text, t.definition) for t in DEMO_CHAT_TURNS]
        else:
            self.turns = [ChatTurn("model", GREETING)]

    def _build_prompt(self, document: str | None) -> tuple[str, str]:
        system = CHAT_SYSTEM_INSTRUCTION
        if document:
            system += "\n\nThe patient is reading these simplified instructions:\n" + document

        lines: list[str] = []
        for turn in self.turns[:-1]:
            role = "Patient" if turn.role == "user" else "Helper"
            if turn.definition is not None:
                text = json.dumps({
                    "isDefinition": True,
                    "term": turn.definition.term,
                    "definition": turn.definition.definition,
                })
            else:
                text = turn.text
            lines.append(f"{role}: {text}")
            lines.append("")
        lines.append("Helper:")
        return system, "\n".join(lines)

    async def send(self, text: str, document: str | None = None) -> AsyncIterator[str]:
        """Send a user turn and yield reply tokens as they arrive.

        The last turn grows as tokens come in.  On completion a definition
        payload replaces the turn's text with a definition card; a backend
        error appends an apology turn instead.
        """
        text = text.strip()
        if not text:
            raise ValueError("message must not be empty")
        if self.demo:
            raise QuizStateError("chat is read-only during the demo")
        if self.sending:
            raise QuizStateError("a reply is still streaming")
        if self.llm is None:
            raise QuizStateError("no language model configured")

        self.sending = True
        self.turns.append(ChatTurn("user", text))
        try:
            reply: ChatTurn | None = None
            try:
                self.turns.append(ChatTurn("model", ""))
                system, prompt = self._build_prompt(document)
                reply = self.turns[-1]
                async for token in self.llm.generate_stream(prompt, CHAT_TEMPERATURE, system=system):
                    reply.text += token
                    yield token
            except Exception as e:
                log.warning("chat error: %s", e)
                if reply is not None and not reply.text:
                    self.turns.pop()
                self.turns.append(ChatTurn("model", ERROR_REPLY))
                return

            definition = parse_definition(reply.text)
            if definition is not None:
                reply.definition = definition
                reply.text = ""
        finally:
            self.sending = False

    def add_to_glossary(self, index: int) -> bool:
        """Add the definition shown in turn *index*; False if already present."""
        try:
            turn = self.turns[index]
        except IndexError:
            raise ValueError(f"no chat turn {index}") from None
        if turn.definition is None:
            raise ValueError(f"chat turn {index} is not a definition")
        return self.glossary.add(turn.definition.term, turn.definition.definition)

    def to_dict(self) -> dict:
        return {
            "demo": self.demo,
            "sending": self.sending,
            "turns": [
                {**t.to_dict(), "in_glossary": bool(t.definition and self.glossary.contains(t.definition.term))}
                for t in self.turns
            ],
        }
