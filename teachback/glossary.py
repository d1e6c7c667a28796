"""The user's personal glossary of defined terms."""
from __future__ import annotations

import json
import logging

from teachback.models import GlossaryTerm
from teachback.persistence import GLOSSARY_KEY, PersistenceStore

log = logging.getLogger("teachback.glossary")


class Glossary:
    """Terms are unique case-insensitively and always kept sorted by term.

    Every mutation is written straight back to the store.
    """

    def __init__(self, store: PersistenceStore, key: str = GLOSSARY_KEY):
        self.store = store
        self.key = key
        self._terms: list[GlossaryTerm] = self._read()

    def _read(self) -> list[GlossaryTerm]:
        raw = self.store.get(self.key)
        if raw is None:
            return []
        try:
            terms = [GlossaryTerm(str(t["term"]), str(t["definition"])) for t in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as e:
            log.warning("ignoring unreadable glossary record: %s", e)
            return []
        return self._dedupe_sorted(terms)

    @staticmethod
    def _dedupe_sorted(terms: list[GlossaryTerm]) -> list[GlossaryTerm]:
        seen: set[str] = set()
        unique = []
        for t in terms:
            k = t.term.strip().casefold()
            if k and k not in seen:
                seen.add(k)
                unique.append(t)
        return sorted(unique, key=lambda t: t.term.casefold())

    def _write(self) -> None:
        self._terms = self._dedupe_sorted(self._terms)
        self.store.set(
            self.key,
            json.dumps([{"term": t.term, "definition": t.definition} for t in self._terms]),
        )

    @property
    def terms(self) -> list[GlossaryTerm]:
        return list(self._terms)

    def __len__(self) -> int:
        return len(self._terms)

    def contains(self, term: str) -> bool:
        k = term.strip().casefold()
        return any(t.term.casefold() == k for t in self._terms)

    def add(self, term: str, definition: str) -> bool:
        """Add a term; returns False if it was already present."""
        term = term.strip()
        if not term:
            raise ValueError("term must not be empty")
        if self.contains(term):
            return False
        self._terms.append(GlossaryTerm(term, definition.strip()))
        self._write()
        return True

    def remove(self, term: str) -> bool:
        k = term.strip().casefold()
        before = len(self._terms)
        self._terms = [t for t in self._terms if t.term.casefold() != k]
        if len(self._terms) == before:
            return False
        self._write()
        return True
