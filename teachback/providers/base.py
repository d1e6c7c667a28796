from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path


@dataclass
class Attachment:
    """A single inline media part (raster image or recorded audio)."""
    data: bytes
    mime_type: str


class LLMProvider(ABC):
    @abstractmethod
    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        *,
        system: str | None = None,
        attachment: Attachment | None = None,
        schema: dict | None = None,
    ) -> str:
        ...

    async def generate_stream(
        self, prompt: str, temperature: float = 0.7, system: str | None = None
    ) -> AsyncIterator[str]:
        """Stream response tokens. Default: yield full response at once."""
        result = await self.generate(prompt, temperature, system=system)
        yield result

    @abstractmethod
    def name(self) -> str:
        ...


class TTSProvider(ABC):
    extension = "mp3"

    @abstractmethod
    async def synthesize(self, text: str, output_path: Path, language: str = "en") -> Path:
        ...

    @abstractmethod
    def name(self) -> str:
        ...


@dataclass
class LiveEvent:
    """One normalized server message from a live audio conversation."""
    input_text: str = ""
    output_text: str = ""
    audio: bytes = b""
    turn_complete: bool = False
    interrupted: bool = False


class LiveConnection(ABC):
    """A bidirectional audio conversation with the backend."""

    @abstractmethod
    async def send_audio(self, pcm: bytes) -> None:
        ...

    @abstractmethod
    def events(self) -> AsyncIterator[LiveEvent]:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
