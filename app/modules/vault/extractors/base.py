"""
Base interface for text/field extraction providers.
Both the Claude and the local PDF text-layer implementations conform to this interface.
The pipeline only ever sees ExtractionResult, never provider-specific payloads.
"""

import re
from dataclasses import dataclass, field
from typing import Protocol


@dataclass
class ExtractionResult:
    """Normalized extraction output, the same for every provider."""
    extracted_text: str = ""
    extracted_fields: dict = field(default_factory=dict)
    language: str = "en"
    tags: list[str] = field(default_factory=list)
    document_type: str = "other"
    confidence: float = 0.0


class ExtractionProvider(Protocol):
    """Interface that every extraction provider module implements."""

    async def extract(self, content: bytes, file_name: str, mime_type: str) -> ExtractionResult:
        """Extract text, structured fields and a provider-side classification."""
        ...


SUPPORTED_LANGUAGES = ("de", "fr", "it", "en")

_LANGUAGE_MARKERS = (
    ("de", re.compile(r"\b(der|die|das|und|ist|sind|für|mit|von|zu)\b")),
    ("fr", re.compile(r"\b(le|la|les|et|est|sont|pour|avec|de|à)\b")),
    ("it", re.compile(r"\b(il|gli|è|sono|con|di|della|nel)\b")),
)


def detect_language(text: str) -> str:
    """Stop-word heuristic; German is checked first since most uploads are Swiss-German."""
    lower = text.lower()
    for language, pattern in _LANGUAGE_MARKERS:
        if pattern.search(lower):
            return language
    return "en"
