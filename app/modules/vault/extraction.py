"""
Public API for OCR / field extraction.
Delegates to the configured provider (Claude or the local PDF text layer).
"""

from app.config import get_settings
from app.modules.vault.extractors.base import ExtractionResult


def _get_provider():
    settings = get_settings()
    if settings.extraction_provider == "pdf_text":
        from app.modules.vault.extractors import pdf_text
        return pdf_text
    from app.modules.vault.extractors import claude
    return claude


async def extract_document(content: bytes, file_name: str, mime_type: str) -> ExtractionResult:
    return await _get_provider().extract(content, file_name, mime_type)
