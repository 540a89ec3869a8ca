"""
Local extraction provider: reads the PDF text layer with pypdf, no network calls.
Scanned PDFs and images yield no text; classification then falls back to the filename.
"""

import io
import logging
import re
from datetime import datetime

from pypdf import PdfReader

from app.modules.vault import classifier
from app.modules.vault.extractors.base import ExtractionResult, detect_language

logger = logging.getLogger(__name__)

_DATE = r"(\d{4}-\d{2}-\d{2}|\d{1,2}[./]\d{1,2}[./]\d{4})"

# Label -> field; labels are matched case-insensitively right before a date.
DATE_FIELD_PATTERNS: dict[str, re.Pattern] = {
    "expiry_date": re.compile(
        r"(?:date of expiry|expiry date|expires|valid until|gültig bis|ablaufdatum|date d'expiration|valable jusqu'au|scadenza|valido fino al)\W{0,5}" + _DATE,
        re.IGNORECASE,
    ),
    "cancellation_deadline": re.compile(
        r"(?:cancellation deadline|notice deadline|kündigungsfrist bis|kündbar bis|délai de résiliation|termine di disdetta)\W{0,5}" + _DATE,
        re.IGNORECASE,
    ),
    "end_date": re.compile(
        r"(?:end date|ends on|contract end|vertragsende|befristet bis|date de fin|data di fine)\W{0,5}" + _DATE,
        re.IGNORECASE,
    ),
    "renewal_date": re.compile(
        r"(?:renewal date|renews on|erneuerung|verlängerung am|date de renouvellement|data di rinnovo)\W{0,5}" + _DATE,
        re.IGNORECASE,
    ),
}


def normalize_date(raw: str) -> str | None:
    """ISO, DD.MM.YYYY or DD/MM/YYYY -> YYYY-MM-DD; None when it is not a real date."""
    for fmt in ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(raw, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def extract_date_fields(text: str) -> dict[str, str]:
    fields = {}
    for name, pattern in DATE_FIELD_PATTERNS.items():
        match = pattern.search(text)
        if match:
            value = normalize_date(match.group(1))
            if value:
                fields[name] = value
    return fields


def read_text_layer(content: bytes) -> str:
    reader = PdfReader(io.BytesIO(content))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n".join(p.strip() for p in pages if p.strip())


async def extract(content: bytes, file_name: str, mime_type: str) -> ExtractionResult:
    if mime_type != "application/pdf":
        logger.info("pdf_text provider skips %s (%s)", file_name, mime_type)
        return ExtractionResult()

    text = read_text_layer(content)
    result = classifier.classify(file_name, text)
    fields = extract_date_fields(text)

    logger.info("pdf_text extracted %d chars and %d date fields from %s", len(text), len(fields), file_name)
    return ExtractionResult(
        extracted_text=text,
        extracted_fields=fields,
        language=detect_language(text),
        tags=list(result.tags),
        document_type=result.document_type,
        confidence=result.confidence,
    )
