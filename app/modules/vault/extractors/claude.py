"""Claude extraction provider: the PDF or image goes to Claude as a native content block."""

import base64
import json
import logging

from anthropic import AsyncAnthropic

from app.config import get_settings
from app.modules.vault.classifier import DOCUMENT_TYPES, TAG_VOCABULARY, filter_tags
from app.modules.vault.extractors.base import SUPPORTED_LANGUAGES, ExtractionResult, detect_language

logger = logging.getLogger(__name__)

# Media types Claude accepts as image blocks; HEIC/HEIF is not among them.
IMAGE_MEDIA_TYPES = {"image/jpeg": "image/jpeg", "image/jpg": "image/jpeg", "image/png": "image/png"}

EXTRACTION_PROMPT = """You are an expert document classifier for Swiss administrative documents.
Classify the attached document using BOTH its content and its filename, transcribe its text,
and extract the key fields.

FILE NAME: "{file_name}"

Document types (choose ONE): {document_types}
Tags (choose only from this list): {tags}

Return ONLY valid JSON (no markdown, no explanations):
{{
  "extracted_text": "full plain-text transcription of the document",
  "document_type": "one of the document types",
  "confidence": 0.0-1.0,
  "tags": ["tag1", "tag2"],
  "extracted_fields": {{
    "name": "... or null",
    "date_of_birth": "YYYY-MM-DD or null",
    "passport_number": "... or null",
    "expiry_date": "YYYY-MM-DD or null",
    "end_date": "YYYY-MM-DD or null",
    "cancellation_deadline": "YYYY-MM-DD or null",
    "renewal_date": "YYYY-MM-DD or null",
    "address": "... or null",
    "amount": "... or null",
    "document_date": "YYYY-MM-DD or null"
  }},
  "language": "de" | "fr" | "it" | "en"
}}"""


def _content_block(content: bytes, mime_type: str) -> dict | None:
    data_b64 = base64.standard_b64encode(content).decode("utf-8")
    if mime_type == "application/pdf":
        return {"type": "document", "source": {"type": "base64", "media_type": "application/pdf", "data": data_b64}}
    if mime_type in IMAGE_MEDIA_TYPES:
        return {"type": "image", "source": {"type": "base64", "media_type": IMAGE_MEDIA_TYPES[mime_type], "data": data_b64}}
    return None


def parse_response(raw: str) -> dict:
    """Pull the JSON object out of Claude's reply (it sometimes wraps it in prose or code fences)."""
    raw = raw.strip()
    if raw.startswith("{"):
        return json.loads(raw)
    json_start = raw.find("{")
    json_end = raw.rfind("}") + 1
    if json_start >= 0 and json_end > json_start:
        return json.loads(raw[json_start:json_end])
    raise ValueError("No JSON object in extraction response")


def to_result(payload: dict) -> ExtractionResult:
    """Validate Claude's JSON against the closed type/tag/language sets."""
    text = payload.get("extracted_text") or ""
    doc_type = payload.get("document_type")
    if doc_type not in DOCUMENT_TYPES:
        doc_type = "other"

    try:
        confidence = float(payload.get("confidence") or 0.5)
    except (TypeError, ValueError):
        confidence = 0.5

    language = payload.get("language")
    if language not in SUPPORTED_LANGUAGES:
        language = detect_language(text)

    fields = payload.get("extracted_fields")
    if not isinstance(fields, dict):
        fields = {}

    return ExtractionResult(
        extracted_text=text,
        extracted_fields={k: v for k, v in fields.items() if v not in (None, "", "null")},
        language=language,
        tags=filter_tags(payload.get("tags")),
        document_type=doc_type,
        confidence=min(1.0, max(0.0, confidence)),
    )


async def extract(content: bytes, file_name: str, mime_type: str) -> ExtractionResult:
    block = _content_block(content, mime_type)
    if block is None:
        logger.warning("Claude cannot read %s (%s); continuing without extracted text", file_name, mime_type)
        return ExtractionResult()

    settings = get_settings()
    client = AsyncAnthropic(api_key=settings.anthropic_api_key, timeout=settings.extraction_timeout_seconds)

    prompt = EXTRACTION_PROMPT.format(
        file_name=file_name,
        document_types=", ".join(DOCUMENT_TYPES),
        tags=", ".join(sorted(TAG_VOCABULARY)),
    )

    response = await client.messages.create(
        model=settings.anthropic_model,
        max_tokens=4096,
        messages=[{"role": "user", "content": [block, {"type": "text", "text": prompt}]}],
    )

    result = to_result(parse_response(response.content[0].text))
    logger.info(
        "Claude extracted %d chars from %s: type=%s confidence=%.2f",
        len(result.extracted_text), file_name, result.document_type, result.confidence,
    )
    return result
