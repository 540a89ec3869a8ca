"""
Ingestion Orchestrator.

Synchronous path (upload_document): validate, reject exact duplicates, store the bytes,
insert the document as `processing` with its initial classification.

Background path (process_document, exactly once per accepted upload): extraction,
final classification, thumbnail, version linking, then `completed`; any error lands the
document in `failed`. Reminders and similarity suggestions run after completion and can
never change the outcome.
"""

import logging
from dataclasses import dataclass

from app.config import get_settings
from app.modules import storage
from app.modules.vault import duplicates, extraction, reminders, store, thumbnails, versions
from app.modules.vault.errors import (
    DuplicateDocumentError,
    PersistenceError,
    StorageError,
    UploadValidationError,
)
from app.modules.vault.resolution import ExplicitClassification, resolve_final, resolve_initial, resolve_override
from app.modules.vault.versions import NOT_LINKED, VersionLink

logger = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    document: dict
    override: ExplicitClassification | None
    version_link: VersionLink


def validate_upload(content: bytes, mime_type: str | None) -> None:
    settings = get_settings()
    if not content:
        raise UploadValidationError("No file provided", hint="Choose a file to upload.")
    if len(content) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise UploadValidationError(
            "File size exceeds limit",
            details=f"{len(content)} bytes (max {limit_mb}MB)",
            hint="Compress the file or split it into smaller documents.",
        )
    if mime_type not in settings.allowed_mime_types:
        raise UploadValidationError(
            "Invalid file type",
            details=f"{mime_type or 'unknown'} is not supported",
            hint="Only PDF, JPEG, PNG and HEIC files are allowed.",
        )


async def upload_document(
    user_id: str,
    file_name: str,
    mime_type: str | None,
    content: bytes,
    document_type: str | None = None,
    document_id: int | None = None,
    fulfilled_requirement: str | None = None,
) -> UploadOutcome:
    validate_upload(content, mime_type)
    override = resolve_override(document_type, document_id)

    existing = await duplicates.check_exact_duplicate(user_id, file_name, len(content), content)
    if existing:
        raise DuplicateDocumentError(existing)

    file_hash = duplicates.compute_file_hash(content)
    storage_path = storage.build_storage_path(user_id, file_name)
    try:
        await storage.upload_file(content, storage_path, mime_type)
    except storage.StorageUnavailable as e:
        logger.error("Storage upload failed for %s: %s", file_name, e)
        raise StorageError("Failed to upload file to storage", details=str(e), hint="Please try again.") from e

    initial = resolve_initial(file_name, override)
    try:
        document = await store.insert_document(
            user_id=user_id,
            file_name=file_name,
            mime_type=mime_type,
            file_size=len(content),
            file_hash=file_hash,
            storage_path=storage_path,
            document_type=initial.document_type,
            tags=list(initial.tags),
            confidence=initial.confidence,
            fulfilled_requirement=fulfilled_requirement,
        )
    except Exception as e:
        logger.error("Document insert failed for %s: %s", file_name, e)
        await _discard_blob(storage_path)
        raise PersistenceError("Failed to save document", details=str(e), hint="Please try again.") from e

    logger.info(
        "Accepted %s for user %s as %s (%s, confidence %.2f)",
        file_name, user_id, document["id"], initial.document_type, initial.confidence,
    )

    try:
        link = await versions.preview_version_link(user_id, file_name, file_hash, str(document["id"]))
    except Exception as e:
        logger.warning("Version preview failed for %s: %s", document["id"], e)
        link = NOT_LINKED

    return UploadOutcome(document=document, override=override, version_link=link)


async def _discard_blob(storage_path: str) -> None:
    try:
        await storage.delete_file(storage_path)
    except storage.StorageUnavailable as e:
        logger.error("Could not remove orphaned blob %s: %s", storage_path, e)


async def process_document(document: dict, content: bytes, override: ExplicitClassification | None) -> str:
    """Run the background pipeline for one document and return its final processing status."""
    settings = get_settings()
    document_id = str(document["id"])
    user_id = str(document["user_id"])
    file_name = document["file_name"]

    try:
        result = await extraction.extract_document(content, file_name, document["mime_type"])
        final = resolve_final(file_name, override, result)
        thumbnail = await thumbnails.generate_thumbnail(content, document["mime_type"], document["storage_path"])
        extracted_text = result.extracted_text[: settings.extracted_text_max_chars]

        # a document joins a chain only if it also completes
        async with store.transaction() as conn:
            link = await versions.maybe_link_as_version(
                user_id, file_name, document["file_hash"], document_id, conn=conn
            )
            await store.complete_document(
                document_id,
                document_type=final.document_type,
                tags=list(final.tags),
                confidence=final.confidence,
                extracted_text=extracted_text,
                extracted_fields=result.extracted_fields,
                language=result.language,
                thumbnail_url=thumbnail,
                conn=conn,
            )
    except Exception as e:
        logger.exception("Processing failed for document %s (%s)", document_id, file_name)
        await _mark_failed(document_id, str(e) or type(e).__name__)
        return "failed"

    logger.info(
        "Processed %s: %s (confidence %.2f)%s",
        document_id, final.document_type, final.confidence,
        f", version {link.version_number} of {link.parent_document_id}" if link.linked else "",
    )

    await reminders.create_reminders_for_document(document_id, user_id, final.document_type, result.extracted_fields)
    await _attach_similar_documents(document_id, user_id, file_name, extracted_text, final.document_type)
    return "completed"


async def _mark_failed(document_id: str, error: str) -> None:
    try:
        await store.mark_document_failed(document_id, error)
    except Exception as e:
        # the document stays `processing` with no error recorded
        logger.error("Could not mark document %s as failed: %s", document_id, e)


async def _attach_similar_documents(
    document_id: str, user_id: str, file_name: str, extracted_text: str, document_type: str
) -> None:
    try:
        similar = await duplicates.detect_similar_documents(
            user_id, file_name, extracted_text, document_type, exclude_id=document_id
        )
        if similar:
            await store.set_similar_documents(document_id, [s.model_dump(mode="json") for s in similar])
            logger.info("Document %s resembles %d existing documents", document_id, len(similar))
    except Exception as e:
        logger.warning("Similarity search failed for %s: %s", document_id, e)
