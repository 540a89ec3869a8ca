"""
Vault API: document upload and listing, versions, duplicate suggestions, reminders,
bundles and zip download.

The caller's owner id arrives in the X-User-Id header, set by the auth gateway in front
of this service.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Header, Response, UploadFile
from pydantic import BaseModel

from app.models.document import Bundle, Document, DocumentReminder, DocumentVersion
from app.modules import storage
from app.modules.vault import bundles, duplicates, ingestion, reminders, store, versions
from app.modules.vault.errors import AuthenticationError, NotFoundError, InvalidRequestError
from app.modules.vault.id_mapping import display_name
from app.modules.vault.queue import processing_queue

logger = logging.getLogger(__name__)

router = APIRouter()

DUPLICATES_DEFAULT_THRESHOLD = 0.75
DEFAULT_SNOOZE_DAYS = 7


async def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise AuthenticationError("Unauthorized", hint="Sign in again.")
    try:
        return str(UUID(x_user_id))
    except ValueError:
        raise AuthenticationError("Unauthorized", details="Malformed user id") from None


class ManualVersionRequest(BaseModel):
    parent_version_id: Optional[UUID] = None
    change_summary: Optional[str] = None


class ReminderAction(BaseModel):
    action: str
    days: int = DEFAULT_SNOOZE_DAYS


class BundleCreate(BaseModel):
    bundle_name: Optional[str] = None
    description: Optional[str] = None
    document_ids: list[UUID] = []


class BundleUpdate(BaseModel):
    bundle_name: Optional[str] = None
    description: Optional[str] = None


class DocumentIds(BaseModel):
    document_ids: list[UUID] = []


async def _owned_document(document_id: UUID, user_id: str) -> dict:
    document = await store.get_document(str(document_id), user_id)
    if not document:
        raise NotFoundError("Document not found")
    return document


def _serialize_document(row: dict, include_text: bool = True) -> dict:
    exclude = None if include_text else {"extracted_text"}
    data = Document.model_validate(row).model_dump(mode="json", exclude=exclude)
    data["download_url"] = storage.get_url_for_file(row["storage_path"])
    if row.get("thumbnail_url"):
        data["thumbnail_url"] = storage.get_url_for_file(row["thumbnail_url"])
    return data


def _serialize_version(row: dict) -> dict:
    data = DocumentVersion.model_validate(row).model_dump(mode="json")
    if "is_viewing" in row:
        data["is_viewing"] = row["is_viewing"]
    return data


def _serialize_bundle(row: dict) -> dict:
    exclude = None if "document_count" in row else {"document_count"}
    data = Bundle.model_validate(row).model_dump(mode="json", exclude=exclude)
    if "documents" in row:
        data["documents"] = [_serialize_document(d, include_text=False) for d in row["documents"]]
    return data


# --- Documents ---

@router.post("/upload")
async def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    document_type: Optional[str] = Form(None),
    document_id: Optional[int] = Form(None),
    fulfilled_requirement: Optional[str] = Form(None),
    user_id: str = Depends(get_user_id),
):
    """Accept a file; extraction and classification finish in the background.

    document_id: stable global type id from the checklist UI (wins over document_type)
    """
    content = await file.read()
    outcome = await ingestion.upload_document(
        user_id,
        file.filename or "document",
        file.content_type,
        content,
        document_type=document_type,
        document_id=document_id,
        fulfilled_requirement=fulfilled_requirement,
    )
    document = outcome.document
    background_tasks.add_task(
        processing_queue.run,
        f"process-{document['id']}",
        ingestion.process_document,
        document,
        content,
        outcome.override,
    )

    link = outcome.version_link
    message = "Document uploaded successfully. Processing in background."
    if link.linked:
        message = f"Document uploaded as version {link.version_number}. Processing in background."

    return {
        "success": True,
        "document": {
            "id": str(document["id"]),
            "file_name": document["file_name"],
            "processing_status": document["processing_status"],
        },
        "version_linked": link.linked,
        "parent_document_id": link.parent_document_id,
        "version_number": link.version_number,
        "message": message,
    }


@router.get("/list")
async def list_documents(
    type: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    user_id: str = Depends(get_user_id),
):
    rows = await store.list_documents(user_id, document_type=type, status=status, limit=limit, offset=offset)
    documents = []
    for row in rows:
        data = _serialize_document(row, include_text=False)
        data["version_count"], data["version_number"] = await versions.version_info(str(row["id"]))
        documents.append(data)
    return {"documents": documents, "count": len(documents), "limit": limit, "offset": offset}


@router.get("/documents/{document_id}")
async def get_document(document_id: UUID, user_id: str = Depends(get_user_id)):
    document = await _owned_document(document_id, user_id)
    data = _serialize_document(document)
    data["version_count"], data["version_number"] = await versions.version_info(str(document["id"]))
    return {"document": data}


@router.delete("/documents/{document_id}")
async def delete_document(document_id: UUID, user_id: str = Depends(get_user_id)):
    if not await store.soft_delete_document(str(document_id), user_id):
        raise NotFoundError("Document not found")
    logger.info("Document %s deleted by %s", document_id, user_id)
    return {"success": True, "message": "Document deleted"}


# --- Versions ---

@router.get("/documents/{document_id}/versions")
async def list_versions(document_id: UUID, user_id: str = Depends(get_user_id)):
    await _owned_document(document_id, user_id)
    chain = await versions.list_versions(str(document_id))
    return {
        "success": True,
        "document_id": chain["document_id"],
        "versions": [_serialize_version(v) for v in chain["versions"]],
        "count": len(chain["versions"]),
    }


@router.post("/documents/{document_id}/versions")
async def create_version(
    document_id: UUID,
    body: Optional[ManualVersionRequest] = None,
    user_id: str = Depends(get_user_id),
):
    await _owned_document(document_id, user_id)
    body = body or ManualVersionRequest()
    record = await versions.create_manual_version(
        str(document_id),
        user_id,
        parent_version_id=str(body.parent_version_id) if body.parent_version_id else None,
        change_summary=body.change_summary,
    )
    return {"success": True, "version": _serialize_version(record)}


@router.get("/documents/{document_id}/versions/{version_id}")
async def get_version(document_id: UUID, version_id: UUID, user_id: str = Depends(get_user_id)):
    await _owned_document(document_id, user_id)
    record = await versions.get_version(str(document_id), str(version_id))
    return {"success": True, "version": _serialize_version(record)}


@router.post("/documents/{document_id}/versions/{version_id}/restore")
async def restore_version(document_id: UUID, version_id: UUID, user_id: str = Depends(get_user_id)):
    await _owned_document(document_id, user_id)
    record = await versions.restore_version(str(document_id), str(version_id))
    return {
        "success": True,
        "version": _serialize_version(record),
        "message": f"Version {record['version_number']} restored",
    }


# --- Duplicates ---

@router.get("/documents/{document_id}/duplicates")
async def find_duplicates(
    document_id: UUID,
    threshold: float = DUPLICATES_DEFAULT_THRESHOLD,
    user_id: str = Depends(get_user_id),
):
    """Documents that might be the same as (or an older version of) this one."""
    document = await _owned_document(document_id, user_id)
    similar = await duplicates.detect_similar_documents(
        user_id,
        document["file_name"],
        document.get("extracted_text"),
        document.get("document_type"),
        threshold=threshold,
        exclude_id=str(document["id"]),
    )
    return {
        "success": True,
        "similar_documents": [s.model_dump(mode="json") for s in similar],
        "count": len(similar),
        "threshold": threshold,
    }


# --- Reminders ---

@router.get("/reminders")
async def list_reminders(status: Optional[str] = None, user_id: str = Depends(get_user_id)):
    rows = await store.list_reminders(user_id, status=status)
    result = []
    for row in rows:
        data = DocumentReminder.model_validate(row).model_dump(mode="json")
        data["days_remaining"] = reminders.days_remaining(row["deadline_date"])
        data["document"] = {
            "id": str(row["document_id"]),
            "file_name": row.get("file_name"),
            "document_type": row.get("document_type"),
            "display_name": display_name(row.get("document_type") or "other"),
        }
        result.append(data)
    return {"reminders": result, "count": len(result)}


@router.post("/reminders/{reminder_id}")
async def update_reminder(reminder_id: UUID, body: ReminderAction, user_id: str = Depends(get_user_id)):
    if body.action == "snooze":
        if body.days < 1:
            raise InvalidRequestError("Invalid snooze duration", details="days must be at least 1")
        until = datetime.now(timezone.utc) + timedelta(days=body.days)
        row = await store.update_reminder(str(reminder_id), user_id, "snoozed", snoozed_until=until)
    elif body.action == "complete":
        row = await store.update_reminder(str(reminder_id), user_id, "completed")
    else:
        raise InvalidRequestError("Invalid action", hint="Use 'snooze' or 'complete'.")

    if not row:
        raise NotFoundError("Reminder not found")
    return {"success": True, "reminder": DocumentReminder.model_validate(row).model_dump(mode="json")}


@router.delete("/reminders/{reminder_id}")
async def delete_reminder(reminder_id: UUID, user_id: str = Depends(get_user_id)):
    if not await store.delete_reminder(str(reminder_id), user_id):
        raise NotFoundError("Reminder not found")
    return {"success": True}


# --- Bundles ---

@router.post("/bundles")
async def create_bundle(body: BundleCreate, user_id: str = Depends(get_user_id)):
    bundle, documents = await bundles.create_bundle(
        user_id, body.bundle_name, description=body.description, document_ids=body.document_ids
    )
    return {
        "success": True,
        "bundle": _serialize_bundle(bundle),
        "documents": [_serialize_document(d, include_text=False) for d in documents],
    }


@router.get("/bundles")
async def list_bundles(include_documents: bool = False, user_id: str = Depends(get_user_id)):
    rows = await bundles.list_bundles(user_id, include_documents=include_documents)
    return {"success": True, "bundles": [_serialize_bundle(b) for b in rows], "count": len(rows)}


@router.get("/bundles/{bundle_id}")
async def get_bundle(bundle_id: UUID, user_id: str = Depends(get_user_id)):
    bundle, documents = await bundles.get_bundle(str(bundle_id), user_id)
    return {
        "success": True,
        "bundle": _serialize_bundle(bundle),
        "documents": [_serialize_document(d, include_text=False) for d in documents],
    }


@router.patch("/bundles/{bundle_id}")
async def update_bundle(bundle_id: UUID, body: BundleUpdate, user_id: str = Depends(get_user_id)):
    row = await bundles.update_bundle(str(bundle_id), user_id, body.model_dump(exclude_unset=True))
    return {"success": True, "bundle": _serialize_bundle(row)}


@router.delete("/bundles/{bundle_id}")
async def delete_bundle(bundle_id: UUID, user_id: str = Depends(get_user_id)):
    await bundles.delete_bundle(str(bundle_id), user_id)
    return {"success": True, "message": "Bundle deleted successfully"}


@router.post("/bundles/{bundle_id}/documents")
async def add_bundle_documents(bundle_id: UUID, body: DocumentIds, user_id: str = Depends(get_user_id)):
    added = await bundles.add_documents(str(bundle_id), user_id, body.document_ids)
    message = f"Added {added} document(s) to bundle" if added else "All documents are already in the bundle"
    return {"success": True, "added_count": added, "message": message}


@router.delete("/bundles/{bundle_id}/documents")
async def remove_bundle_documents(bundle_id: UUID, body: DocumentIds, user_id: str = Depends(get_user_id)):
    removed = await bundles.remove_documents(str(bundle_id), user_id, body.document_ids)
    return {"success": True, "removed_count": removed, "message": f"Removed {removed} document(s) from bundle"}


@router.post("/bulk-download")
async def bulk_download(body: DocumentIds, user_id: str = Depends(get_user_id)):
    """Zip of the caller's documents among document_ids; files that cannot be read are left out."""
    content, included = await bundles.build_archive(user_id, body.document_ids)
    logger.info("Bulk download of %d documents for %s", included, user_id)
    return Response(
        content=content,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{bundles.archive_file_name()}"',
            "Cache-Control": "no-cache",
        },
    )
