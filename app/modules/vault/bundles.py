"""
Bundles: named, reusable sets of a user's documents (for a visa application, a rental
dossier, ...), plus zip export of any set of documents.

Membership only ever covers the caller's own non-deleted documents; ids that are unknown,
deleted or someone else's are dropped silently.
"""

import io
import logging
import re
import zipfile
from datetime import datetime, timezone

from app.modules import storage
from app.modules.vault import store
from app.modules.vault.errors import InvalidRequestError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

MAX_ARCHIVE_NAME_LENGTH = 255


def _clean_name(bundle_name) -> str:
    if not isinstance(bundle_name, str) or not bundle_name.strip():
        raise InvalidRequestError("bundle_name is required and must be a non-empty string")
    return bundle_name.strip()


def _clean_description(description) -> str | None:
    if description is None:
        return None
    return description.strip() or None


def _require_ids(document_ids) -> list[str]:
    if not document_ids:
        raise InvalidRequestError("document_ids must be a non-empty array")
    return [str(i) for i in document_ids]


async def _owned_bundle(bundle_id: str, user_id: str) -> dict:
    bundle = await store.get_bundle(bundle_id, user_id)
    if not bundle:
        raise NotFoundError("Bundle not found")
    return bundle


async def create_bundle(
    user_id: str, bundle_name: str, description: str | None = None, document_ids=None
) -> tuple[dict, list[dict]]:
    """Create a bundle and, optionally, its first members. Returns (bundle, member documents)."""
    name = _clean_name(bundle_name)
    documents = await store.get_documents_by_ids(user_id, [str(i) for i in document_ids]) if document_ids else []

    async with store.transaction() as conn:
        bundle = await store.insert_bundle(user_id, name, _clean_description(description), conn=conn)
        if documents:
            await store.add_bundle_documents(str(bundle["id"]), [str(d["id"]) for d in documents], conn=conn)

    logger.info("Bundle %s created with %d documents", bundle["id"], len(documents))
    return {**bundle, "document_count": len(documents)}, documents


async def list_bundles(user_id: str, include_documents: bool = False) -> list[dict]:
    bundles = await store.list_bundles(user_id)
    if include_documents:
        for bundle in bundles:
            bundle["documents"] = await store.list_bundle_documents(str(bundle["id"]))
    return bundles


async def get_bundle(bundle_id: str, user_id: str) -> tuple[dict, list[dict]]:
    bundle = await _owned_bundle(bundle_id, user_id)
    return bundle, await store.list_bundle_documents(bundle_id)


async def update_bundle(bundle_id: str, user_id: str, changes: dict) -> dict:
    """changes holds only the fields the caller sent; a null or empty description clears it."""
    updates = {}
    if "bundle_name" in changes:
        updates["bundle_name"] = _clean_name(changes["bundle_name"])
    if "description" in changes:
        updates["description"] = _clean_description(changes["description"])
    if not updates:
        raise InvalidRequestError("No valid fields to update", hint="Send bundle_name and/or description.")

    bundle = await store.update_bundle(bundle_id, user_id, updates)
    if not bundle:
        raise NotFoundError("Bundle not found")
    return bundle


async def delete_bundle(bundle_id: str, user_id: str) -> None:
    if not await store.delete_bundle(bundle_id, user_id):
        raise NotFoundError("Bundle not found")
    logger.info("Bundle %s deleted by %s", bundle_id, user_id)


async def add_documents(bundle_id: str, user_id: str, document_ids) -> int:
    ids = _require_ids(document_ids)
    await _owned_bundle(bundle_id, user_id)

    documents = await store.get_documents_by_ids(user_id, ids)
    if not documents:
        raise InvalidRequestError("No valid documents found")

    added = await store.add_bundle_documents(bundle_id, [str(d["id"]) for d in documents])
    logger.info("Added %d documents to bundle %s", added, bundle_id)
    return added


async def remove_documents(bundle_id: str, user_id: str, document_ids) -> int:
    ids = _require_ids(document_ids)
    await _owned_bundle(bundle_id, user_id)
    return await store.remove_bundle_documents(bundle_id, ids)


def sanitize_file_name(file_name: str) -> str:
    """Archive-safe entry name: no path or reserved characters, no whitespace."""
    name = re.sub(r'[<>:"/\\|?*]', "_", file_name)
    name = re.sub(r"\s+", "_", name)
    return name[:MAX_ARCHIVE_NAME_LENGTH] or "document"


def _unique_name(name: str, taken: set[str]) -> str:
    if name not in taken:
        return name
    stem, dot, ext = name.rpartition(".")
    if not dot:
        stem, ext = name, ""
    counter = 2
    while True:
        candidate = f"{stem}_{counter}.{ext}" if ext else f"{stem}_{counter}"
        if candidate not in taken:
            return candidate
        counter += 1


def archive_file_name(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"documents-{now.date().isoformat()}.zip"


async def build_archive(user_id: str, document_ids) -> tuple[bytes, int]:
    """Zip the caller's documents among document_ids. Returns (zip bytes, files included).

    A blob that cannot be fetched is skipped; if none can be, the export fails.
    """
    if not document_ids:
        raise InvalidRequestError("No documents specified")

    documents = await store.get_documents_by_ids(user_id, [str(i) for i in document_ids])
    if not documents:
        raise NotFoundError("No valid documents found")

    buffer = io.BytesIO()
    names: set[str] = set()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for document in documents:
            try:
                content = await storage.download_file(document["storage_path"])
            except storage.StorageUnavailable as e:
                logger.warning("Skipping %s in archive: %s", document["file_name"], e)
                continue
            name = _unique_name(sanitize_file_name(document["file_name"]), names)
            names.add(name)
            archive.writestr(name, content)

    if not names:
        raise StorageError("Could not read any of the requested files", hint="Try again in a moment.")

    logger.info("Built archive of %d/%d documents for %s", len(names), len(documents), user_id)
    return buffer.getvalue(), len(names)
