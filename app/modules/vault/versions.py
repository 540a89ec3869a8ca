"""
Version Chain Manager.

Re-uploading a filename with different content links the new document into the chain of
the first document with that name (the anchor). The anchor carries the authoritative
records (v1 "is_original", then one "new_document_id" record per later upload); every
linked document also gets a mirrored record pointing back at the anchor
("parent_document_id") so either side can find the chain.
"""

import logging
from dataclasses import dataclass

from app.modules.vault import store
from app.modules.vault.errors import NotFoundError, InvalidRequestError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionLink:
    linked: bool
    parent_document_id: str | None = None
    version_number: int | None = None


NOT_LINKED = VersionLink(linked=False)


class VersionChainError(Exception):
    """A chain broke its invariants (zero or several current records, gaps in numbering)."""


def _same_id(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


async def resolve_anchor_id(document_id: str, conn=None) -> str:
    """Anchor of the chain a document belongs to (the document itself when it is not a linked child)."""
    parent_id = await store.find_parent_document_id(document_id, conn=conn)
    return str(parent_id) if parent_id else str(document_id)


async def _find_anchor_id(
    user_id: str, file_name: str, file_hash: str | None, new_document_id: str, conn=None
) -> str | None:
    previous = await store.find_latest_by_name(user_id, file_name, exclude_id=new_document_id, conn=conn)
    if previous is None:
        return None
    if file_hash and previous.get("file_hash") == file_hash:
        return None
    # The latest upload may be a linked child; its chain lives on the anchor even when
    # the anchor document itself has been soft-deleted since.
    return await resolve_anchor_id(str(previous["id"]), conn=conn)


async def preview_version_link(user_id: str, file_name: str, file_hash: str, new_document_id: str) -> VersionLink:
    """What maybe_link_as_version would do right now, without writing anything."""
    anchor_id = await _find_anchor_id(user_id, file_name, file_hash, new_document_id)
    if anchor_id is None:
        return NOT_LINKED
    highest = await store.max_version_number(anchor_id)
    return VersionLink(linked=True, parent_document_id=anchor_id, version_number=max(highest, 1) + 1)


async def maybe_link_as_version(
    user_id: str, file_name: str, file_hash: str, new_document_id: str, conn=None
) -> VersionLink:
    """Link new_document_id into the chain of the previous upload with the same filename, if the content differs.

    All writes go through conn; without one, a transaction of its own is opened so a
    chain is never left half-linked.
    """
    if conn is None:
        async with store.transaction() as conn:
            return await maybe_link_as_version(user_id, file_name, file_hash, new_document_id, conn=conn)

    anchor_id = await _find_anchor_id(user_id, file_name, file_hash, new_document_id, conn=conn)
    if anchor_id is None:
        return NOT_LINKED

    records = await store.list_versions(anchor_id, conn=conn)

    if not records:
        original = await store.insert_version(
            anchor_id,
            version_number=1,
            parent_version_id=None,
            is_current=False,
            uploaded_by=user_id,
            change_summary="Original version",
            metadata={"is_original": True},
            conn=conn,
        )
        parent_version_id = original["id"]
        next_number = 2
    else:
        current = next((r for r in records if r["is_current"]), None)
        parent_version_id = current["id"] if current else records[-1]["id"]
        next_number = max(r["version_number"] for r in records) + 1
        await store.clear_current_version(anchor_id, conn=conn)

    await store.insert_version(
        anchor_id,
        version_number=next_number,
        parent_version_id=parent_version_id,
        is_current=True,
        uploaded_by=user_id,
        change_summary=f"New version uploaded: {file_name}",
        metadata={"new_document_id": str(new_document_id)},
        conn=conn,
    )
    await store.insert_version(
        str(new_document_id),
        version_number=next_number,
        parent_version_id=parent_version_id,
        is_current=False,
        uploaded_by=user_id,
        change_summary=f"New version uploaded: {file_name}",
        metadata={"parent_document_id": anchor_id},
        conn=conn,
    )

    await check_version_chain(anchor_id, conn=conn)
    logger.info("Linked %s as version %d of %s (%s)", new_document_id, next_number, anchor_id, file_name)
    return VersionLink(linked=True, parent_document_id=anchor_id, version_number=next_number)


async def check_version_chain(anchor_id: str, conn=None) -> None:
    """Raise VersionChainError unless exactly one record is current and numbers run 1..N without gaps."""
    records = await store.list_versions(anchor_id, conn=conn)
    if not records:
        return
    current = [r for r in records if r["is_current"]]
    if len(current) != 1:
        raise VersionChainError(f"Chain {anchor_id} has {len(current)} current versions")
    numbers = sorted({r["version_number"] for r in records})
    if numbers != list(range(1, len(numbers) + 1)):
        raise VersionChainError(f"Chain {anchor_id} has non-contiguous versions {numbers}")


def dedupe_versions(records: list[dict]) -> list[dict]:
    """One record per version number.

    v1 prefers the "original" record (no new_document_id); later versions prefer the
    record carrying new_document_id.
    """
    by_number: dict[int, dict] = {}
    for record in records:
        number = record["version_number"]
        has_new_doc = bool((record.get("metadata") or {}).get("new_document_id"))
        existing = by_number.get(number)
        if existing is None:
            by_number[number] = record
            continue
        existing_has_new_doc = bool((existing.get("metadata") or {}).get("new_document_id"))
        if number == 1 and existing_has_new_doc and not has_new_doc:
            by_number[number] = record
        elif number > 1 and has_new_doc and not existing_has_new_doc:
            by_number[number] = record
    return [by_number[n] for n in sorted(by_number)]


async def list_versions(document_id: str) -> dict:
    """The chain seen from document_id: anchor id plus deduplicated records with is_viewing."""
    anchor_id = await resolve_anchor_id(document_id)
    versions = dedupe_versions(await store.list_versions(anchor_id))

    viewing_anchor = anchor_id == str(document_id)
    for version in versions:
        metadata = version.get("metadata") or {}
        if viewing_anchor:
            version["is_viewing"] = version["version_number"] == 1
        else:
            version["is_viewing"] = _same_id(metadata.get("new_document_id"), document_id)

    return {"document_id": anchor_id, "versions": versions}


async def get_version(document_id: str, version_id: str) -> dict:
    anchor_id = await resolve_anchor_id(document_id)
    record = await store.get_version(anchor_id, version_id)
    if record is None:
        record = await store.get_version(str(document_id), version_id)
    if record is None:
        raise NotFoundError("Version not found")
    return record


async def create_manual_version(
    document_id: str,
    user_id: str,
    parent_version_id: str | None = None,
    change_summary: str | None = None,
) -> dict:
    """Append a version at max+1 on the document's chain and make it current."""
    async with store.transaction() as conn:
        anchor_id = await resolve_anchor_id(document_id, conn=conn)
        records = await store.list_versions(anchor_id, conn=conn)

        if parent_version_id and not any(_same_id(r["id"], parent_version_id) for r in records):
            raise InvalidRequestError(
                "Invalid parent version",
                details=f"Version {parent_version_id} does not belong to this document",
            )

        if not records:
            next_number = 1
        else:
            next_number = max(r["version_number"] for r in records) + 1
            if parent_version_id is None:
                current = next((r for r in records if r["is_current"]), None)
                parent_version_id = str(current["id"]) if current else None
            await store.clear_current_version(anchor_id, conn=conn)

        record = await store.insert_version(
            anchor_id,
            version_number=next_number,
            parent_version_id=parent_version_id,
            is_current=True,
            uploaded_by=user_id,
            change_summary=change_summary,
            metadata={"manual": True},
            conn=conn,
        )
        await check_version_chain(anchor_id, conn=conn)
    return record


async def restore_version(document_id: str, version_id: str) -> dict:
    """Make version_id the only current record of the chain."""
    anchor_id = await resolve_anchor_id(document_id)
    record = await store.get_version(anchor_id, version_id)
    if record is None:
        raise NotFoundError("Version not found")

    await store.set_current_version(anchor_id, version_id)
    await check_version_chain(anchor_id)
    logger.info("Restored version %s of %s", record["version_number"], anchor_id)
    return {**record, "is_current": True}


async def version_info(document_id: str) -> tuple[int, int | None]:
    """(version_count, version_number) for list views.

    A linked child reports its own number and its anchor's count, an anchor with
    records reports version 1, a document outside any chain reports (0, None).
    """
    pointer = await store.find_version_for_new_document(document_id)
    if pointer:
        return await store.count_versions(str(pointer["document_id"])), pointer["version_number"]

    count = await store.count_versions(str(document_id))
    if count:
        return count, 1
    return 0, None
