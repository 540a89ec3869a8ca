"""
Vault persistence: every SQL statement touching documents, document_versions,
document_reminders and the bundle tables lives here. Rows come back as plain dicts.
"""

from contextlib import asynccontextmanager
from datetime import datetime

from app.database import get_pool

DOCUMENT_COLUMNS = """
    id, user_id, file_name, mime_type, file_size, file_hash, storage_path, document_type, tags,
    confidence, processing_status, processing_error, extracted_text, extracted_fields, language,
    thumbnail_url, fulfilled_requirement, similar_documents, deleted_at, created_at, updated_at
"""


@asynccontextmanager
async def transaction():
    """One connection with an open transaction; hand it to the functions below as conn=."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            yield conn


async def _db(conn=None):
    return conn if conn is not None else await get_pool()


# --- documents ---


async def find_same_name_and_size(user_id: str, file_name: str, file_size: int) -> list[dict]:
    pool = await get_pool()
    rows = await pool.fetch(
        """
        SELECT id, file_name, file_size, file_hash
        FROM documents
        WHERE user_id = $1 AND file_name = $2 AND file_size = $3 AND deleted_at IS NULL
        ORDER BY created_at DESC
        """,
        user_id,
        file_name,
        file_size,
    )
    return [dict(r) for r in rows]


async def insert_document(
    user_id: str,
    file_name: str,
    mime_type: str,
    file_size: int,
    file_hash: str,
    storage_path: str,
    document_type: str,
    tags: list[str],
    confidence: float,
    fulfilled_requirement: str | None = None,
) -> dict:
    pool = await get_pool()
    row = await pool.fetchrow(
        f"""
        INSERT INTO documents (user_id, file_name, mime_type, file_size, file_hash, storage_path,
                               document_type, tags, confidence, processing_status, fulfilled_requirement)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, 'processing', $10)
        RETURNING {DOCUMENT_COLUMNS}
        """,
        user_id,
        file_name,
        mime_type,
        file_size,
        file_hash,
        storage_path,
        document_type,
        tags,
        confidence,
        fulfilled_requirement,
    )
    return dict(row)


async def get_document(document_id: str, user_id: str | None = None) -> dict | None:
    """Non-deleted document by id; scoped to the owner when user_id is given."""
    pool = await get_pool()
    if user_id is None:
        row = await pool.fetchrow(
            f"SELECT {DOCUMENT_COLUMNS} FROM documents WHERE id = $1 AND deleted_at IS NULL",
            document_id,
        )
    else:
        row = await pool.fetchrow(
            f"SELECT {DOCUMENT_COLUMNS} FROM documents WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL",
            document_id,
            user_id,
        )
    return dict(row) if row else None


async def list_documents(
    user_id: str,
    document_type: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict]:
    pool = await get_pool()
    query = f"SELECT {DOCUMENT_COLUMNS} FROM documents WHERE user_id = $1 AND deleted_at IS NULL"
    params: list = [user_id]

    if document_type:
        params.append(document_type)
        query += f" AND document_type = ${len(params)}"
    if status:
        params.append(status)
        query += f" AND processing_status = ${len(params)}"

    params.extend([limit, offset])
    query += f" ORDER BY created_at DESC LIMIT ${len(params) - 1} OFFSET ${len(params)}"

    rows = await pool.fetch(query, *params)
    return [dict(r) for r in rows]


async def soft_delete_document(document_id: str, user_id: str) -> bool:
    pool = await get_pool()
    row = await pool.fetchrow(
        """
        UPDATE documents SET deleted_at = NOW(), updated_at = NOW()
        WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
        RETURNING id
        """,
        document_id,
        user_id,
    )
    return row is not None


async def complete_document(
    document_id: str,
    document_type: str,
    tags: list[str],
    confidence: float,
    extracted_text: str,
    extracted_fields: dict,
    language: str,
    thumbnail_url: str | None = None,
    conn=None,
) -> None:
    db = await _db(conn)
    await db.execute(
        """
        UPDATE documents
        SET document_type = $2, tags = $3, confidence = $4, extracted_text = $5,
            extracted_fields = $6, language = $7, thumbnail_url = $8,
            processing_status = 'completed', processing_error = NULL, updated_at = NOW()
        WHERE id = $1
        """,
        document_id,
        document_type,
        tags,
        confidence,
        extracted_text,
        extracted_fields,
        language,
        thumbnail_url,
    )


async def mark_document_failed(document_id: str, error: str) -> None:
    pool = await get_pool()
    await pool.execute(
        "UPDATE documents SET processing_status = 'failed', processing_error = $2, updated_at = NOW() WHERE id = $1",
        document_id,
        error,
    )


async def set_similar_documents(document_id: str, similar: list[dict]) -> None:
    pool = await get_pool()
    await pool.execute(
        "UPDATE documents SET similar_documents = $2, updated_at = NOW() WHERE id = $1",
        document_id,
        similar,
    )


async def find_latest_by_name(user_id: str, file_name: str, exclude_id: str, conn=None) -> dict | None:
    """Most recently created live, non-failed document with this exact filename, other than exclude_id."""
    db = await _db(conn)
    row = await db.fetchrow(
        """
        SELECT id, file_name, file_hash, created_at
        FROM documents
        WHERE user_id = $1 AND file_name = $2 AND id <> $3 AND deleted_at IS NULL
          AND processing_status <> 'failed'
        ORDER BY created_at DESC
        LIMIT 1
        """,
        user_id,
        file_name,
        exclude_id,
    )
    return dict(row) if row else None


async def list_similarity_candidates(user_id: str, exclude_id: str | None, document_type: str | None) -> list[dict]:
    pool = await get_pool()
    query = """
        SELECT id, file_name, document_type, extracted_text
        FROM documents
        WHERE user_id = $1 AND deleted_at IS NULL AND processing_status = 'completed'
    """
    params: list = [user_id]
    if exclude_id:
        params.append(exclude_id)
        query += f" AND id <> ${len(params)}"
    if document_type:
        params.append(document_type)
        query += f" AND document_type = ${len(params)}"

    rows = await pool.fetch(query, *params)
    return [dict(r) for r in rows]


# --- document_versions ---


async def list_versions(document_id: str, conn=None) -> list[dict]:
    db = await _db(conn)
    rows = await db.fetch(
        """
        SELECT id, document_id, version_number, parent_version_id, is_current, uploaded_by,
               uploaded_at, change_summary, metadata
        FROM document_versions
        WHERE document_id = $1
        ORDER BY version_number, uploaded_at
        """,
        document_id,
    )
    return [dict(r) for r in rows]


async def get_version(document_id: str, version_id: str) -> dict | None:
    pool = await get_pool()
    row = await pool.fetchrow(
        "SELECT * FROM document_versions WHERE id = $1 AND document_id = $2",
        version_id,
        document_id,
    )
    return dict(row) if row else None


async def max_version_number(document_id: str) -> int:
    pool = await get_pool()
    value = await pool.fetchval(
        "SELECT COALESCE(MAX(version_number), 0) FROM document_versions WHERE document_id = $1",
        document_id,
    )
    return int(value or 0)


async def count_versions(document_id: str) -> int:
    pool = await get_pool()
    value = await pool.fetchval("SELECT COUNT(*) FROM document_versions WHERE document_id = $1", document_id)
    return int(value or 0)


async def insert_version(
    document_id: str,
    version_number: int,
    parent_version_id: str | None,
    is_current: bool,
    uploaded_by: str,
    change_summary: str | None,
    metadata: dict,
    conn=None,
) -> dict:
    db = await _db(conn)
    row = await db.fetchrow(
        """
        INSERT INTO document_versions (document_id, version_number, parent_version_id, is_current,
                                       uploaded_by, change_summary, metadata)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        RETURNING *
        """,
        document_id,
        version_number,
        parent_version_id,
        is_current,
        uploaded_by,
        change_summary,
        metadata,
    )
    return dict(row)


async def clear_current_version(document_id: str, conn=None) -> None:
    db = await _db(conn)
    await db.execute(
        "UPDATE document_versions SET is_current = FALSE WHERE document_id = $1 AND is_current = TRUE",
        document_id,
    )


async def set_current_version(document_id: str, version_id: str) -> None:
    async with transaction() as conn:
        # two statements: the partial unique index on is_current is checked row by row
        await clear_current_version(document_id, conn=conn)
        await conn.execute(
            "UPDATE document_versions SET is_current = TRUE WHERE document_id = $1 AND id = $2",
            document_id,
            version_id,
        )


async def find_parent_document_id(document_id: str, conn=None) -> str | None:
    """Anchor id recorded on a linked document's mirrored version record, if any."""
    db = await _db(conn)
    value = await db.fetchval(
        """
        SELECT metadata->>'parent_document_id'
        FROM document_versions
        WHERE document_id = $1 AND metadata->>'parent_document_id' IS NOT NULL
        LIMIT 1
        """,
        document_id,
    )
    return value


async def find_version_for_new_document(document_id: str) -> dict | None:
    """The anchor-side record that points at this document (new_document_id)."""
    pool = await get_pool()
    row = await pool.fetchrow(
        "SELECT * FROM document_versions WHERE metadata->>'new_document_id' = $1 LIMIT 1",
        str(document_id),
    )
    return dict(row) if row else None


# --- document_reminders ---


async def insert_reminder(
    document_id: str,
    user_id: str,
    reminder_type: str,
    reminder_date: datetime,
    deadline_date: datetime,
) -> dict:
    pool = await get_pool()
    row = await pool.fetchrow(
        """
        INSERT INTO document_reminders (document_id, user_id, reminder_type, reminder_date, deadline_date, status)
        VALUES ($1, $2, $3, $4, $5, 'pending')
        RETURNING *
        """,
        document_id,
        user_id,
        reminder_type,
        reminder_date,
        deadline_date,
    )
    return dict(row)


async def list_reminders(user_id: str, status: str | None = None) -> list[dict]:
    pool = await get_pool()
    query = """
        SELECT r.*, d.file_name, d.document_type
        FROM document_reminders r
        JOIN documents d ON d.id = r.document_id
        WHERE r.user_id = $1 AND d.deleted_at IS NULL
    """
    params: list = [user_id]
    if status:
        params.append(status)
        query += f" AND r.status = ${len(params)}"
    query += " ORDER BY r.deadline_date, r.reminder_date"

    rows = await pool.fetch(query, *params)
    return [dict(r) for r in rows]


async def update_reminder(reminder_id: str, user_id: str, status: str, snoozed_until: datetime | None = None) -> dict | None:
    pool = await get_pool()
    row = await pool.fetchrow(
        """
        UPDATE document_reminders SET status = $3, snoozed_until = $4
        WHERE id = $1 AND user_id = $2
        RETURNING *
        """,
        reminder_id,
        user_id,
        status,
        snoozed_until,
    )
    return dict(row) if row else None


async def delete_reminder(reminder_id: str, user_id: str) -> bool:
    pool = await get_pool()
    row = await pool.fetchrow(
        "DELETE FROM document_reminders WHERE id = $1 AND user_id = $2 RETURNING id",
        reminder_id,
        user_id,
    )
    return row is not None


# --- document_bundles ---

BUNDLE_COLUMNS = "b.id, b.user_id, b.bundle_name, b.description, b.created_at, b.updated_at"

# members whose document has not been soft-deleted
_LIVE_MEMBER_COUNT = """
    (SELECT COUNT(*) FROM bundle_documents bd JOIN documents d ON d.id = bd.document_id
     WHERE bd.bundle_id = b.id AND d.deleted_at IS NULL) AS document_count
"""


async def get_documents_by_ids(user_id: str, document_ids: list[str]) -> list[dict]:
    """The caller's non-deleted documents among document_ids, oldest first; unknown ids are dropped."""
    pool = await get_pool()
    rows = await pool.fetch(
        f"""
        SELECT {DOCUMENT_COLUMNS} FROM documents
        WHERE user_id = $1 AND id = ANY($2::uuid[]) AND deleted_at IS NULL
        ORDER BY created_at
        """,
        user_id,
        document_ids,
    )
    return [dict(r) for r in rows]


async def insert_bundle(user_id: str, bundle_name: str, description: str | None, conn=None) -> dict:
    db = await _db(conn)
    row = await db.fetchrow(
        """
        INSERT INTO document_bundles (user_id, bundle_name, description)
        VALUES ($1, $2, $3)
        RETURNING id, user_id, bundle_name, description, created_at, updated_at
        """,
        user_id,
        bundle_name,
        description,
    )
    return dict(row)


async def list_bundles(user_id: str) -> list[dict]:
    pool = await get_pool()
    rows = await pool.fetch(
        f"""
        SELECT {BUNDLE_COLUMNS}, {_LIVE_MEMBER_COUNT}
        FROM document_bundles b
        WHERE b.user_id = $1
        ORDER BY b.created_at DESC
        """,
        user_id,
    )
    return [dict(r) for r in rows]


async def get_bundle(bundle_id: str, user_id: str) -> dict | None:
    pool = await get_pool()
    row = await pool.fetchrow(
        f"""
        SELECT {BUNDLE_COLUMNS}, {_LIVE_MEMBER_COUNT}
        FROM document_bundles b
        WHERE b.id = $1 AND b.user_id = $2
        """,
        bundle_id,
        user_id,
    )
    return dict(row) if row else None


async def update_bundle(bundle_id: str, user_id: str, changes: dict) -> dict | None:
    """Apply bundle_name / description from changes; None when the bundle is not the caller's."""
    pool = await get_pool()
    params: list = [bundle_id, user_id]
    assignments = []
    for column in ("bundle_name", "description"):
        if column in changes:
            params.append(changes[column])
            assignments.append(f"{column} = ${len(params)}")
    assignments.append("updated_at = NOW()")

    row = await pool.fetchrow(
        f"""
        UPDATE document_bundles SET {", ".join(assignments)}
        WHERE id = $1 AND user_id = $2
        RETURNING id, user_id, bundle_name, description, created_at, updated_at
        """,
        *params,
    )
    return dict(row) if row else None


async def delete_bundle(bundle_id: str, user_id: str) -> bool:
    pool = await get_pool()
    row = await pool.fetchrow(
        "DELETE FROM document_bundles WHERE id = $1 AND user_id = $2 RETURNING id",
        bundle_id,
        user_id,
    )
    return row is not None


async def add_bundle_documents(bundle_id: str, document_ids: list[str], conn=None) -> int:
    """Add members, skipping ones already present; returns how many were new."""
    db = await _db(conn)
    rows = await db.fetch(
        """
        INSERT INTO bundle_documents (bundle_id, document_id)
        SELECT $1, unnest($2::uuid[])
        ON CONFLICT (bundle_id, document_id) DO NOTHING
        RETURNING document_id
        """,
        bundle_id,
        document_ids,
    )
    return len(rows)


async def remove_bundle_documents(bundle_id: str, document_ids: list[str]) -> int:
    pool = await get_pool()
    rows = await pool.fetch(
        "DELETE FROM bundle_documents WHERE bundle_id = $1 AND document_id = ANY($2::uuid[]) RETURNING document_id",
        bundle_id,
        document_ids,
    )
    return len(rows)


async def list_bundle_documents(bundle_id: str) -> list[dict]:
    pool = await get_pool()
    rows = await pool.fetch(
        f"""
        SELECT {", ".join("d." + c.strip() for c in DOCUMENT_COLUMNS.split(","))}
        FROM bundle_documents bd
        JOIN documents d ON d.id = bd.document_id
        WHERE bd.bundle_id = $1 AND d.deleted_at IS NULL
        ORDER BY bd.created_at, d.created_at
        """,
        bundle_id,
    )
    return [dict(r) for r in rows]
