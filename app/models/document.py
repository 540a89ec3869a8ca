from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class Document(BaseModel):
    id: UUID
    user_id: UUID
    file_name: str
    mime_type: str
    file_size: int
    file_hash: str | None = None  # sha256 hex of the raw bytes
    storage_path: str
    document_type: str = "other"
    tags: list[str] = []
    confidence: float = 0.5
    processing_status: str = "processing"  # processing, completed, failed
    processing_error: str | None = None
    extracted_text: str | None = None
    extracted_fields: dict = {}
    language: str | None = None  # de, fr, it, en
    thumbnail_url: str | None = None
    fulfilled_requirement: str | None = None
    similar_documents: list[dict] = []  # advisory "possibly same as" suggestions
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None


class DocumentVersion(BaseModel):
    id: UUID
    document_id: UUID  # chain anchor, or the linked document for its mirrored record
    version_number: int
    parent_version_id: UUID | None = None
    is_current: bool = False
    uploaded_by: UUID
    uploaded_at: datetime
    change_summary: str | None = None
    metadata: dict = {}  # {"is_original": true} | {"new_document_id": ...} | {"parent_document_id": ...}


class DocumentReminder(BaseModel):
    id: UUID
    document_id: UUID
    user_id: UUID
    reminder_type: str  # 30_days, 14_days, 7_days, 1_day
    reminder_date: datetime
    deadline_date: datetime
    status: str = "pending"  # pending, sent, snoozed, completed, cancelled
    snoozed_until: datetime | None = None
    created_at: datetime


class SimilarDocument(BaseModel):
    id: UUID
    file_name: str
    document_type: str | None = None
    similarity_score: float
    match_type: str  # filename, text, both


class Bundle(BaseModel):
    id: UUID
    user_id: UUID
    bundle_name: str
    description: str | None = None
    document_count: int = 0  # live (non-deleted) members only
    created_at: datetime
    updated_at: datetime | None = None
