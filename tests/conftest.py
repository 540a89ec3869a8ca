"""
Shared fixtures: an in-memory replacement for app.modules.vault.store, a recording blob
store and a scripted extraction provider. Postgres, S3 and Claude are never touched.
"""

import copy
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.modules import storage
from app.modules.vault import extraction, store
from app.modules.vault.extractors.base import ExtractionResult

USER_ID = "11111111-1111-4111-8111-111111111111"
OTHER_USER_ID = "22222222-2222-4222-8222-222222222222"


class InMemoryStore:
    """Mirrors the queries in app.modules.vault.store over plain lists and dicts."""

    def __init__(self) -> None:
        self.documents: dict[str, dict] = {}
        self.versions: list[dict] = []
        self.reminders: list[dict] = []
        self.bundles: dict[str, dict] = {}
        self.bundle_members: list[dict] = []
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.fail_insert = False

    def _now(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    @staticmethod
    def _copy(row: dict | None) -> dict | None:
        return copy.deepcopy(row) if row is not None else None

    def _live(self, user_id: str | None = None) -> list[dict]:
        return [
            d for d in self.documents.values()
            if d["deleted_at"] is None and (user_id is None or d["user_id"] == user_id)
        ]

    @asynccontextmanager
    async def transaction(self):
        """Everything written inside is undone if the block raises, like a rolled-back transaction."""
        tables = (self.documents, self.versions, self.reminders, self.bundles, self.bundle_members)
        snapshot = copy.deepcopy(tables)
        try:
            yield self
        except BaseException:
            for table, saved in zip(tables, snapshot):
                table.clear()
                if isinstance(table, dict):
                    table.update(saved)
                else:
                    table.extend(saved)
            raise

    # --- documents ---

    async def find_same_name_and_size(self, user_id, file_name, file_size):
        rows = [d for d in self._live(user_id) if d["file_name"] == file_name and d["file_size"] == file_size]
        rows.sort(key=lambda d: d["created_at"], reverse=True)
        return [self._copy(d) for d in rows]

    async def insert_document(
        self, user_id, file_name, mime_type, file_size, file_hash, storage_path,
        document_type, tags, confidence, fulfilled_requirement=None,
    ):
        if self.fail_insert:
            raise ConnectionError("database unavailable")
        row = {
            "id": str(uuid4()),
            "user_id": user_id,
            "file_name": file_name,
            "mime_type": mime_type,
            "file_size": file_size,
            "file_hash": file_hash,
            "storage_path": storage_path,
            "document_type": document_type,
            "tags": list(tags),
            "confidence": confidence,
            "processing_status": "processing",
            "processing_error": None,
            "extracted_text": None,
            "extracted_fields": {},
            "language": None,
            "thumbnail_url": None,
            "fulfilled_requirement": fulfilled_requirement,
            "similar_documents": [],
            "deleted_at": None,
            "created_at": self._now(),
            "updated_at": None,
        }
        self.documents[row["id"]] = row
        return self._copy(row)

    async def get_document(self, document_id, user_id=None):
        doc = self.documents.get(str(document_id))
        if doc is None or doc["deleted_at"] is not None:
            return None
        if user_id is not None and doc["user_id"] != user_id:
            return None
        return self._copy(doc)

    async def list_documents(self, user_id, document_type=None, status=None, limit=50, offset=0):
        rows = [
            d for d in self._live(user_id)
            if (not document_type or d["document_type"] == document_type)
            and (not status or d["processing_status"] == status)
        ]
        rows.sort(key=lambda d: d["created_at"], reverse=True)
        return [self._copy(d) for d in rows[offset:offset + limit]]

    async def soft_delete_document(self, document_id, user_id):
        doc = self.documents.get(str(document_id))
        if doc is None or doc["user_id"] != user_id or doc["deleted_at"] is not None:
            return False
        doc["deleted_at"] = self._now()
        return True

    async def complete_document(
        self, document_id, document_type, tags, confidence, extracted_text,
        extracted_fields, language, thumbnail_url=None, conn=None,
    ):
        self.documents[str(document_id)].update(
            document_type=document_type,
            tags=list(tags),
            confidence=confidence,
            extracted_text=extracted_text,
            extracted_fields=dict(extracted_fields),
            language=language,
            thumbnail_url=thumbnail_url,
            processing_status="completed",
            processing_error=None,
            updated_at=self._now(),
        )

    async def mark_document_failed(self, document_id, error):
        self.documents[str(document_id)].update(processing_status="failed", processing_error=error)

    async def set_similar_documents(self, document_id, similar):
        self.documents[str(document_id)]["similar_documents"] = list(similar)

    async def find_latest_by_name(self, user_id, file_name, exclude_id, conn=None):
        rows = [
            d for d in self._live(user_id)
            if d["file_name"] == file_name and d["id"] != str(exclude_id) and d["processing_status"] != "failed"
        ]
        if not rows:
            return None
        return self._copy(max(rows, key=lambda d: d["created_at"]))

    async def list_similarity_candidates(self, user_id, exclude_id, document_type):
        return [
            self._copy(d) for d in self._live(user_id)
            if d["processing_status"] == "completed"
            and (not exclude_id or d["id"] != str(exclude_id))
            and (not document_type or d["document_type"] == document_type)
        ]

    # --- document_versions ---

    def _chain(self, document_id) -> list[dict]:
        return [v for v in self.versions if v["document_id"] == str(document_id)]

    async def list_versions(self, document_id, conn=None):
        rows = sorted(self._chain(document_id), key=lambda v: (v["version_number"], v["uploaded_at"]))
        return [self._copy(v) for v in rows]

    async def get_version(self, document_id, version_id):
        for v in self._chain(document_id):
            if v["id"] == str(version_id):
                return self._copy(v)
        return None

    async def max_version_number(self, document_id):
        return max((v["version_number"] for v in self._chain(document_id)), default=0)

    async def count_versions(self, document_id):
        return len(self._chain(document_id))

    async def insert_version(
        self, document_id, version_number, parent_version_id, is_current, uploaded_by, change_summary, metadata, conn=None,
    ):
        row = {
            "id": str(uuid4()),
            "document_id": str(document_id),
            "version_number": version_number,
            "parent_version_id": str(parent_version_id) if parent_version_id else None,
            "is_current": is_current,
            "uploaded_by": uploaded_by,
            "uploaded_at": self._now(),
            "change_summary": change_summary,
            "metadata": dict(metadata),
        }
        self.versions.append(row)
        return self._copy(row)

    async def clear_current_version(self, document_id, conn=None):
        for v in self._chain(document_id):
            v["is_current"] = False

    async def set_current_version(self, document_id, version_id):
        for v in self._chain(document_id):
            v["is_current"] = v["id"] == str(version_id)

    async def find_parent_document_id(self, document_id, conn=None):
        for v in self._chain(document_id):
            if v["metadata"].get("parent_document_id"):
                return v["metadata"]["parent_document_id"]
        return None

    async def find_version_for_new_document(self, document_id):
        for v in self.versions:
            if v["metadata"].get("new_document_id") == str(document_id):
                return self._copy(v)
        return None

    # --- document_reminders ---

    async def insert_reminder(self, document_id, user_id, reminder_type, reminder_date, deadline_date):
        row = {
            "id": str(uuid4()),
            "document_id": str(document_id),
            "user_id": user_id,
            "reminder_type": reminder_type,
            "reminder_date": reminder_date,
            "deadline_date": deadline_date,
            "status": "pending",
            "snoozed_until": None,
            "created_at": self._now(),
        }
        self.reminders.append(row)
        return self._copy(row)

    async def list_reminders(self, user_id, status=None):
        rows = []
        for r in self.reminders:
            doc = self.documents.get(r["document_id"])
            if r["user_id"] != user_id or doc is None or doc["deleted_at"] is not None:
                continue
            if status and r["status"] != status:
                continue
            rows.append({**self._copy(r), "file_name": doc["file_name"], "document_type": doc["document_type"]})
        rows.sort(key=lambda r: (r["deadline_date"], r["reminder_date"]))
        return rows

    async def update_reminder(self, reminder_id, user_id, status, snoozed_until=None):
        for r in self.reminders:
            if r["id"] == str(reminder_id) and r["user_id"] == user_id:
                r.update(status=status, snoozed_until=snoozed_until)
                return self._copy(r)
        return None

    async def delete_reminder(self, reminder_id, user_id):
        for r in list(self.reminders):
            if r["id"] == str(reminder_id) and r["user_id"] == user_id:
                self.reminders.remove(r)
                return True
        return False

    # --- document_bundles ---

    def _bundle_count(self, bundle_id) -> int:
        return len(self._bundle_documents(bundle_id))

    def _bundle_documents(self, bundle_id) -> list[dict]:
        docs = [self.documents.get(m["document_id"]) for m in self.bundle_members if m["bundle_id"] == str(bundle_id)]
        return [d for d in docs if d is not None and d["deleted_at"] is None]

    async def get_documents_by_ids(self, user_id, document_ids):
        wanted = {str(i) for i in document_ids}
        rows = [d for d in self._live(user_id) if d["id"] in wanted]
        rows.sort(key=lambda d: d["created_at"])
        return [self._copy(d) for d in rows]

    async def insert_bundle(self, user_id, bundle_name, description, conn=None):
        now = self._now()
        row = {
            "id": str(uuid4()),
            "user_id": user_id,
            "bundle_name": bundle_name,
            "description": description,
            "created_at": now,
            "updated_at": now,
        }
        self.bundles[row["id"]] = row
        return self._copy(row)

    async def list_bundles(self, user_id):
        rows = [b for b in self.bundles.values() if b["user_id"] == user_id]
        rows.sort(key=lambda b: b["created_at"], reverse=True)
        return [{**self._copy(b), "document_count": self._bundle_count(b["id"])} for b in rows]

    async def get_bundle(self, bundle_id, user_id):
        bundle = self.bundles.get(str(bundle_id))
        if bundle is None or bundle["user_id"] != user_id:
            return None
        return {**self._copy(bundle), "document_count": self._bundle_count(bundle["id"])}

    async def update_bundle(self, bundle_id, user_id, changes):
        bundle = self.bundles.get(str(bundle_id))
        if bundle is None or bundle["user_id"] != user_id:
            return None
        bundle.update({k: v for k, v in changes.items() if k in ("bundle_name", "description")})
        bundle["updated_at"] = self._now()
        return self._copy(bundle)

    async def delete_bundle(self, bundle_id, user_id):
        bundle = self.bundles.get(str(bundle_id))
        if bundle is None or bundle["user_id"] != user_id:
            return False
        del self.bundles[bundle["id"]]
        self.bundle_members[:] = [m for m in self.bundle_members if m["bundle_id"] != bundle["id"]]
        return True

    async def add_bundle_documents(self, bundle_id, document_ids, conn=None):
        present = {m["document_id"] for m in self.bundle_members if m["bundle_id"] == str(bundle_id)}
        added = 0
        for document_id in map(str, document_ids):
            if document_id in present:
                continue
            self.bundle_members.append({"bundle_id": str(bundle_id), "document_id": document_id, "created_at": self._now()})
            present.add(document_id)
            added += 1
        return added

    async def remove_bundle_documents(self, bundle_id, document_ids):
        doomed = {str(i) for i in document_ids}
        before = len(self.bundle_members)
        self.bundle_members[:] = [
            m for m in self.bundle_members
            if not (m["bundle_id"] == str(bundle_id) and m["document_id"] in doomed)
        ]
        return before - len(self.bundle_members)

    async def list_bundle_documents(self, bundle_id):
        return [self._copy(d) for d in self._bundle_documents(bundle_id)]

    # --- helpers for assertions ---

    def current_versions(self, document_id) -> list[dict]:
        return [v for v in self._chain(document_id) if v["is_current"]]


STORE_FUNCTIONS = [name for name in dir(InMemoryStore) if not name.startswith("_") and name not in {"current_versions"}]


class RecordingStorage:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_upload = False
        self.fail_delete = False
        self.unreadable: set[str] = set()

    async def upload_file(self, file_bytes: bytes, path: str, content_type: str) -> str:
        if self.fail_upload:
            raise storage.StorageUnavailable("bucket unreachable")
        self.objects[path] = file_bytes
        return path

    async def download_file(self, path: str) -> bytes:
        if path in self.unreadable or path not in self.objects:
            raise storage.StorageUnavailable(f"cannot read {path}")
        return self.objects[path]

    async def delete_file(self, path: str) -> None:
        if self.fail_delete:
            raise storage.StorageUnavailable("bucket unreachable")
        self.objects.pop(path, None)
        self.deleted.append(path)

    def get_url_for_file(self, path: str) -> str:
        return f"https://storage.test/{path}?signed=1"


class ScriptedExtractor:
    """Returns a preset ExtractionResult per filename (or the default); can be told to fail."""

    def __init__(self) -> None:
        self.results: dict[str, ExtractionResult] = {}
        self.default = ExtractionResult()
        self.error: Exception | None = None
        self.calls: list[str] = []

    async def extract_document(self, content: bytes, file_name: str, mime_type: str) -> ExtractionResult:
        self.calls.append(file_name)
        if self.error:
            raise self.error
        return self.results.get(file_name, self.default)


@pytest.fixture
def memory_store(monkeypatch) -> InMemoryStore:
    fake = InMemoryStore()
    for name in STORE_FUNCTIONS:
        monkeypatch.setattr(store, name, getattr(fake, name))
    return fake


@pytest.fixture
def blob_storage(monkeypatch) -> RecordingStorage:
    fake = RecordingStorage()
    monkeypatch.setattr(storage, "upload_file", fake.upload_file)
    monkeypatch.setattr(storage, "delete_file", fake.delete_file)
    monkeypatch.setattr(storage, "download_file", fake.download_file)
    monkeypatch.setattr(storage, "get_url_for_file", fake.get_url_for_file)
    return fake


@pytest.fixture
def extractor(monkeypatch) -> ScriptedExtractor:
    fake = ScriptedExtractor()
    monkeypatch.setattr(extraction, "extract_document", fake.extract_document)
    return fake


@pytest.fixture
def client(memory_store, blob_storage, extractor) -> TestClient:
    from app.main import app

    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict:
    return {"X-User-Id": USER_ID}
