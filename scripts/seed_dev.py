"""
Seed script: applies the vault schema and inserts a demo owner's documents.
Run: python -m scripts.seed_dev
"""

import asyncio
import hashlib
import json
import os
import sys
from pathlib import Path

import asyncpg
from dotenv import load_dotenv

load_dotenv()

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

DEMO_USER_ID = "00000000-0000-4000-8000-000000000001"

DOCUMENTS = [
    {
        "file_name": "passport_scan.pdf",
        "document_type": "passport",
        "tags": ["identity", "travel", "official"],
        "extracted_fields": {"name": "Alex Demo", "expiry_date": "2027-03-31"},
    },
    {
        "file_name": "mietvertrag_zuerich.pdf",
        "document_type": "rental_contract",
        "tags": ["housing", "contract"],
        "extracted_fields": {"cancellation_deadline": "2027-01-31", "address": "Seestrasse 12, 8002 Zürich"},
    },
    {
        "file_name": "krankenkasse_police.pdf",
        "document_type": "insurance_documents",
        "tags": ["health", "insurance", "financial"],
        "extracted_fields": {"renewal_date": "2026-12-31"},
    },
]


async def seed():
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL not set in .env")
        sys.exit(1)

    conn = await asyncpg.connect(database_url)

    try:
        await conn.execute(SCHEMA_PATH.read_text())
        print("Schema applied")

        existing = await conn.fetchval("SELECT COUNT(*) FROM documents WHERE user_id = $1", DEMO_USER_ID)
        if existing:
            print(f"Demo user already has {existing} documents. Skipping seed.")
            return

        for doc in DOCUMENTS:
            fake_bytes = doc["file_name"].encode()
            row = await conn.fetchrow(
                """
                INSERT INTO documents (user_id, file_name, mime_type, file_size, file_hash, storage_path,
                                       document_type, tags, confidence, processing_status, extracted_fields, language)
                VALUES ($1, $2, 'application/pdf', $3, $4, $5, $6, $7, 1.0, 'completed', $8::jsonb, 'de')
                RETURNING id
                """,
                DEMO_USER_ID,
                doc["file_name"],
                len(fake_bytes),
                hashlib.sha256(fake_bytes).hexdigest(),
                f"{DEMO_USER_ID}/seed-{doc['file_name']}",
                doc["document_type"],
                doc["tags"],
                json.dumps(doc["extracted_fields"]),
            )
            print(f"Created document: {doc['file_name']} (id={row['id']})")

        print("\nSeed complete!")
        print(f"  Demo user (X-User-Id): {DEMO_USER_ID}")

    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(seed())
