"""
Tests for exact-duplicate detection and advisory similarity search.
"""

import pytest

from app.modules.vault import duplicates
from app.modules.vault.duplicates import (
    compute_file_hash,
    filename_similarity,
    levenshtein_distance,
    text_similarity,
)
from tests.conftest import OTHER_USER_ID, USER_ID


async def _completed(memory_store, file_name, text, document_type="rental_contract", user_id=USER_ID):
    doc = await memory_store.insert_document(
        user_id, file_name, "application/pdf", len(text), compute_file_hash(text.encode()),
        f"{user_id}/{file_name}", document_type, [], 0.9,
    )
    await memory_store.complete_document(doc["id"], document_type, [], 0.9, text, {}, "en")
    return doc


class TestMeasures:
    def test_sha256_hex(self):
        assert compute_file_hash(b"abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_levenshtein(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3

    def test_filename_similarity_case_insensitive(self):
        assert filename_similarity("Lease.PDF", "lease.pdf") == 1.0
        assert filename_similarity("", "") == 1.0
        assert filename_similarity("lease_2024.pdf", "lease_2025.pdf") == pytest.approx(1 - 1 / 14)

    def test_text_similarity_ignores_short_words_and_punctuation(self):
        assert text_similarity("The lease, of a flat!", "lease flat the") == 1.0
        assert text_similarity("rental contract zurich", "rental agreement zurich") == pytest.approx(2 / 4)
        assert text_similarity("", "anything") == 0.0
        assert text_similarity("a b", "c d") == 1.0


class TestExactDuplicate:
    @pytest.mark.asyncio
    async def test_same_name_size_and_hash(self, memory_store):
        existing = await _completed(memory_store, "lease.pdf", "rental contract")
        found = await duplicates.check_exact_duplicate(USER_ID, "lease.pdf", len("rental contract"), b"rental contract")
        assert found["id"] == existing["id"]

    @pytest.mark.asyncio
    async def test_same_size_different_bytes_is_not_a_duplicate(self, memory_store):
        await _completed(memory_store, "lease.pdf", "rental contract")
        assert await duplicates.check_exact_duplicate(USER_ID, "lease.pdf", 15, b"rental contrakt") is None

    @pytest.mark.asyncio
    async def test_different_name_is_not_a_duplicate(self, memory_store):
        await _completed(memory_store, "lease.pdf", "rental contract")
        assert await duplicates.check_exact_duplicate(USER_ID, "lease (1).pdf", 15, b"rental contract") is None

    @pytest.mark.asyncio
    async def test_other_owner_and_deleted_documents_ignored(self, memory_store):
        await _completed(memory_store, "lease.pdf", "rental contract", user_id=OTHER_USER_ID)
        deleted = await _completed(memory_store, "lease.pdf", "rental contract")
        await memory_store.soft_delete_document(deleted["id"], USER_ID)
        assert await duplicates.check_exact_duplicate(USER_ID, "lease.pdf", 15, b"rental contract") is None


class TestSimilarDocuments:
    @pytest.mark.asyncio
    async def test_text_match_ranked_and_limited(self, memory_store):
        text = "rental agreement between landlord and tenant for flat seestrasse zurich"
        for i in range(5):
            await _completed(memory_store, f"doc_{i}.pdf", text)
        await _completed(memory_store, "unrelated.pdf", "bank statement december balance")

        matches = await duplicates.detect_similar_documents(USER_ID, "new_upload.pdf", text, "rental_contract")
        assert len(matches) == 3
        assert all(m.match_type == "text" and m.similarity_score == 1.0 for m in matches)

    @pytest.mark.asyncio
    async def test_filename_match_without_text(self, memory_store):
        await _completed(memory_store, "mietvertrag_2024.pdf", "vermieter mieter")
        matches = await duplicates.detect_similar_documents(USER_ID, "mietvertrag_2025.pdf", None, "rental_contract")
        assert [m.match_type for m in matches] == ["filename"]
        assert matches[0].similarity_score >= 0.8

    @pytest.mark.asyncio
    async def test_both_averages_scores(self, memory_store):
        await _completed(memory_store, "lease.pdf", "landlord tenant flat zurich")
        matches = await duplicates.detect_similar_documents(USER_ID, "lease.pdf", "landlord tenant flat zurich", "rental_contract")
        assert matches[0].match_type == "both"
        assert matches[0].similarity_score == 1.0

    @pytest.mark.asyncio
    async def test_type_filter_and_self_exclusion(self, memory_store):
        own = await _completed(memory_store, "lease.pdf", "landlord tenant flat zurich")
        await _completed(memory_store, "lease.pdf", "landlord tenant flat zurich", document_type="bank_documents")

        matches = await duplicates.detect_similar_documents(
            USER_ID, "lease.pdf", "landlord tenant flat zurich", "rental_contract", exclude_id=own["id"]
        )
        assert matches == []

    @pytest.mark.asyncio
    async def test_threshold(self, memory_store):
        await _completed(memory_store, "x.pdf", "landlord tenant flat zurich")
        loose = await duplicates.detect_similar_documents(USER_ID, "completely_other_name.pdf", "landlord tenant flat basel", None, threshold=0.5)
        strict = await duplicates.detect_similar_documents(USER_ID, "completely_other_name.pdf", "landlord tenant flat basel", None, threshold=0.75)
        assert len(loose) == 1 and loose[0].similarity_score == pytest.approx(3 / 5)
        assert strict == []
