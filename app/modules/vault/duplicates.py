"""
Duplicate Detector.

Exact duplicates (same name, size and sha256 for one owner) block an upload. Similar
documents (word-overlap on extracted text, edit distance on filenames) are only advisory.
"""

import hashlib
import logging
import re

from app.config import get_settings
from app.models.document import SimilarDocument
from app.modules.vault import store

logger = logging.getLogger(__name__)

MIN_WORD_LENGTH = 3
_NON_WORD = re.compile(r"[^\w\s]")


def compute_file_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


async def check_exact_duplicate(user_id: str, file_name: str, file_size: int, content: bytes) -> dict | None:
    """Return the existing document when name, size and content hash all match, else None."""
    candidates = await store.find_same_name_and_size(user_id, file_name, file_size)
    if not candidates:
        return None

    file_hash = compute_file_hash(content)
    for doc in candidates:
        if doc.get("file_hash") == file_hash:
            logger.info("Exact duplicate of %s for user %s (%s)", doc["id"], user_id, file_name)
            return doc
    return None


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def filename_similarity(a: str, b: str) -> float:
    """1 - edit distance / longer length, case-insensitive."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - levenshtein_distance(a.lower(), b.lower()) / longest


def _words(text: str) -> set[str]:
    return {w for w in _NON_WORD.sub(" ", text.lower()).split() if len(w) >= MIN_WORD_LENGTH}


def text_similarity(a: str | None, b: str | None) -> float:
    """Jaccard index over the meaningful words of both texts."""
    if not a or not b:
        return 0.0
    words_a, words_b = _words(a), _words(b)
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def score_candidate(
    file_name: str,
    extracted_text: str | None,
    candidate: dict,
    threshold: float,
    text_window: int,
) -> SimilarDocument | None:
    name_score = filename_similarity(file_name, candidate["file_name"])
    text_score = 0.0
    if extracted_text and candidate.get("extracted_text"):
        text_score = text_similarity(extracted_text[:text_window], candidate["extracted_text"][:text_window])

    if name_score >= threshold and text_score >= threshold:
        score, match_type = (name_score + text_score) / 2, "both"
    elif text_score >= threshold:
        score, match_type = text_score, "text"
    elif name_score >= threshold:
        score, match_type = name_score, "filename"
    else:
        return None

    return SimilarDocument(
        id=candidate["id"],
        file_name=candidate["file_name"],
        document_type=candidate.get("document_type"),
        similarity_score=round(score, 4),
        match_type=match_type,
    )


async def detect_similar_documents(
    user_id: str,
    file_name: str,
    extracted_text: str | None,
    document_type: str | None = None,
    threshold: float | None = None,
    exclude_id: str | None = None,
) -> list[SimilarDocument]:
    """Ranked advisory matches among the owner's completed documents of the same type.

    With type `other` (or none) every completed document is a candidate.
    """
    settings = get_settings()
    if threshold is None:
        threshold = settings.similarity_threshold
    type_filter = document_type if document_type and document_type != "other" else None

    candidates = await store.list_similarity_candidates(user_id, exclude_id, type_filter)
    matches = []
    for candidate in candidates:
        match = score_candidate(file_name, extracted_text, candidate, threshold, settings.similarity_text_window)
        if match:
            matches.append(match)

    matches.sort(key=lambda m: m.similarity_score, reverse=True)
    return matches[: settings.similarity_max_results]
