"""
Classification override resolution.

Precedence: a stable document id (mapped through id_mapping) beats a caller-supplied
document_type, which beats inference. Overrides are final: background extraction never
re-classifies them.
"""

from dataclasses import dataclass

from app.modules.vault import classifier
from app.modules.vault.classifier import Classification
from app.modules.vault.errors import UploadValidationError
from app.modules.vault.extractors.base import ExtractionResult
from app.modules.vault.id_mapping import document_type_by_id

EXPLICIT_CONFIDENCE = 1.0


@dataclass(frozen=True)
class ExplicitClassification:
    document_type: str
    tags: tuple[str, ...]
    source: str  # "id_mapping" or "provided"
    confidence: float = EXPLICIT_CONFIDENCE


@dataclass(frozen=True)
class InferredClassification:
    document_type: str
    tags: tuple[str, ...]
    confidence: float


Resolved = ExplicitClassification | InferredClassification


def resolve_override(document_type: str | None = None, document_id: int | None = None) -> ExplicitClassification | None:
    """Return the override for an upload, or None when the type must be inferred.

    An unknown id is ignored (the checklist may send ids this service does not know yet),
    but an unknown explicit type is a client error.
    """
    mapped = document_type_by_id(document_id)
    if mapped:
        return ExplicitClassification(mapped, classifier.tags_for_type(mapped), source="id_mapping")

    if document_type:
        if document_type not in classifier.DOCUMENT_TYPES:
            raise UploadValidationError(
                "Unknown document type",
                details=f"'{document_type}' is not a supported document type",
                hint="Use one of: " + ", ".join(classifier.DOCUMENT_TYPES),
            )
        return ExplicitClassification(document_type, classifier.tags_for_type(document_type), source="provided")
    return None


def _inferred(result: Classification) -> InferredClassification:
    return InferredClassification(result.document_type, result.tags, result.confidence)


def resolve_initial(file_name: str, override: ExplicitClassification | None) -> Resolved:
    """Classification stored at upload time, before any extraction has run."""
    if override:
        return override
    return _inferred(classifier.classify(file_name))


def resolve_final(file_name: str, override: ExplicitClassification | None, extraction: ExtractionResult) -> Resolved:
    """Classification stored once extraction has finished.

    Without an override, the highest-confidence candidate among the text-aware pass,
    the provider's own verdict and the filename-only pass wins; ties go to the
    text-aware pass since it saw the most evidence.
    """
    if override:
        return override

    candidates = [_inferred(classifier.classify(file_name, extraction.extracted_text))]
    if extraction.document_type in classifier.DOCUMENT_TYPES and extraction.document_type != classifier.DEFAULT_TYPE:
        candidates.append(InferredClassification(
            extraction.document_type,
            classifier.derive_tags(extraction.document_type, tuple(classifier.filter_tags(extraction.tags))),
            min(classifier.CONFIDENCE_CEILING, extraction.confidence),
        ))
    candidates.append(_inferred(classifier.classify(file_name)))

    # max() keeps the first of equal confidences
    return max(candidates, key=lambda c: c.confidence)
