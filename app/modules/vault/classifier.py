"""
Document Classifier: rule-based document type detection from filename and extracted text.

Deterministic and free of I/O so the same (filename, text) pair always yields the same
result. Keywords are mixed English / German / French / Italian, matching the documents
Swiss expats typically upload. Filename hits weigh more than content hits (OCR text is noisy).
"""

import re
from dataclasses import dataclass
from functools import lru_cache

DOCUMENT_TYPES = (
    "passport",
    "passport_photos",
    "birth_certificate",
    "marriage_certificate",
    "divorce_certificate",
    "employment_contract",
    "rental_contract",
    "vaccination_record",
    "residence_permit",
    "bank_documents",
    "insurance_documents",
    "school_documents",
    "tax_documents",
    "medical_documents",
    "other",
)

TAG_VOCABULARY = frozenset({
    "identity", "travel", "family", "work", "contract", "housing",
    "health", "legal", "residence", "financial", "education",
    "bank", "insurance", "school", "personal", "official", "other",
})

OFFICIAL_TYPES = frozenset({"passport", "birth_certificate", "marriage_certificate", "residence_permit"})
TRAVEL_TYPES = frozenset({"passport", "residence_permit"})

DEFAULT_TYPE = "other"
DEFAULT_CONFIDENCE = 0.3
CONFIDENCE_CEILING = 0.98
FILENAME_HIT_BOOST = 0.06
CONTENT_HIT_BOOST = 0.02

# Short words that also occur inside unrelated words ("please", "parental", "syntax");
# these must start a word. Everything else is a plain substring so German compounds still match.
WORD_START_PATTERNS = frozenset({"lease", "rental", "bail", "tax", "bank", "iban", "kita"})
# Permit letters must also end a word ("permit c" is not "permit confirmation").
WHOLE_WORD_PATTERNS = frozenset({"permit b", "permit c", "permit l"})


@dataclass(frozen=True)
class ClassificationRule:
    document_type: str
    patterns: tuple[str, ...]
    confidence: float = 0.8
    tags: tuple[str, ...] = ()
    priority: int = 0
    excluded_by: tuple[str, ...] = ()  # rule never fires when the text contains any of these


@dataclass(frozen=True)
class Classification:
    document_type: str
    tags: tuple[str, ...]
    confidence: float


@dataclass(frozen=True)
class _RuleMatch:
    rule: ClassificationRule
    filename_hits: int
    content_hits: int
    longest_pattern: int

    @property
    def sort_key(self) -> tuple:
        # filename weight only enters the confidence, not the choice of rule
        return (self.rule.priority, self.longest_pattern, self.filename_hits > 0, self.filename_hits + self.content_hits)


# Residence permits and passport photos mention "passport" constantly; their priority keeps
# them ahead of the generic passport rule.
RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        document_type="residence_permit",
        patterns=(
            "residence permit", "aufenthaltstitel", "aufenthaltsbewilligung", "permis de séjour",
            "permesso di soggiorno", "permit b", "permit l", "permit c", "niederlassungsbewilligung",
            "ausländerausweis", "livret pour étrangers",
        ),
        confidence=0.9,
        tags=("legal", "residence"),
        priority=100,
    ),
    ClassificationRule(
        document_type="passport_photos",
        patterns=("passport photos", "passport photo", "passport photograph", "passfoto", "photo d'identité", "foto tessera"),
        confidence=0.9,
        tags=("identity", "personal"),
        priority=90,
    ),
    ClassificationRule(
        document_type="school_documents",
        patterns=(
            "schulanmeldung", "kindergarten", "schule", "school", "schüler", "student", "education",
            "inscription scolaire", "iscrizione scolastica", "zeugnis", "report card", "diploma",
            "immatrikulation", "kita",
        ),
        confidence=0.9,
        tags=("education", "school"),
    ),
    ClassificationRule(
        document_type="passport",
        patterns=(
            "passport", "reisepass", "passeport", "passaporto", "id card", "identity card", "ausweis",
            "identitätskarte", "carte d'identité", "carta d'identità",
            "passport number", "passport no", "passeport numéro", "machine readable zone",
            "date of expiry", "nationality", "nationalité", "nazionalità", "nationalität",
        ),
        confidence=0.9,
        tags=("identity", "travel"),
        excluded_by=("residence permit",),
    ),
    ClassificationRule(
        document_type="birth_certificate",
        patterns=("birth certificate", "geburtsurkunde", "acte de naissance", "atto di nascita", "certificat de naissance", "geburtsschein"),
        confidence=0.95,
        tags=("identity", "family"),
    ),
    ClassificationRule(
        document_type="marriage_certificate",
        patterns=("marriage certificate", "heiratsurkunde", "eheschein", "acte de mariage", "atto di matrimonio", "certificat de mariage", "family book", "familienbüchlein"),
        confidence=0.95,
        tags=("family", "identity"),
    ),
    ClassificationRule(
        document_type="divorce_certificate",
        patterns=("divorce", "scheidung", "scheidungsurteil", "jugement de divorce", "sentenza di divorzio"),
        confidence=0.9,
        tags=("family", "legal"),
        priority=10,
    ),
    ClassificationRule(
        document_type="employment_contract",
        patterns=(
            "employment contract", "arbeitsvertrag", "contrat de travail", "contratto di lavoro",
            "work contract", "anstellungsvertrag", "employer", "employee", "arbeitgeber", "lohnausweis",
        ),
        confidence=0.9,
        tags=("work", "contract"),
    ),
    ClassificationRule(
        document_type="rental_contract",
        patterns=(
            "mietvertrag", "rental contract", "rental agreement", "lease", "tenancy", "contrat de location",
            "contratto di affitto", "bail", "landlord", "tenant", "vermieter", "mieter", "rental",
        ),
        confidence=0.9,
        tags=("housing", "contract"),
    ),
    ClassificationRule(
        document_type="vaccination_record",
        patterns=("vaccination", "impfausweis", "impfpass", "impfung", "vaccin", "vaccine", "immunization", "carnet de vaccination", "libretto vaccinale"),
        confidence=0.9,
        tags=("health",),
    ),
    ClassificationRule(
        document_type="bank_documents",
        patterns=("bank statement", "kontoauszug", "relevé de compte", "estratto conto", "bankkonto", "compte bancaire", "conto bancario", "iban", "banking", "bank"),
        confidence=0.8,
        tags=("financial", "bank"),
    ),
    ClassificationRule(
        document_type="insurance_documents",
        patterns=(
            "insurance", "versicherung", "krankenkasse", "assurance", "assicurazione", "krankenversicherung",
            "assurance maladie", "haftpflichtversicherung", "policy number", "policennummer",
        ),
        confidence=0.8,
        tags=("health", "insurance", "financial"),
        excluded_by=("vaccination",),
    ),
    ClassificationRule(
        document_type="tax_documents",
        patterns=("tax return", "steuererklärung", "déclaration d'impôt", "dichiarazione dei redditi", "steuerrechnung", "quellensteuer", "tax"),
        confidence=0.85,
        tags=("financial", "legal"),
    ),
    ClassificationRule(
        document_type="medical_documents",
        patterns=("medical report", "arztbericht", "arztzeugnis", "certificat médical", "certificato medico", "prescription", "rezept", "hospital", "spital"),
        confidence=0.8,
        tags=("health",),
    ),
)


def normalize_filename(file_name: str) -> str:
    """Lowercase and turn common filename separators into spaces ("Residence_Permit-B.pdf" -> "residence permit b.pdf")."""
    return file_name.lower().replace("_", " ").replace("-", " ")


@lru_cache(maxsize=None)
def _word_start_re(pattern: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(pattern))


@lru_cache(maxsize=None)
def _whole_word_re(pattern: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(pattern) + r"(?!\w)")


def _contains(text: str, pattern: str) -> bool:
    if pattern in WHOLE_WORD_PATTERNS:
        return _whole_word_re(pattern).search(text) is not None
    if pattern in WORD_START_PATTERNS:
        return _word_start_re(pattern).search(text) is not None
    return pattern in text


def _match_rule(rule: ClassificationRule, filename: str, content: str) -> _RuleMatch | None:
    combined = f"{filename} {content}"
    if any(term in combined for term in rule.excluded_by):
        return None

    filename_hits = 0
    content_hits = 0
    longest = 0
    for pattern in rule.patterns:
        in_filename = _contains(filename, pattern)
        in_content = _contains(content, pattern)
        if in_filename:
            filename_hits += 1
        if in_content:
            content_hits += 1
        if in_filename or in_content:
            longest = max(longest, len(pattern))

    if not filename_hits and not content_hits:
        return None
    return _RuleMatch(rule=rule, filename_hits=filename_hits, content_hits=content_hits, longest_pattern=longest)


def derive_tags(document_type: str, rule_tags: tuple[str, ...] = ()) -> tuple[str, ...]:
    """Rule tags plus contextual tags, deduplicated in order and restricted to TAG_VOCABULARY."""
    tags = list(rule_tags)
    if document_type in OFFICIAL_TYPES:
        tags.append("official")
    if document_type in TRAVEL_TYPES:
        tags.append("travel")

    seen = []
    for tag in tags:
        if tag in TAG_VOCABULARY and tag not in seen:
            seen.append(tag)
    return tuple(seen)


def classify(file_name: str, extracted_text: str | None = None) -> Classification:
    """Classify a document from its filename and (optionally) its extracted text."""
    filename = normalize_filename(file_name)
    content = (extracted_text or "").lower()

    matches = [m for m in (_match_rule(rule, filename, content) for rule in RULES) if m]
    if not matches:
        return Classification(document_type=DEFAULT_TYPE, tags=(), confidence=DEFAULT_CONFIDENCE)

    # max() keeps the first of equal keys, so RULES order breaks exact ties
    best = max(matches, key=lambda m: m.sort_key)
    confidence = min(
        CONFIDENCE_CEILING,
        best.rule.confidence + FILENAME_HIT_BOOST * best.filename_hits + CONTENT_HIT_BOOST * best.content_hits,
    )
    return Classification(
        document_type=best.rule.document_type,
        tags=derive_tags(best.rule.document_type, best.rule.tags),
        confidence=round(confidence, 4),
    )


def filter_tags(tags) -> list[str]:
    """Keep only vocabulary tags, first occurrence wins."""
    result = []
    for tag in tags or ():
        if isinstance(tag, str) and tag in TAG_VOCABULARY and tag not in result:
            result.append(tag)
    return result


_RULE_TAGS = {rule.document_type: rule.tags for rule in RULES}


def tags_for_type(document_type: str) -> tuple[str, ...]:
    """Tags implied by a document type alone (used when the type is supplied, not inferred)."""
    return derive_tags(document_type, _RULE_TAGS.get(document_type, ()))
