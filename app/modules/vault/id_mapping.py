"""
Global document type ids.

Each document TYPE has one fixed numeric id used by the checklist UI across all tasks
("Employment Contract" is always 3, wherever it appears). Upload buttons send the id, and
the upload path maps it back to a type with maximum confidence.
"""

from app.modules.vault.classifier import ClassificationRule

GLOBAL_DOCUMENT_TYPE_IDS: dict[str, int] = {
    "residence_permit": 1,
    "passport": 2,
    "employment_contract": 3,
    "rental_contract": 4,
    "marriage_certificate": 5,
    "birth_certificate": 6,
    "divorce_certificate": 7,
    "insurance_documents": 8,
    "vaccination_record": 9,
    "bank_documents": 10,
    "school_documents": 11,
    "passport_photos": 12,
    "other": 99,
}

DISPLAY_NAMES = {
    "passport": "Passport/ID",
    "passport_photos": "Passport Photos",
    "residence_permit": "Residence Permit",
    "employment_contract": "Employment Contract",
    "rental_contract": "Rental Contract",
    "marriage_certificate": "Marriage Certificate",
    "birth_certificate": "Birth Certificate",
    "divorce_certificate": "Divorce Certificate",
    "insurance_documents": "Insurance Documents",
    "vaccination_record": "Vaccination Record",
    "bank_documents": "Bank Documents",
    "school_documents": "School Documents",
    "other": "Other Documents",
}

# Requirement texts come from checklist items ("Valid passport for each family member",
# "Proof of health insurance", ...). Higher priority first, then the longest pattern.
REQUIREMENT_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule("residence_permit", ("residence permit application confirmation", "residence permit application", "residence permit"), priority=100),
    ClassificationRule("passport_photos", ("passport photos", "passport photo", "passport photograph"), priority=90),
    ClassificationRule("passport", ("passport/id", "passport or id", "passport", "id for", "child's passport", "valid passport")),
    ClassificationRule("employment_contract", ("employment contract", "employment", "proof of financial means", "contract")),
    ClassificationRule("rental_contract", ("rental contract", "lease agreement", "landlord confirmation", "landlord", "proof of address")),
    ClassificationRule("marriage_certificate", ("family book", "marriage certificate", "marriage")),
    ClassificationRule("birth_certificate", ("birth certificate", "birth")),
    ClassificationRule("divorce_certificate", ("divorce certificate", "divorce")),
    ClassificationRule("insurance_documents", ("health insurance", "proof of health insurance", "insurance")),
    ClassificationRule("vaccination_record", ("vaccination record", "vaccination")),
    ClassificationRule("bank_documents", ("utility bill", "bank statement", "bank")),
    ClassificationRule("school_documents", ("school", "education")),
)


def _skip_pattern(pattern: str, text: str) -> bool:
    """Known false positives between generic patterns and more specific documents."""
    if pattern == "insurance" and "vaccination" in text:
        return True
    if pattern == "contract" and "rental" in text and "employment" not in text:
        return True
    if pattern == "passport" and "residence permit" in text:
        return True
    return False


def document_type_for_requirement(requirement: str) -> str:
    text = requirement.lower().strip()
    ordered = sorted(
        REQUIREMENT_RULES,
        key=lambda rule: (-rule.priority, -max(len(p) for p in rule.patterns)),
    )
    for rule in ordered:
        for pattern in rule.patterns:
            if pattern in text and not _skip_pattern(pattern, text):
                return rule.document_type
    return "other"


def document_id_for_requirement(requirement: str) -> int:
    return GLOBAL_DOCUMENT_TYPE_IDS.get(document_type_for_requirement(requirement), 99)


def document_type_by_id(document_id: int | None) -> str | None:
    if document_id is None:
        return None
    for doc_type, doc_id in GLOBAL_DOCUMENT_TYPE_IDS.items():
        if doc_id == document_id:
            return doc_type
    return None


def display_name(document_type: str) -> str:
    return DISPLAY_NAMES.get(document_type, document_type)
