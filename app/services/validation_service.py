import re
from typing import Dict, Mapping, Optional

from app.schemas.registry_schema import RegistrationForm, TransferForm

AADHAAR_PATTERN = re.compile(r"^\d{12}$")
VOTER_ID_PATTERN = re.compile(r"^[A-Z]{3}\d{7}$")
PHONE_PATTERN = re.compile(r"^\d{10}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
WALLET_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

REGISTRATION_DOCUMENTS = {
    "aadhaar_front": "Aadhaar front is required",
    "aadhaar_back": "Aadhaar back is required",
    "pan_card": "PAN card is required",
    "owner_photo": "Owner photograph is required",
    "property_photo": "Property photograph is required",
    "ownership_document": "Ownership document is required",
}

TRANSFER_DOCUMENTS = {
    "seller_id_proof": "Seller ID proof is required",
    "buyer_id_proof": "Buyer ID proof is required",
    "sale_deed": "Sale deed is required",
    "encumbrance_certificate": "Encumbrance certificate is required",
    "tax_receipt": "Property tax receipt is required",
    "no_objection_certificate": "No objection certificate is required",
    "property_photo": "Property photograph is required",
}

ErrorMap = Dict[str, str]


def _missing_documents(documents: Mapping, required: Mapping[str, str]) -> ErrorMap:
    return {
        doc_type: message
        for doc_type, message in required.items()
        if documents.get(doc_type) is None
    }


def _check_party(form: TransferForm, role: str, errors: ErrorMap) -> None:
    label = role.capitalize()
    if not getattr(form, f"{role}_name").strip():
        errors[f"{role}_name"] = f"{label} name is required"
    if not WALLET_PATTERN.fullmatch(getattr(form, f"{role}_wallet")):
        errors[f"{role}_wallet"] = "Invalid wallet address"
    if not PHONE_PATTERN.fullmatch(getattr(form, f"{role}_phone")):
        errors[f"{role}_phone"] = "Phone must be 10 digits"
    if not EMAIL_PATTERN.fullmatch(getattr(form, f"{role}_email")):
        errors[f"{role}_email"] = "Invalid email address"


def validate_registration(form: RegistrationForm, documents: Mapping) -> ErrorMap:
    """
    Checks a registration submission against the field and document rules.

    Every failing rule contributes one entry keyed by its field name, so the
    caller can show all problems at once.

    Args:
        form (RegistrationForm): Owner and land details as submitted.
        documents (Mapping): Document type to uploaded file, or None when missing.

    Returns:
        Dict[str, str]: Field name to message. Empty when the submission is accepted.
    """
    errors: ErrorMap = {}

    if not form.owner_name.strip():
        errors["owner_name"] = "Owner name is required"
    if not AADHAAR_PATTERN.fullmatch(form.aadhaar_number):
        errors["aadhaar_number"] = "Aadhaar must be 12 digits"
    if not VOTER_ID_PATTERN.fullmatch(form.voter_id.upper()):
        errors["voter_id"] = "Invalid Voter ID format (e.g., ABC1234567)"
    if not PHONE_PATTERN.fullmatch(form.phone):
        errors["phone"] = "Phone must be 10 digits"
    if not EMAIL_PATTERN.fullmatch(form.email):
        errors["email"] = "Invalid email address"

    if not form.land_address.strip():
        errors["land_address"] = "Land address is required"
    if not form.land_area.strip():
        errors["land_area"] = "Land area is required"
    if not form.survey_number.strip():
        errors["survey_number"] = "Survey number is required"
    if not form.district.strip():
        errors["district"] = "District is required"
    if not form.state.strip():
        errors["state"] = "State is required"

    errors.update(_missing_documents(documents, REGISTRATION_DOCUMENTS))
    return errors


def validate_transfer(form: TransferForm, documents: Optional[Mapping] = None) -> ErrorMap:
    """
    Checks a transfer submission. Documents are only required when a mapping
    is passed in.
    """
    errors: ErrorMap = {}

    if not form.property_id.strip():
        errors["property_id"] = "Property ID is required"

    _check_party(form, "seller", errors)
    _check_party(form, "buyer", errors)

    if (form.seller_wallet and form.buyer_wallet
            and form.seller_wallet.lower() == form.buyer_wallet.lower()):
        errors["buyer_wallet"] = "Buyer wallet must be different from seller"

    if documents is not None:
        errors.update(_missing_documents(documents, TRANSFER_DOCUMENTS))
    return errors
