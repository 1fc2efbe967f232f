"""Company records stored in the ``entreprises`` collection."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional

COMPANIES = "entreprises"
SUBSCRIPTION_TIERS = ("free", "pro")

# Stored (camelCase) key -> attribute name.
COMPANY_FIELDS = {
    "name": "name",
    "ice": "ice",
    "if": "if_number",
    "rc": "rc",
    "cnss": "cnss",
    "patente": "patente",
    "address": "address",
    "phone": "phone",
    "email": "email",
    "website": "website",
    "logo": "logo",
    "signature": "signature",
    "invoiceNumberingFormat": "invoice_numbering_format",
    "invoicePrefix": "invoice_prefix",
    "invoiceCounter": "invoice_counter",
    "lastInvoiceYear": "last_invoice_year",
    "defaultTemplate": "default_template",
    "subscription": "subscription",
    "subscriptionDate": "subscription_date",
    "expiryDate": "expiry_date",
    "ownerName": "owner_name",
    "ownerEmail": "owner_email",
}

SUBSCRIPTION_FIELDS = frozenset({"subscription", "subscriptionDate", "expiryDate"})

# Keys a settings update may touch.
SETTINGS_FIELDS = frozenset(COMPANY_FIELDS) - SUBSCRIPTION_FIELDS - {"ownerEmail"}


@dataclass
class Company:
    """In-memory projection of a stored company record."""

    name: str = ""
    ice: str = ""
    if_number: str = ""
    rc: str = ""
    cnss: str = ""
    patente: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    logo: Optional[str] = None
    signature: str = ""
    invoice_numbering_format: Optional[str] = None
    invoice_prefix: Optional[str] = None
    invoice_counter: Optional[int] = None
    last_invoice_year: Optional[int] = None
    default_template: str = "template1"
    subscription: str = "free"
    subscription_date: Optional[str] = None
    expiry_date: Optional[str] = None
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "Company":
        values = {
            attr: data[key]
            for key, attr in COMPANY_FIELDS.items()
            if data.get(key) is not None
        }
        company = cls(**values)
        if not company.signature:
            company.signature = ""
        if not company.default_template:
            company.default_template = "template1"
        if not company.subscription:
            company.subscription = "free"
        return company

    def merge(self, changes: Mapping[str, Any]) -> "Company":
        """Return a copy with stored-key ``changes`` applied; unknown keys are ignored."""

        values = {
            COMPANY_FIELDS[key]: value
            for key, value in changes.items()
            if key in COMPANY_FIELDS
        }
        return replace(self, **values)

    def to_dict(self) -> dict:
        """Serialize with the attribute names used by the JSON API."""

        return {field.name: getattr(self, field.name) for field in fields(self)}
