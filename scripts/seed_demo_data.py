"""Seed a demo owner, company, staff account and invoices."""

from datetime import timedelta

from app import create_app
from models import db
from models.account import Account
from models.company import COMPANIES
from models.managed_user import MANAGED_USERS, PERMISSION_NAMES, hash_credential
from services.reports import INVOICES
from services.subscription import upgrade_fields
from utils.dates import to_iso, utcnow

OWNER_EMAIL = "owner@example.com"
OWNER_PASSWORD = "OwnerPass123"
STAFF_EMAIL = "staff@example.com"
STAFF_PASSWORD = "StaffPass123"


def get_or_create_owner(email: str, password: str) -> Account:
    account = Account.query.filter_by(email=email).first()
    if account is None:
        account = Account(uid="demo-owner", email=email, display_name="Demo Owner")
        db.session.add(account)
    account.set_password(password)
    account.mark_email_verified()
    db.session.commit()
    return account


def main() -> None:
    app = create_app()
    with app.app_context():
        db.create_all()
        store = app.extensions["document_store"]
        now = utcnow()

        owner = get_or_create_owner(OWNER_EMAIL, OWNER_PASSWORD)
        store.set(
            COMPANIES,
            owner.uid,
            {
                "name": "Atlas Conseil",
                "ice": "001234567000089",
                "if": "12345678",
                "rc": "RC-4521",
                "cnss": "7654321",
                "patente": "34567890",
                "address": "12 Avenue Hassan II, Casablanca",
                "phone": "+212 522 000 000",
                "email": OWNER_EMAIL,
                "website": "https://atlas.example",
                "invoicePrefix": "FAC",
                "invoiceCounter": 4,
                "lastInvoiceYear": now.year,
                "ownerEmail": OWNER_EMAIL,
                "ownerName": "Demo Owner",
                "createdAt": to_iso(now),
                **upgrade_fields(now),
            },
        )

        if not store.query(MANAGED_USERS, email=STAFF_EMAIL):
            permissions = {name: name in {"dashboard", "invoices", "reports"} for name in PERMISSION_NAMES}
            store.add(
                MANAGED_USERS,
                {
                    "email": STAFF_EMAIL,
                    "passwordHash": hash_credential(STAFF_PASSWORD),
                    "name": "Demo Staff",
                    "status": "active",
                    "permissions": permissions,
                    "entrepriseId": owner.uid,
                },
            )

        if not store.query(INVOICES, entrepriseId=owner.uid):
            invoices = [
                ("Maroc Telecom", "12500.00", "paid", 3),
                ("Maroc Telecom", "4300.50", "pending", 10),
                ("OCP Group", "28000", "paid", 20),
                ("Label Vie", "950.75", "overdue", 35),
                ("Label Vie", "2200", "paid", 60),
            ]
            for client, total, status, days_ago in invoices:
                store.add(
                    INVOICES,
                    {
                        "clientName": client,
                        "total": total,
                        "status": status,
                        "date": to_iso(now - timedelta(days=days_ago)),
                        "entrepriseId": owner.uid,
                    },
                )

        print(f"Owner: {OWNER_EMAIL} / {OWNER_PASSWORD}")
        print(f"Staff: {STAFF_EMAIL} / {STAFF_PASSWORD}")


if __name__ == "__main__":
    main()
