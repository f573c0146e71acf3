from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from marketplace.application.auth_service import AuthService
from marketplace.infrastructure.repositories import AuthRepository, CategoryRepository


logger = logging.getLogger("marketplace")

CATEGORY_TAXONOMY: List[Tuple[str, str, List[Tuple[str, str]]]] = [
    (
        "Office Supplies",
        "office-supplies",
        [("Paper & Notebooks", "paper-notebooks"), ("Writing Instruments", "writing-instruments"), ("Desk Accessories", "desk-accessories")],
    ),
    (
        "Furniture",
        "furniture",
        [("Desks", "desks"), ("Chairs", "chairs"), ("Storage", "storage")],
    ),
    (
        "Electronics",
        "electronics",
        [("Computers", "computers"), ("Peripherals", "peripherals"), ("Networking", "networking")],
    ),
    (
        "Industrial Equipment",
        "industrial-equipment",
        [("Tools", "tools"), ("Safety Gear", "safety-gear"), ("Packaging", "packaging")],
    ),
    (
        "Cleaning & Facilities",
        "cleaning-facilities",
        [("Cleaning Supplies", "cleaning-supplies"), ("Restroom Supplies", "restroom-supplies")],
    ),
]

DEMO_ACCOUNTS: List[Dict[str, str]] = [
    {
        "email": "admin@mwrd.com",
        "password": "admin123",
        "role": "admin",
        "real_name": "Admin User",
        "company_name": "mwrd Platform",
    },
    {
        "email": "client@test.com",
        "password": "client123",
        "role": "client",
        "real_name": "John Smith",
        "company_name": "ABC Manufacturing Co.",
    },
    {
        "email": "supplier@test.com",
        "password": "supplier123",
        "role": "supplier",
        "real_name": "Sarah Johnson",
        "company_name": "Quality Supplies Ltd.",
    },
    {
        "email": "supplier2@test.com",
        "password": "supplier123",
        "role": "supplier",
        "real_name": "Mike Chen",
        "company_name": "Global Electronics Inc.",
    },
]


def seed_taxonomy(db, categories: CategoryRepository | None = None) -> int:
    categories = categories or CategoryRepository()
    created = 0
    for name, slug, subcategories in CATEGORY_TAXONOMY:
        existing = categories.get_by_slug(db, slug)
        category_id = existing["id"] if existing else categories.create(db, name=name, slug=slug)
        if not existing:
            created += 1
        for sub_name, sub_slug in subcategories:
            if not categories.subcategory_slug_exists(db, category_id, sub_slug):
                categories.create_subcategory(db, category_id=category_id, name=sub_name, slug=sub_slug)
    return created


def seed_demo_accounts(db, auth_service: AuthService | None = None) -> int:
    auth_service = auth_service or AuthService()
    users = AuthRepository()
    created = 0
    for account in DEMO_ACCOUNTS:
        if users.email_exists(db, account["email"]):
            continue
        auth_service.create_account(db, status="approved", **account)
        created += 1
    return created


def seed_demo_data(db) -> Dict[str, int]:
    """Taxonomy plus demo accounts. Safe to run repeatedly."""
    with db.transaction():
        categories = seed_taxonomy(db)
        accounts = seed_demo_accounts(db)
    logger.info("seed_completed", extra={"categories_created": categories, "accounts_created": accounts})
    return {"categories": categories, "accounts": accounts}
