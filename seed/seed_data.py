"""
Seed the database with realistic sample quotes.

Creates:
  - 8 B2B quotes for South African trade customers
  - Quotes spread across the workflow: DRAFT, SENT, VIEWED, ACCEPTED, REJECTED
  - Edge cases: an overdue SENT quote (picked up by the expiry sweep),
    a quote with no expiry, a single-line quote with a zero-priced item

Run:
    python -m seed.seed_data
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backoffice.database import async_session, init_db
from backoffice.engine.quotes import (
    QuoteInput,
    QuoteItemInput,
    create_quote,
    list_quotes,
    set_quote_status,
)
from backoffice.models.enums import QuoteStatus

NOW = datetime.now(timezone.utc)

QUOTES = [
    {
        "customer_name": "Thandi Nkosi",
        "customer_email": "thandi@nkosibuilders.co.za",
        "customer_company": "Nkosi Builders",
        "customer_phone": "0821234567",
        "items": [
            ("Cement 50kg", "CEM-50", 40, 109.95),
            ("River sand (cube)", "SND-RIV", 6, 650.00),
            ("Brick - NFP", "BRK-NFP", 2000, 2.45),
        ],
        "expires_in_days": 14,
        "workflow": [QuoteStatus.SENT],
    },
    {
        "customer_name": "Pieter van Wyk",
        "customer_email": "pieter@karooplumbing.co.za",
        "customer_company": "Karoo Plumbing",
        "items": [
            ("Geyser 150L", "GY-150", 2, 4499.00),
            ("Copper pipe 15mm x 3m", "CU-15-3", 24, 189.90),
        ],
        "expires_in_days": 30,
        "workflow": [QuoteStatus.SENT, QuoteStatus.VIEWED],
    },
    {
        "customer_name": "Lerato Mokoena",
        "customer_email": "lerato@sunvolt.co.za",
        "customer_company": "SunVolt Solar",
        "items": [
            ("Solar panel 450W", "PV-450", 12, 2100.00),
            ("Hybrid inverter 5kW", "INV-5K", 1, 18999.00),
            ("Mounting kit", "MNT-KIT", 3, 650.00),
        ],
        "expires_in_days": 21,
        "workflow": [QuoteStatus.SENT, QuoteStatus.VIEWED, QuoteStatus.ACCEPTED],
    },
    {
        "customer_name": "Sipho Dlamini",
        "customer_email": "sipho@dlaminielectrical.co.za",
        "customer_company": "Dlamini Electrical",
        "items": [
            ("Surfix cable 2.5mm 100m", "SFX-25", 5, 1249.00),
            ("DB board 12-way", "DB-12", 2, 389.00),
        ],
        "expires_in_days": 7,
        "workflow": [QuoteStatus.ACCEPTED],
    },
    {
        "customer_name": "Anika Pillay",
        "customer_email": "anika@coastalkitchens.co.za",
        "customer_company": "Coastal Kitchens",
        "items": [("Granite worktop (per m)", "GRN-M", 9, 1450.00)],
        "expires_in_days": 10,
        "workflow": [QuoteStatus.SENT, QuoteStatus.REJECTED],
    },
    {
        "customer_name": "Johan Botha",
        "customer_email": "johan@bothafarms.co.za",
        "customer_company": "Botha Farms",
        "items": [("Galvanised fencing 50m", "FEN-50", 20, 899.00)],
        "expires_in_days": 30,
        "workflow": [],
    },

    # ─── Edge cases ────────────────────────────────────────────────────

    # Already past its expiry but still SENT: the next sweep expires it
    {
        "customer_name": "Naledi Khumalo",
        "customer_email": "naledi@khumalointeriors.co.za",
        "customer_company": "Khumalo Interiors",
        "items": [("Laminate flooring (box)", "LAM-BX", 30, 429.00)],
        "expires_in_days": -2,
        "workflow": [QuoteStatus.SENT],
    },

    # No expiry at all, with a free delivery line
    {
        "customer_name": "Ruan Steyn",
        "customer_email": "ruan@steynroofing.co.za",
        "customer_company": "Steyn Roofing",
        "items": [
            ("IBR roof sheet 0.47mm x 6m", "IBR-6", 60, 389.00),
            ("Delivery (Gauteng)", None, 1, 0.00),
        ],
        "expires_in_days": None,
        "workflow": [],
    },
]


def _to_input(data: dict) -> QuoteInput:
    expires_in = data["expires_in_days"]
    return QuoteInput(
        customer_name=data["customer_name"],
        customer_email=data["customer_email"],
        customer_company=data.get("customer_company"),
        customer_phone=data.get("customer_phone"),
        items=[
            QuoteItemInput(product_name=name, product_sku=sku, quantity=quantity, unit_price=price)
            for name, sku, quantity, price in data["items"]
        ],
        expires_at=NOW + timedelta(days=expires_in) if expires_in is not None else None,
        created_by_user_id="seed",
    )


async def seed():
    """Seed the database with sample quotes."""
    await init_db()

    async with async_session() as session:
        # Check if already seeded
        existing = await list_quotes(session, limit=1)
        if existing.total:
            print("Database already seeded. Skipping.")
            return

        for data in QUOTES:
            quote = await create_quote(session, _to_input(data))
            for status in data["workflow"]:
                await set_quote_status(session, quote.id, status)

        print(f"Seeded {len(QUOTES)} quotes.")


if __name__ == "__main__":
    asyncio.run(seed())
