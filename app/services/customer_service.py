"""Customer lookups by WhatsApp phone number."""

from __future__ import annotations

from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.constants.waha import WHATSAPP_CHAT_SUFFIX
from app.models.customer import Customer


def phone_variants(phone: str) -> list[str]:
    """The phone as given, without the chat suffix, and with it."""
    bare = phone.replace(WHATSAPP_CHAT_SUFFIX, "")
    variants = [phone, bare, f"{bare}{WHATSAPP_CHAT_SUFFIX}"]
    return list(dict.fromkeys(variants))


class CustomerService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_phone(self, organization_id: UUID, phone: str) -> Optional[Customer]:
        variants = phone_variants(phone)
        return (
            self.db.query(Customer)
            .filter(
                Customer.organization_id == organization_id,
                or_(*[Customer.phone == v for v in variants]),
            )
            .order_by(Customer.created_at)
            .first()
        )

    def get_or_create_by_phone(
        self, organization_id: UUID, phone: str, name: Optional[str] = None
    ) -> Tuple[Customer, bool]:
        """Returns (customer, created). Flushes only; the caller commits."""
        customer = self.find_by_phone(organization_id, phone)
        if customer is not None:
            if name and not customer.name:
                customer.name = name
            return customer, False
        customer = Customer(
            organization_id=organization_id,
            phone=phone.replace(WHATSAPP_CHAT_SUFFIX, ""),
            name=name,
        )
        self.db.add(customer)
        self.db.flush()
        return customer, True
