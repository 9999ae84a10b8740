# Overview: Service-layer operations for CRM records touched by checkout and payment.

from __future__ import annotations

import secrets

from ..extensions import db
from ..models import User, Lead, Account, Contact, Opportunity
from storedesk.time_utils import utcnow


SYSTEM_USER_EMAIL = "system@storedesk.local"

STAGE_DRAFT = "DRAFT"
STAGE_QUOTE_SENT = "QUOTE_SENT"
STAGE_WON = "WON"


def split_name(full_name: str) -> tuple[str, str]:
    """'Ama Serwaa Mensah' -> ('Ama', 'Serwaa Mensah'); a single word is used for both."""
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    first = parts[0]
    last = " ".join(parts[1:]) or first
    return first, last


def get_system_user() -> User:
    """First active ADMIN, created on demand so automated documents always have an owner."""
    user = (
        db.session.query(User)
        .filter(User.role == "ADMIN", User.is_active.is_(True))
        .order_by(User.id.asc())
        .first()
    )
    if user is not None:
        return user

    user = db.session.query(User).filter_by(email=SYSTEM_USER_EMAIL).first()
    if user is None:
        user = User(
            name="System User",
            email=SYSTEM_USER_EMAIL,
            role="ADMIN",
            api_token=secrets.token_urlsafe(32),
            is_active=True,
        )
        db.session.add(user)
        db.session.flush()
    return user


def resolve_or_create_lead(
    *,
    name: str,
    email: str,
    phone: str | None,
    company: str | None,
    shipping_address: dict,
    billing_address: dict | None,
    owner_id: int | None,
) -> Lead:
    lead = (
        db.session.query(Lead)
        .filter(Lead.email == email)
        .order_by(Lead.id.asc())
        .first()
    )
    if lead is not None:
        return lead

    first_name, last_name = split_name(name)
    lead = Lead(
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone or "",
        company=company,
        status="NEW",
        lead_type="INDIVIDUAL",
        source="ECOMMERCE",
        subject="Online Store Customer",
        billing_address=billing_address or shipping_address,
        shipping_address=shipping_address,
        owner_id=owner_id,
    )
    db.session.add(lead)
    db.session.flush()
    return lead


def resolve_or_create_account(
    *,
    name: str,
    email: str,
    phone: str | None,
    company: str | None,
    owner_id: int | None,
) -> Account:
    """
    Account for this email, created with a primary contact when missing.

    A company name makes it a COMPANY account named after the company;
    otherwise an INDIVIDUAL account named after the customer.
    """
    account = (
        db.session.query(Account)
        .filter(Account.email == email)
        .order_by(Account.id.asc())
        .first()
    )
    if account is not None:
        return account

    company = (company or "").strip()
    account = Account(
        name=company or name,
        type="COMPANY" if company else "INDIVIDUAL",
        email=email,
        phone=phone or "",
        owner_id=owner_id,
        notes="Created automatically from ecommerce checkout.",
    )
    db.session.add(account)
    db.session.flush()

    first_name, last_name = split_name(name)
    db.session.add(Contact(
        account_id=account.id,
        first_name=first_name or name,
        last_name=last_name or name,
        email=email,
        phone=phone or "",
        role="Primary Contact",
    ))
    db.session.flush()
    return account


def link_opportunity(quotation, opportunity: Opportunity) -> None:
    """Attach a quotation to an opportunity and move it past DRAFT."""
    quotation.opportunity_id = opportunity.id
    if opportunity.stage == STAGE_DRAFT:
        opportunity.stage = STAGE_QUOTE_SENT
    db.session.flush()


def mark_opportunity_won(opportunity: Opportunity, value_cents: int) -> Opportunity:
    now = utcnow()
    opportunity.stage = STAGE_WON
    opportunity.value_cents = value_cents
    opportunity.probability = 100
    opportunity.won_date = now
    opportunity.close_date = now
    db.session.flush()
    return opportunity
