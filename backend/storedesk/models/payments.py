from __future__ import annotations

from ..extensions import db
from storedesk.time_utils import to_utc_z


class Payment(db.Model):
    """
    Money received from an account.

    A payment may be split across several invoices through PaymentAllocation
    rows. Invariant: sum(allocations.amount_cents) <= amount_cents.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(64), nullable=False, unique=True, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    received_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    account = db.relationship("Account")
    receiver = db.relationship("User")
    allocations = db.relationship("PaymentAllocation", back_populates="payment", lazy=True)

    def __repr__(self) -> str:
        return f"<Payment id={self.id} number={self.number!r} amount_cents={self.amount_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "account_id": self.account_id,
            "account": self.account.to_summary() if self.account else None,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
            "received_by": self.received_by,
            "receiver": self.receiver.to_summary() if self.receiver else None,
            "received_at": to_utc_z(self.received_at),
            "allocations": [a.to_dict() for a in self.allocations],
        }


class PaymentAllocation(db.Model):
    __tablename__ = "payment_allocations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    payment = db.relationship("Payment", back_populates="allocations")
    invoice = db.relationship("Invoice")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "invoice_id": self.invoice_id,
            "invoice": (
                {"id": self.invoice.id, "number": self.invoice.number, "total_cents": self.invoice.total_cents}
                if self.invoice else None
            ),
            "amount_cents": self.amount_cents,
            "notes": self.notes,
        }


class CreditNote(db.Model):
    __tablename__ = "credit_notes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(64), nullable=False, unique=True, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    applied_cents = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    applications = db.relationship("CreditNoteApplication", back_populates="credit_note", lazy=True)

    @property
    def remaining_cents(self) -> int:
        return self.amount_cents - (self.applied_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "account_id": self.account_id,
            "amount_cents": self.amount_cents,
            "applied_cents": self.applied_cents,
            "remaining_cents": self.remaining_cents,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


class CreditNoteApplication(db.Model):
    __tablename__ = "credit_note_applications"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    credit_note_id = db.Column(db.Integer, db.ForeignKey("credit_notes.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    applied_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    credit_note = db.relationship("CreditNote", back_populates="applications")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_note_id": self.credit_note_id,
            "invoice_id": self.invoice_id,
            "amount_cents": self.amount_cents,
            "applied_by": self.applied_by,
            "created_at": to_utc_z(self.created_at),
        }


class SalesCommission(db.Model):
    __tablename__ = "sales_commissions"
    __table_args__ = (
        db.UniqueConstraint("invoice_id", "user_id", name="uq_sales_commissions_invoice_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    rate_percent = db.Column(db.Numeric(6, 3), nullable=False)
    base_amount_cents = db.Column(db.Integer, nullable=False)
    commission_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING")
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "user_id": self.user_id,
            "rate_percent": str(self.rate_percent),
            "base_amount_cents": self.base_amount_cents,
            "commission_cents": self.commission_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
