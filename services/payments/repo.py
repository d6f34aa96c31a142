"""SQLAlchemy storage for the payment gateway sandbox.

The sandbox keeps the gateway-side state needed to answer the web app's
calls: orders with their charges (each charge remembers its last
transaction), payout recipients, and idempotency records that replay the
first answer given for an ``Idempotency-Key``.

The connection URL is read from ``DATABASE_URL`` and defaults to a local
SQLite file; point it at Postgres (``postgresql+psycopg://...``) to share
state between sandbox workers.
"""

import hashlib
import json
import os
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, create_engine, func, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship
from sqlalchemy.pool import StaticPool

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./gateway_sandbox.db")


def _make_engine(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise each session sees an empty db
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


engine = _make_engine(DATABASE_URL)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Gateway-style identifier, e.g. ``ch_3f9c...``."""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class Base(DeclarativeBase):
    pass


class GatewayOrder(Base):
    __tablename__ = "gateway_orders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    code: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    amount: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(32))
    customer: Mapped[dict] = mapped_column(JSON, default=dict)
    items: Mapped[list] = mapped_column(JSON, default=list)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    charges: Mapped[list["Charge"]] = relationship(back_populates="order", order_by="Charge.created_at")


class Charge(Base):
    """A charge and its last transaction.

    Attributes:
        status: Charge status (``paid``, ``pending``, ``failed``, ``canceled``).
        last_transaction_status: Status of the most recent transaction
            (``paid``, ``processing``, ``refused``, ``canceled``).
        split: Split rules as received, if any.
    """

    __tablename__ = "charges"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("gateway_orders.id"))
    amount: Mapped[int] = mapped_column(Integer)
    paid_amount: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(32))
    payment_method: Mapped[str] = mapped_column(String(32), default="credit_card")
    last_transaction_id: Mapped[str] = mapped_column(String(32), unique=True)
    last_transaction_status: Mapped[str] = mapped_column(String(32))
    acquirer_message: Mapped[Optional[str]] = mapped_column(String(255))
    card_last_digits: Mapped[Optional[str]] = mapped_column(String(4))
    split: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

    order: Mapped[GatewayOrder] = relationship(back_populates="charges")


class Recipient(Base):
    __tablename__ = "recipients"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    code: Mapped[Optional[str]] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(128))
    email: Mapped[str] = mapped_column(String(128))
    document: Mapped[str] = mapped_column(String(14))
    type: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), default="active")
    default_bank_account: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class IdempotencyKey(Base):
    """First answer given for an ``Idempotency-Key`` on order creation."""

    __tablename__ = "idempotency_keys"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    request_hash: Mapped[str] = mapped_column(String(64))
    status_code: Mapped[int] = mapped_column(Integer, default=0)
    response_body: Mapped[dict] = mapped_column(JSON, default=dict)


def canonical_hash(payload: dict) -> str:
    """Deterministic SHA-256 of a JSON body (sorted keys, compact separators)."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@contextmanager
def get_session():
    with Session(engine, expire_on_commit=False) as s:
        yield s


# ---- serialization to the gateway's JSON shapes ----

def charge_to_dict(charge: Charge) -> dict:
    body = {
        "id": charge.id,
        "code": charge.order.code if charge.order else None,
        "amount": charge.amount,
        "paid_amount": charge.paid_amount,
        "status": charge.status,
        "payment_method": charge.payment_method,
        "order": {"id": charge.order_id},
        "last_transaction": {
            "id": charge.last_transaction_id,
            "transaction_type": "credit_card",
            "status": charge.last_transaction_status,
            "amount": charge.amount,
            "acquirer_message": charge.acquirer_message,
            "card": {"last_four_digits": charge.card_last_digits},
        },
        "created_at": charge.created_at.isoformat() if charge.created_at else None,
    }
    if charge.split:
        body["last_transaction"]["split"] = charge.split
    return body


def order_to_dict(order: GatewayOrder) -> dict:
    return {
        "id": order.id,
        "code": order.code,
        "amount": order.amount,
        "status": order.status,
        "customer": order.customer,
        "items": order.items,
        "metadata": order.metadata_,
        "charges": [charge_to_dict(c) for c in order.charges],
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }


def recipient_to_dict(r: Recipient) -> dict:
    return {
        "id": r.id,
        "code": r.code,
        "name": r.name,
        "email": r.email,
        "document": r.document,
        "type": r.type,
        "status": r.status,
        "default_bank_account": r.default_bank_account,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


class GatewayRepo:
    """Persistence operations used by the sandbox endpoints."""

    def create_order(
        self,
        s: Session,
        *,
        code: Optional[str],
        amount: int,
        customer: dict,
        items: list,
        metadata: dict,
        charge_status: str,
        transaction_status: str,
        acquirer_message: Optional[str],
        card_last_digits: Optional[str],
        split: Optional[list],
    ) -> GatewayOrder:
        order = GatewayOrder(
            id=new_id("or"),
            code=code,
            amount=amount,
            status=charge_status,
            customer=customer,
            items=items,
            metadata_=metadata,
        )
        order.charges.append(
            Charge(
                id=new_id("ch"),
                amount=amount,
                paid_amount=amount if charge_status == "paid" else 0,
                status=charge_status,
                last_transaction_id=new_id("tran"),
                last_transaction_status=transaction_status,
                acquirer_message=acquirer_message,
                card_last_digits=card_last_digits,
                split=split,
            )
        )
        s.add(order)
        s.flush()
        return order

    def find_charge(self, s: Session, reference: str) -> Optional[Charge]:
        """Look a charge up by its own id (``ch_...``)."""
        return s.execute(select(Charge).where(Charge.id == reference)).scalars().first()

    def set_charge_status(
        self, s: Session, charge: Charge, status: str, transaction_status: str, amount: Optional[int] = None
    ) -> Charge:
        if amount:
            charge.amount = amount
        charge.status = status
        charge.last_transaction_status = transaction_status
        charge.paid_amount = charge.amount if status == "paid" else 0
        charge.order.status = status
        s.flush()
        return charge

    def cancel_charge(self, s: Session, charge: Charge, amount: Optional[int] = None) -> Charge:
        """Refund ``amount`` of a paid charge, or cancel it outright.

        An amount below what is still paid only lowers ``paid_amount``; the
        charge keeps its status.
        """
        if amount and amount < charge.paid_amount:
            charge.paid_amount -= amount
            s.flush()
            return charge
        return self.set_charge_status(s, charge, "canceled", "canceled")

    def create_recipient(self, s: Session, **fields) -> Recipient:
        recipient = Recipient(id=new_id("rp"), **fields)
        s.add(recipient)
        s.flush()
        return recipient

    def get_recipient(self, s: Session, recipient_id: str) -> Optional[Recipient]:
        return s.get(Recipient, recipient_id)

    def list_recipients(self, s: Session, page: int, size: int) -> tuple[list[Recipient], int]:
        total = s.execute(select(func.count()).select_from(Recipient)).scalar_one()
        rows = s.execute(
            select(Recipient).order_by(Recipient.created_at).offset((page - 1) * size).limit(size)
        ).scalars().all()
        return list(rows), total


def init_db() -> None:
    Base.metadata.create_all(engine)
