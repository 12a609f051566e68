"""SQLAlchemy 2.0 ORM models for the identity reconciliation service.

One table in the crm schema:
  - crm.contacts: observed email/phone pairs arranged as identity groups
    (one primary, any number of secondaries pointing at it)
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Identity,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


class LinkPrecedence(str, enum.Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


_LINK_PRECEDENCE_CHECK = (
    "link_precedence IN ("
    + ", ".join(f"'{p.value}'" for p in LinkPrecedence)
    + ")"
)


# ===========================================================================
# Schema: crm
# ===========================================================================


class Contact(Base):
    """crm.contacts: one observed (email, phone) pairing and its group role."""

    __tablename__ = "contacts"
    __table_args__ = (
        CheckConstraint(_LINK_PRECEDENCE_CHECK, name="ck_contact_link_precedence"),
        CheckConstraint(
            "email IS NOT NULL OR phone_number IS NOT NULL",
            name="ck_contact_has_identifier",
        ),
        CheckConstraint(
            "(link_precedence = 'primary' AND linked_id IS NULL) OR "
            "(link_precedence = 'secondary' AND linked_id IS NOT NULL)",
            name="ck_contact_linked_id_matches_precedence",
        ),
        Index("ix_contacts_email", "email"),
        Index("ix_contacts_phone_number", "phone_number"),
        Index("ix_contacts_linked_id", "linked_id"),
        {"schema": "crm"},
    )

    id: Mapped[int] = mapped_column(Integer, Identity(always=False), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    linked_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("crm.contacts.id"),
        nullable=True,
    )
    link_precedence: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=LinkPrecedence.PRIMARY.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.clock_timestamp(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.clock_timestamp(),
        onupdate=func.clock_timestamp(),
        nullable=False,
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ------------------------------------------------------------------
    # Identity-graph role helpers (Python only)
    # ------------------------------------------------------------------

    @property
    def is_primary(self) -> bool:
        return self.link_precedence == LinkPrecedence.PRIMARY.value

    @property
    def is_secondary(self) -> bool:
        return self.link_precedence == LinkPrecedence.SECONDARY.value

    def __repr__(self) -> str:
        return (
            f"<Contact id={self.id} email={self.email!r} phone={self.phone_number!r} "
            f"{self.link_precedence} linked_id={self.linked_id}>"
        )
