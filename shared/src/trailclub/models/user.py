"""Member account model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Index, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trailclub.models.base import Base

if TYPE_CHECKING:
    from trailclub.models.membership import Membership
    from trailclub.models.membership_card import MembershipCard


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")
    )
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(Text)
    stripe_customer_id: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )

    # Relationships
    memberships: Mapped[list[Membership]] = relationship(back_populates="user", lazy="noload")
    card: Mapped[MembershipCard | None] = relationship(
        back_populates="user", uselist=False, lazy="noload"
    )

    __table_args__ = (Index("idx_users_stripe_customer", "stripe_customer_id"),)
