"""SQLAlchemy models for the sales desk application."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from salesdesk.auth import User
from salesdesk.database import Base

MANAGER_TYPE_ENUM = ("AreaManager", "Regional", "default")


class StoredRecord(Base):
    """One JSON document in the generic record store, keyed by collection and id."""

    __tablename__ = "records"

    collection: Mapped[str] = mapped_column(String(50), primary_key=True)
    record_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    __table_args__ = (
        Index("idx_records_collection_owner", "collection", "owner_id"),
    )


class SellerProfile(Base):
    __tablename__ = "seller_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    office: Mapped[str | None] = mapped_column(String(100), nullable=True)
    pay_type: Mapped[str] = mapped_column(String(20), nullable=False, default="Rookie")
    manager_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    manager_id: Mapped[int | None] = mapped_column(
        ForeignKey("seller_profiles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    user: Mapped[User] = relationship()
    manager: Mapped["SellerProfile | None"] = relationship(
        remote_side="SellerProfile.id", back_populates="team_members"
    )
    team_members: Mapped[list["SellerProfile"]] = relationship(back_populates="manager")

    __table_args__ = (
        CheckConstraint("pay_type IN ('Rookie', 'Vet', 'Pro')", name="ck_seller_pay_type_valid"),
        CheckConstraint(
            "manager_type IS NULL OR manager_type IN ('AreaManager', 'Regional', 'default')",
            name="ck_seller_manager_type_valid",
        ),
    )

    @property
    def owner_id(self) -> int:
        """Records in the store are owned by user id."""
        return self.user_id
