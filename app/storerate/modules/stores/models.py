from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.storerate.models import Base
from app.storerate.utils import utcnow

if TYPE_CHECKING:
    from app.storerate.models import User
    from app.storerate.modules.ratings.models import Rating


class Store(Base):
    __tablename__ = "stores"
    __table_args__ = (
        Index("idx_stores_name", "name"),
        Index("idx_stores_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(60), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    address: Mapped[str] = mapped_column(String(400), nullable=False)

    # One store per owner
    owner_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    owner: Mapped["User | None"] = relationship("User", foreign_keys=[owner_user_id], lazy="selectin")
    ratings: Mapped[list["Rating"]] = relationship(
        "Rating",
        back_populates="store",
        cascade="all, delete-orphan",
    )
