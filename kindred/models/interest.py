"""
Kindred — Interest model (a user's like / dislike toward another user).
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from kindred.database import Base
from kindred.utils.timeutils import utcnow


class InterestKind(str, enum.Enum):
    LIKE = "like"
    DISLIKE = "dislike"


class Interest(Base):
    __tablename__ = "interests"
    __table_args__ = (
        UniqueConstraint("actor_id", "target_id", name="uq_interest_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(
        String(16), nullable=False, comment="like / dislike"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )

    def __repr__(self) -> str:
        return f"<Interest {self.actor_id} -> {self.target_id} kind={self.kind!r}>"
