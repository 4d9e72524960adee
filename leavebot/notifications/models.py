"""Notifications ORM model — one row per outbound message and its delivery outcome."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from leavebot.database import Base


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        sa.Index("ix_notifications_recipient", "recipient"),
        sa.Index("ix_notifications_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    # Chat user id for DMs, channel name for broadcasts
    recipient: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    type: Mapped[str] = mapped_column(sa.String(30), nullable=False, server_default="info")
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    message: Mapped[str] = mapped_column(sa.Text, nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(sa.String(50))
    entity_id: Mapped[Optional[int]] = mapped_column(sa.Integer)
    delivered: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false()
    )
    error: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    def __repr__(self) -> str:
        return f"<Notification {self.type} → {self.recipient} delivered={self.delivered}>"
