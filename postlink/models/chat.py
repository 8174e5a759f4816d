from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from postlink.core.database import Base
from postlink.models.enums import ChatStatus, str_enum


class Chat(Base):
    __tablename__ = "chats"
    __table_args__ = (Index("ix_chats_participants", "sender_id", "receiver_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[int] = mapped_column(Integer, nullable=False)
    receiver_id: Mapped[int] = mapped_column(Integer, nullable=False)
    send_request_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    delivery_request_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[ChatStatus] = mapped_column(str_enum(ChatStatus), default=ChatStatus.ACTIVE)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def other_participant(self, user_id: int) -> int:
        return self.receiver_id if self.sender_id == user_id else self.sender_id
