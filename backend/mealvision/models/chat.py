from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from mealvision.database import Base
from mealvision.models.meal_analysis import utc_now


class ChatHistory(Base):
    """One conversation per (analysis, user); message_count counts accepted user turns."""
    __tablename__ = "chat_histories"
    __table_args__ = (
        UniqueConstraint("analysis_id", "user_id", name="uq_chat_histories_analysis_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    analysis_id = Column(Integer, ForeignKey("meal_analyses.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    message_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    analysis = relationship("MealAnalysis", back_populates="chat_histories")
    messages = relationship("ChatMessage", back_populates="chat_history", order_by="ChatMessage.id")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_history_id = Column(Integer, ForeignKey("chat_histories.id"), nullable=False, index=True)
    role = Column(String(16), nullable=False)  # "user" or "assistant"
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    chat_history = relationship("ChatHistory", back_populates="messages")
