import logging
from typing import List, Optional

from sqlalchemy import and_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from config import CHAT_TURN_LIMIT
from mealvision.crud.meal_analysis import as_utc, get_analysis
from mealvision.exceptions import PersistenceError, QuotaExceeded
from mealvision.models.chat import ChatHistory, ChatMessage
from mealvision.models.meal_analysis import utc_now
from mealvision.schemas.chat import ChatMessageSchema, ChatThreadSchema, Role

logger = logging.getLogger(__name__)

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    try:
        return _INSERTS[dialect]
    except KeyError:
        raise PersistenceError(f"ON CONFLICT upsert is not supported on '{dialect}'")


def get_chat_thread(db: Session, analysis_id: int, user_id: str) -> Optional[ChatHistory]:
    return db.query(ChatHistory).filter(
        and_(
            ChatHistory.analysis_id == analysis_id,
            ChatHistory.user_id == user_id
        )
    ).first()


def create_or_get_chat_thread(db: Session, analysis_id: int, user_id: str) -> ChatHistory:
    """
    Returns the single thread for (analysis, user), creating it if needed.
    Concurrent callers converge on the same row through ON CONFLICT DO NOTHING.
    Raises AnalysisNotFound when the analysis does not exist or belongs to someone else.
    """
    get_analysis(db, user_id, analysis_id)

    now = utc_now()
    insert = _dialect_insert(db)
    stmt = insert(ChatHistory).values(
        analysis_id=analysis_id,
        user_id=user_id,
        message_count=0,
        created_at=now,
        updated_at=now,
    ).on_conflict_do_nothing(index_elements=["analysis_id", "user_id"])
    result = db.execute(stmt)
    db.commit()

    if result.rowcount:
        logger.info(f"[Chat DB] Created thread for analysis {analysis_id}, user {user_id}")

    return get_chat_thread(db, analysis_id, user_id)


def remaining_turns(thread: ChatHistory) -> int:
    return max(0, CHAT_TURN_LIMIT - (thread.message_count or 0))


def ensure_turn_available(thread: ChatHistory) -> None:
    """Raises QuotaExceeded once the thread has used all of its user turns."""
    if remaining_turns(thread) <= 0:
        raise QuotaExceeded(f"Chat limit of {CHAT_TURN_LIMIT} messages reached for this analysis")


def append_message(db: Session, thread_id: int, role: Role, content: str) -> ChatMessage:
    """
    Stores one message. A user message also takes one turn: the counter is
    incremented in a single UPDATE guarded by the turn limit, so concurrent
    requests can never push it past CHAT_TURN_LIMIT.
    """
    if role == "user":
        stmt = (
            update(ChatHistory)
            .where(
                ChatHistory.id == thread_id,
                ChatHistory.message_count < CHAT_TURN_LIMIT,
            )
            .values(message_count=ChatHistory.message_count + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
    else:
        stmt = (
            update(ChatHistory)
            .where(ChatHistory.id == thread_id)
            .values(updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

    result = db.execute(stmt)
    if result.rowcount == 0:
        db.rollback()
        if role == "user":
            logger.warning(f"[Chat DB] Turn limit reached on thread {thread_id}")
            raise QuotaExceeded(f"Chat limit of {CHAT_TURN_LIMIT} messages reached for this analysis")
        raise LookupError(f"Chat thread {thread_id} does not exist")

    db_message = ChatMessage(chat_history_id=thread_id, role=role, content=content)
    db.add(db_message)
    db.commit()
    db.refresh(db_message)
    return db_message


def get_messages(db: Session, thread_id: int) -> List[ChatMessage]:
    return db.query(ChatMessage).filter(
        ChatMessage.chat_history_id == thread_id
    ).order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc()).all()


def to_message_schema(db_message: ChatMessage) -> ChatMessageSchema:
    return ChatMessageSchema(
        role=db_message.role,
        content=db_message.content,
        timestamp=as_utc(db_message.created_at),
    )


def to_thread_schema(thread: ChatHistory, messages: List[ChatMessage]) -> ChatThreadSchema:
    return ChatThreadSchema(
        id=thread.id,
        analysis_id=thread.analysis_id,
        message_count=thread.message_count,
        remaining_turns=remaining_turns(thread),
        updated_at=as_utc(thread.updated_at) if thread.updated_at else None,
        messages=[to_message_schema(m) for m in messages],
    )
