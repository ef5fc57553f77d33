# zork_app/services/conversation_store.py
import logging
import time
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import StoreError
from ..models.conversation import Conversation, ConversationRecord, utcnow
from ..utils import db_utils

logger = logging.getLogger(__name__)

T = TypeVar("T")

READ_RETRIES = 2
READ_RETRY_BASE_DELAY = 0.2


class ConversationStore:
    """
    Persistence for the conversation -> thread mapping.

    Every SQLAlchemy failure leaves this class as a ``StoreError``. Reads are
    idempotent and are retried on ``OperationalError`` (dropped connections,
    locked SQLite files); writes are attempted once.
    """

    def __init__(self, read_retries: int = READ_RETRIES, retry_base_delay: float = READ_RETRY_BASE_DELAY,
                 sleep: Callable[[float], None] = time.sleep):
        self.read_retries = read_retries
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep

    # --- reads ---

    def get(self, conversation_id: str) -> Optional[ConversationRecord]:
        if not conversation_id:
            return None

        def _query(session: Session) -> Optional[ConversationRecord]:
            row = session.query(Conversation).filter(
                Conversation.conversation_id == conversation_id
            ).first()
            return row.to_record() if row else None

        record = self._read(f"get conversation {conversation_id}", _query)
        if record:
            logger.debug(f"Found thread_id '{record.thread_id}' for conversation '{conversation_id}'.")
        return record

    def list_all(self) -> List[ConversationRecord]:
        def _query(session: Session) -> List[ConversationRecord]:
            rows = session.query(Conversation).order_by(
                Conversation.created_at.desc(), Conversation.id.desc()
            ).all()
            return [row.to_record() for row in rows]

        return self._read("list conversations", _query)

    def _read(self, what: str, query: Callable[[Session], T]) -> T:
        attempt = 0
        while True:
            try:
                with db_utils.get_db_session() as session:
                    if session is None:
                        raise StoreError("La base de datos no está inicializada.")
                    return query(session)
            except OperationalError as e:
                if attempt >= self.read_retries:
                    logger.error(f"Database read failed ({what}) after {attempt + 1} attempts: {e}")
                    raise StoreError(f"No se pudo leer la base de datos: {what}.", detail=str(e)) from e
                wait = self.retry_base_delay * (2 ** attempt)
                attempt += 1
                logger.warning(f"Database read failed ({what}), retry {attempt}/{self.read_retries} in {wait}s: {e}")
                self._sleep(wait)
            except SQLAlchemyError as e:
                logger.error(f"Database error ({what}): {e}")
                raise StoreError(f"No se pudo leer la base de datos: {what}.", detail=str(e)) from e

    # --- writes ---

    def save(self, conversation_id: str, thread_id: str) -> ConversationRecord:
        """
        Insert the mapping, or point an existing row at ``thread_id`` (upsert on
        the unique ``conversation_id``). Returns the stored row.
        """
        if not conversation_id or not thread_id:
            raise ValueError("conversation_id and thread_id are required.")

        try:
            with db_utils.get_db_session() as session:
                if session is None:
                    raise StoreError("La base de datos no está inicializada.")
                self._upsert(session, conversation_id, thread_id)
                session.commit()
                row = session.query(Conversation).filter(
                    Conversation.conversation_id == conversation_id
                ).one()
                record = row.to_record()
        except SQLAlchemyError as e:
            logger.error(f"Database error while saving conversation {conversation_id}: {e}")
            raise StoreError("No se pudo guardar la conversación.", detail=str(e)) from e

        logger.info(f"Conversation saved: {conversation_id} -> {thread_id}")
        return record

    @staticmethod
    def _upsert(session: Session, conversation_id: str, thread_id: str) -> None:
        now = utcnow()
        values = {
            "conversation_id": conversation_id,
            "thread_id": thread_id,
            "created_at": now,
            "updated_at": now,
        }
        dialect = session.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = insert(Conversation).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["conversation_id"],
                set_={"thread_id": stmt.excluded.thread_id, "updated_at": now},
            )
            session.execute(stmt)
        elif dialect in ("mysql", "mariadb"):
            stmt = mysql.insert(Conversation).values(**values)
            stmt = stmt.on_duplicate_key_update(thread_id=stmt.inserted.thread_id, updated_at=now)
            session.execute(stmt)
        else:
            row = session.query(Conversation).filter(
                Conversation.conversation_id == conversation_id
            ).with_for_update().first()
            if row:
                row.thread_id = thread_id
                row.updated_at = now
            else:
                session.add(Conversation(**values))

    def delete(self, conversation_id: str) -> int:
        """Remove the mapping. Returns the number of rows deleted (0 or 1)."""
        try:
            with db_utils.get_db_session() as session:
                if session is None:
                    raise StoreError("La base de datos no está inicializada.")
                deleted = session.query(Conversation).filter(
                    Conversation.conversation_id == conversation_id
                ).delete(synchronize_session=False)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error while deleting conversation {conversation_id}: {e}")
            raise StoreError("No se pudo eliminar la conversación.", detail=str(e)) from e

        if deleted:
            logger.info(f"Conversation deleted: {conversation_id}")
        else:
            logger.info(f"No stored conversation to delete for {conversation_id}.")
        return deleted
