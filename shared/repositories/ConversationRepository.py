import uuid

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from shared.database.DatabaseManager import DatabaseManager
from shared.database.models import ChatMessageRecord, ChatSessionRecord, utcnow
from shared.exceptions import PersistenceError, SessionNotFound
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import ChatMessage, ChatRole, ChatSessionSummary, ConversationSession


class ConversationRepository:
    """
    Persists chat sessions and their ordered message histories.

    A session is either bound to one document (``document_id`` set) or is a
    general session spanning all of the user's documents. Sessions are only
    ever visible to the user that created them.
    """

    def __init__(self, helper_config: HelperConfig, database: DatabaseManager):
        self.logging = helper_config.get_logger()
        self.session_factory = database.session_factory

    ##########################################
    ################ HELPER ##################
    ##########################################

    @staticmethod
    def _to_session(record: ChatSessionRecord) -> ConversationSession:
        return ConversationSession(
            id=record.id,
            user_id=record.user_id,
            document_id=record.document_id,
            title=record.title,
            messages=[ChatMessage.model_validate(message) for message in record.messages],
            created_at=record.created_at,
            updated_at=record.updated_at,
            persisted=True,
        )

    async def _fetch(self, chat_id: str) -> ChatSessionRecord | None:
        try:
            async with self.session_factory() as db:
                stmt = (
                    select(ChatSessionRecord)
                    .options(selectinload(ChatSessionRecord.messages))
                    .where(ChatSessionRecord.id == chat_id)
                )
                return (await db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Loading chat session {chat_id} failed: {exc}") from exc

    ##########################################
    ################ READS ###################
    ##########################################

    async def load_or_create(
        self,
        chat_id: str | None,
        user_id: str,
        document_id: str | None = None,
        seed_title: str | None = None,
    ) -> ConversationSession:
        """
        Load an existing session or start a new one.

        Args:
            chat_id (str | None): Id supplied by the caller, None starts a new session.
            user_id (str): The requesting user.
            document_id (str | None): Document the chat is bound to, None for general chats.
            seed_title (str | None): Title for a newly created session.

        Returns:
            ConversationSession: The loaded session, or a new one that is not
            persisted until its first turn is appended.

        Raises:
            SessionNotFound: If the id is unknown, belongs to another user or
                to a different scope. A stale id never silently forks a new history.
        """
        if not chat_id:
            return ConversationSession(
                id=str(uuid.uuid4()),
                user_id=user_id,
                document_id=document_id,
                title=seed_title or "",
            )

        record = await self._fetch(chat_id)
        if record is None or record.user_id != user_id:
            raise SessionNotFound(f"Chat session {chat_id} not found.", details={"chat_id": chat_id})
        if record.document_id != document_id:
            self.logging.warning(
                "Chat session %s is bound to document %s, requested for %s.",
                chat_id, record.document_id, document_id,
            )
            raise SessionNotFound(f"Chat session {chat_id} not found.", details={"chat_id": chat_id})
        return self._to_session(record)

    async def get_session(self, chat_id: str, user_id: str) -> ConversationSession:
        """Return a session with all messages, or raise SessionNotFound."""
        record = await self._fetch(chat_id)
        if record is None or record.user_id != user_id:
            raise SessionNotFound(f"Chat session {chat_id} not found.", details={"chat_id": chat_id})
        return self._to_session(record)

    async def list_by_user(self, user_id: str, document_id: str | None = None) -> list[ChatSessionSummary]:
        """
        List a user's sessions newest first, without their messages.

        With ``document_id`` only sessions bound to that document are returned,
        otherwise only general sessions.
        """
        stmt = select(ChatSessionRecord.id, ChatSessionRecord.title, ChatSessionRecord.updated_at).where(
            ChatSessionRecord.user_id == user_id
        )
        if document_id is None:
            stmt = stmt.where(ChatSessionRecord.document_id.is_(None))
        else:
            stmt = stmt.where(ChatSessionRecord.document_id == document_id)
        stmt = stmt.order_by(ChatSessionRecord.updated_at.desc())
        try:
            async with self.session_factory() as db:
                rows = (await db.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Listing chat sessions of user {user_id} failed: {exc}") from exc
        return [ChatSessionSummary(id=row.id, title=row.title, updated_at=row.updated_at) for row in rows]

    ##########################################
    ################ WRITES ##################
    ##########################################

    async def append_turn(self, session: ConversationSession, user_text: str, assistant_text: str) -> ConversationSession:
        """
        Append one user/assistant exchange in a single transaction.

        A new session row is inserted together with its first turn. If any
        statement fails nothing is written, the session looks as if the turn
        never started.

        Returns:
            ConversationSession: The session including the new messages.

        Raises:
            PersistenceError: If the transaction fails.
        """
        now = utcnow()
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    if session.persisted:
                        record = await db.get(ChatSessionRecord, session.id)
                        if record is None:
                            raise SessionNotFound(f"Chat session {session.id} not found.", details={"chat_id": session.id})
                        record.updated_at = now
                        next_position = (
                            await db.execute(
                                select(func.coalesce(func.max(ChatMessageRecord.position), -1)).where(
                                    ChatMessageRecord.session_id == session.id
                                )
                            )
                        ).scalar_one() + 1
                    else:
                        db.add(
                            ChatSessionRecord(
                                id=session.id,
                                user_id=session.user_id,
                                document_id=session.document_id,
                                title=session.title,
                                created_at=now,
                                updated_at=now,
                            )
                        )
                        next_position = 0
                    db.add_all(
                        [
                            ChatMessageRecord(session_id=session.id, position=next_position, role=ChatRole.USER.value, text=user_text, created_at=now),
                            ChatMessageRecord(session_id=session.id, position=next_position + 1, role=ChatRole.ASSISTANT.value, text=assistant_text, created_at=now),
                        ]
                    )
        except SQLAlchemyError as exc:
            self.logging.error("Appending turn to chat %s (user=%s) failed, rolled back: %s", session.id, session.user_id, exc)
            raise PersistenceError(f"Storing chat turn for session {session.id} failed.", details={"chat_id": session.id}) from exc

        return session.model_copy(
            update={
                "messages": [
                    *session.messages,
                    ChatMessage(role=ChatRole.USER, text=user_text, created_at=now),
                    ChatMessage(role=ChatRole.ASSISTANT, text=assistant_text, created_at=now),
                ],
                "created_at": session.created_at or now,
                "updated_at": now,
                "persisted": True,
            }
        )

    async def delete_by_document(self, document_id: str) -> int:
        """Delete every session bound to a document together with its messages."""
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    session_ids = select(ChatSessionRecord.id).where(ChatSessionRecord.document_id == document_id)
                    # sqlite only honours ON DELETE CASCADE with foreign keys enabled
                    await db.execute(delete(ChatMessageRecord).where(ChatMessageRecord.session_id.in_(session_ids)))
                    result = await db.execute(delete(ChatSessionRecord).where(ChatSessionRecord.document_id == document_id))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Deleting chat sessions of document {document_id} failed: {exc}") from exc
        removed = result.rowcount or 0
        self.logging.info("Deleted %d chat session(s) bound to document %s.", removed, document_id)
        return removed
