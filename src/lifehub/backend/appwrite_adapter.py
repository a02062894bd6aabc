"""Appwrite backend adapter -- Databases documents, Account sessions, Storage files.

The Appwrite Python SDK is synchronous, so every call runs in a worker
thread via ``asyncio.to_thread``. Other differences from the push-based
backends:
- Auth state has no event stream; each on_auth_state_change registration
  gets its own PollingLoop and last-seen user id, and fires only when that
  id changes
- The server SDK has no realtime channel either, so the message feed is a
  PollingLoop paging forward with ``cursor_after`` from the newest message
  seen at subscription time
- SDK responses are typed models; a Document keeps user attributes in
  ``data`` and metadata (``$id``, ``$createdAt``, ...) in fields, which are
  renamed or dropped before anything leaves the adapter
- Two clients: the API-key client runs Databases, Storage and session
  creation (Appwrite only returns a session secret to a keyed caller); the
  keyless session client carries that secret for Account.get and sign-out
- sign_up is three calls (account, profile document, session) with no
  rollback: a failure after the account exists is reported but the account
  stays
- Every bucket name maps to the one configured bucket; URLs are composed
  from endpoint, bucket id, file id and project id
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import structlog
from appwrite import models
from appwrite.client import Client
from appwrite.exception import AppwriteException
from appwrite.id import ID
from appwrite.input_file import InputFile
from appwrite.query import Query
from appwrite.services.account import Account
from appwrite.services.databases import Databases
from appwrite.services.storage import Storage
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.lifehub.backend.catalog import (
    CREATED_FIELD,
    EVENTS,
    EXPENSES,
    HABIT_LOGS,
    HABITS,
    KANBAN_BOARDS,
    KANBAN_CARDS,
    KANBAN_COLUMNS,
    MARKDOWN_DOCS,
    MESSAGES,
    NOTES,
    PROFILES,
    TODOS,
    CollectionSpec,
)
from src.lifehub.backend.polling import PollingLoop
from src.lifehub.backend.schemas import (
    AuthResponse,
    Event,
    EventCreate,
    EventUpdate,
    Expense,
    ExpenseCreate,
    ExpenseUpdate,
    FileUpload,
    Habit,
    HabitCreate,
    HabitLog,
    HabitUpdate,
    KanbanBoard,
    KanbanBoardCreate,
    KanbanBoardUpdate,
    KanbanCard,
    KanbanCardCreate,
    KanbanCardUpdate,
    KanbanColumn,
    KanbanColumnCreate,
    KanbanColumnUpdate,
    MarkdownDocument,
    MarkdownDocumentCreate,
    MarkdownDocumentUpdate,
    Message,
    MessageCreate,
    Note,
    NoteCreate,
    NoteUpdate,
    Profile,
    ProfileUpdate,
    SignOutResponse,
    Todo,
    TodoCreate,
    TodoUpdate,
    UploadedFile,
    User,
)
from src.lifehub.backend.service import (
    AuthService,
    AuthStateCallback,
    BackendError,
    BackendService,
    DatabaseService,
    MessageCallback,
    StorageService,
    Unsubscribe,
)
from src.lifehub.backend.timestamps import now_iso, parse_iso, to_iso
from src.lifehub.config import BackendProvider, Settings

logger = structlog.get_logger(__name__)


def _is_server_error(exc: BaseException) -> bool:
    return isinstance(exc, AppwriteException) and (exc.code or 0) >= 500


# Message feed pages by server insert time, not the client-stamped created_at
FEED_ORDER_FIELD = "$createdAt"

_appwrite_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_server_error),
    reraise=True,
)


async def _call(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking SDK call in a worker thread."""
    return await asyncio.to_thread(fn, *args, **kwargs)


def _metadata_timestamp(value: str | None) -> str | None:
    return to_iso(parse_iso(value)) if value else None


def _document_to_record(spec: CollectionSpec, document: models.Document) -> dict[str, Any]:
    """Flatten a Document into its attributes plus ``id``, dropping ``$`` metadata."""
    record = {key: value for key, value in document.data.items() if not key.startswith("$")}
    record["id"] = document.id
    created_field = CREATED_FIELD[spec.name]
    if not record.get(created_field):
        record[created_field] = _metadata_timestamp(document.createdat)
    if spec.tracks_updated_at and not record.get("updated_at"):
        record["updated_at"] = _metadata_timestamp(document.updatedat)
    return record


def _to_user(account: models.User) -> User:
    return User(id=account.id, email=account.email)


# ── Database ────────────────────────────────────────────────────────────────


class AppwriteDatabase(DatabaseService):
    """Appwrite Databases collections behind the database contract.

    Args:
        databases: Appwrite Databases service.
        database_id: Database holding every collection.
        list_limit: Document cap applied to every list query.
        message_poll_interval: Seconds between message feed polls.
    """

    def __init__(
        self,
        databases: Databases,
        database_id: str,
        list_limit: int = 500,
        message_poll_interval: float = 2.0,
    ) -> None:
        self._databases = databases
        self._database_id = database_id
        self._list_limit = list_limit
        self._message_poll_interval = message_poll_interval
        self._loops: list[PollingLoop] = []

    # ── Generic helpers ─────────────────────────────────────────────────

    @_appwrite_retry
    async def _query(self, collection: str, queries: list[str]) -> list[models.Document]:
        response = await _call(
            self._databases.list_documents, self._database_id, collection, queries
        )
        return response.documents

    async def _list(self, spec: CollectionSpec, scope_value: str | None = None) -> list[dict]:
        queries = []
        if spec.scope_field is not None:
            queries.append(Query.equal(spec.scope_field, scope_value))
        order = Query.order_desc if spec.descending else Query.order_asc
        queries += [order(spec.order_field), Query.limit(self._list_limit)]
        try:
            documents = await self._query(spec.name, queries)
        except Exception:
            logger.error("appwrite.list_failed", collection=spec.name, exc_info=True)
            raise
        return [_document_to_record(spec, document) for document in documents]

    async def _create(
        self, spec: CollectionSpec, data: dict[str, Any], document_id: str | None = None
    ) -> dict:
        now = now_iso()
        payload = {**data, CREATED_FIELD[spec.name]: now}
        if spec.tracks_updated_at:
            payload["updated_at"] = now
        try:
            document = await _call(
                self._databases.create_document,
                self._database_id,
                spec.name,
                document_id or ID.unique(),
                payload,
            )
        except Exception:
            logger.error("appwrite.create_failed", collection=spec.name, exc_info=True)
            raise
        logger.info("appwrite.document_created", collection=spec.name, document_id=document.id)
        return _document_to_record(spec, document)

    async def _update(self, spec: CollectionSpec, doc_id: str, values: dict[str, Any]) -> dict:
        if spec.tracks_updated_at:
            values = {**values, "updated_at": now_iso()}
        try:
            if values:
                document = await _call(
                    self._databases.update_document, self._database_id, spec.name, doc_id, values
                )
            else:
                document = await _call(
                    self._databases.get_document, self._database_id, spec.name, doc_id
                )
        except Exception:
            logger.error(
                "appwrite.update_failed", collection=spec.name, document_id=doc_id, exc_info=True
            )
            raise
        return _document_to_record(spec, document)

    async def _delete(self, spec: CollectionSpec, doc_id: str) -> None:
        try:
            await _call(self._databases.delete_document, self._database_id, spec.name, doc_id)
        except Exception:
            logger.error(
                "appwrite.delete_failed", collection=spec.name, document_id=doc_id, exc_info=True
            )
            raise
        logger.info("appwrite.document_deleted", collection=spec.name, document_id=doc_id)

    async def ensure_profile(self, user_id: str) -> dict:
        """Return the profile document (id = user id), creating it if absent."""
        try:
            document = await _call(
                self._databases.get_document, self._database_id, PROFILES.name, user_id
            )
            return _document_to_record(PROFILES, document)
        except AppwriteException as exc:
            if exc.code != 404:
                raise
        try:
            return await self._create(
                PROFILES,
                {"user_id": user_id, "first_name": None, "last_name": None},
                document_id=user_id,
            )
        except AppwriteException as exc:
            if exc.code != 409:
                raise
        logger.debug("appwrite.profile_create_raced", user_id=user_id)
        document = await _call(
            self._databases.get_document, self._database_id, PROFILES.name, user_id
        )
        return _document_to_record(PROFILES, document)

    # ── Profiles ────────────────────────────────────────────────────────

    async def get_profile(self, user_id: str) -> Profile | None:
        try:
            record = await self.ensure_profile(user_id)
        except Exception:
            logger.error("appwrite.profile_fetch_failed", user_id=user_id, exc_info=True)
            raise
        return Profile.model_validate(record)

    async def update_profile(self, user_id: str, data: ProfileUpdate) -> Profile | None:
        await self.ensure_profile(user_id)
        record = await self._update(
            PROFILES, user_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return Profile.model_validate(record)

    # ── Notes ───────────────────────────────────────────────────────────

    async def get_notes(self, user_id: str) -> list[Note]:
        return [Note.model_validate(record) for record in await self._list(NOTES, user_id)]

    async def create_note(self, user_id: str, data: NoteCreate) -> Note:
        record = await self._create(NOTES, {**data.model_dump(mode="json"), "user_id": user_id})
        return Note.model_validate(record)

    async def update_note(self, note_id: str, data: NoteUpdate) -> Note:
        record = await self._update(NOTES, note_id, data.model_dump(mode="json", exclude_unset=True))
        return Note.model_validate(record)

    async def delete_note(self, note_id: str) -> None:
        await self._delete(NOTES, note_id)

    # ── Todos ───────────────────────────────────────────────────────────

    async def get_todos(self, user_id: str) -> list[Todo]:
        return [Todo.model_validate(record) for record in await self._list(TODOS, user_id)]

    async def create_todo(self, user_id: str, data: TodoCreate) -> Todo:
        record = await self._create(TODOS, {**data.model_dump(mode="json"), "user_id": user_id})
        return Todo.model_validate(record)

    async def update_todo(self, todo_id: str, data: TodoUpdate) -> Todo:
        record = await self._update(TODOS, todo_id, data.model_dump(mode="json", exclude_unset=True))
        return Todo.model_validate(record)

    async def delete_todo(self, todo_id: str) -> None:
        await self._delete(TODOS, todo_id)

    # ── Messages ────────────────────────────────────────────────────────

    async def get_messages(self) -> list[Message]:
        return [Message.model_validate(record) for record in await self._list(MESSAGES)]

    async def create_message(self, user_id: str, content: str) -> Message:
        data = MessageCreate(content=content)
        record = await self._create(MESSAGES, {**data.model_dump(), "user_id": user_id})
        return Message.model_validate(record)

    async def subscribe_to_messages(self, callback: MessageCallback) -> Unsubscribe:
        newest = await self._query(
            MESSAGES.name, [Query.order_desc(FEED_ORDER_FIELD), Query.limit(1)]
        )
        cursor: dict[str, str | None] = {"last_id": newest[0].id if newest else None}

        async def _poll() -> None:
            queries = [Query.order_asc(FEED_ORDER_FIELD), Query.limit(self._list_limit)]
            if cursor["last_id"] is not None:
                queries.append(Query.cursor_after(cursor["last_id"]))
            for document in await self._query(MESSAGES.name, queries):
                cursor["last_id"] = document.id
                try:
                    callback(Message.model_validate(_document_to_record(MESSAGES, document)))
                except Exception:
                    logger.warning("appwrite.message_callback_failed", exc_info=True)

        loop = PollingLoop(_poll, self._message_poll_interval, name="appwrite_messages")
        await loop.start()
        self._loops.append(loop)
        logger.info("appwrite.messages_subscribed", last_id=cursor["last_id"])

        async def unsubscribe() -> None:
            if loop in self._loops:
                self._loops.remove(loop)
            await loop.stop()

        return unsubscribe

    async def stop_polling(self) -> None:
        for loop in list(self._loops):
            await loop.stop()
        self._loops.clear()

    # ── Habits ──────────────────────────────────────────────────────────

    async def get_habits(self, user_id: str) -> list[Habit]:
        return [Habit.model_validate(record) for record in await self._list(HABITS, user_id)]

    async def create_habit(self, user_id: str, data: HabitCreate) -> Habit:
        record = await self._create(HABITS, {**data.model_dump(mode="json"), "user_id": user_id})
        return Habit.model_validate(record)

    async def update_habit(self, habit_id: str, data: HabitUpdate) -> Habit:
        record = await self._update(HABITS, habit_id, data.model_dump(mode="json", exclude_unset=True))
        return Habit.model_validate(record)

    async def delete_habit(self, habit_id: str) -> None:
        await self._delete(HABITS, habit_id)

    async def get_habit_logs(self, habit_id: str) -> list[HabitLog]:
        return [HabitLog.model_validate(record) for record in await self._list(HABIT_LOGS, habit_id)]

    async def create_habit_log(
        self, user_id: str, habit_id: str, notes: str | None = None
    ) -> HabitLog:
        record = await self._create(
            HABIT_LOGS, {"user_id": user_id, "habit_id": habit_id, "notes": notes}
        )
        return HabitLog.model_validate(record)

    async def delete_habit_log(self, log_id: str) -> None:
        await self._delete(HABIT_LOGS, log_id)

    # ── Events ──────────────────────────────────────────────────────────

    async def get_events(self, user_id: str) -> list[Event]:
        return [Event.model_validate(record) for record in await self._list(EVENTS, user_id)]

    async def create_event(self, user_id: str, data: EventCreate) -> Event:
        record = await self._create(EVENTS, {**data.model_dump(mode="json"), "user_id": user_id})
        return Event.model_validate(record)

    async def update_event(self, event_id: str, data: EventUpdate) -> Event:
        record = await self._update(EVENTS, event_id, data.model_dump(mode="json", exclude_unset=True))
        return Event.model_validate(record)

    async def delete_event(self, event_id: str) -> None:
        await self._delete(EVENTS, event_id)

    # ── Expenses ────────────────────────────────────────────────────────

    async def get_expenses(self, user_id: str) -> list[Expense]:
        return [Expense.model_validate(record) for record in await self._list(EXPENSES, user_id)]

    async def create_expense(self, user_id: str, data: ExpenseCreate) -> Expense:
        record = await self._create(EXPENSES, {**data.model_dump(mode="json"), "user_id": user_id})
        return Expense.model_validate(record)

    async def update_expense(self, expense_id: str, data: ExpenseUpdate) -> Expense:
        record = await self._update(
            EXPENSES, expense_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return Expense.model_validate(record)

    async def delete_expense(self, expense_id: str) -> None:
        await self._delete(EXPENSES, expense_id)

    # ── Kanban ──────────────────────────────────────────────────────────

    async def get_boards(self, user_id: str) -> list[KanbanBoard]:
        return [
            KanbanBoard.model_validate(record) for record in await self._list(KANBAN_BOARDS, user_id)
        ]

    async def create_board(self, user_id: str, data: KanbanBoardCreate) -> KanbanBoard:
        record = await self._create(
            KANBAN_BOARDS, {**data.model_dump(mode="json"), "user_id": user_id}
        )
        return KanbanBoard.model_validate(record)

    async def update_board(self, board_id: str, data: KanbanBoardUpdate) -> KanbanBoard:
        record = await self._update(
            KANBAN_BOARDS, board_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return KanbanBoard.model_validate(record)

    async def delete_board(self, board_id: str) -> None:
        await self._delete(KANBAN_BOARDS, board_id)

    async def get_columns(self, board_id: str) -> list[KanbanColumn]:
        return [
            KanbanColumn.model_validate(record)
            for record in await self._list(KANBAN_COLUMNS, board_id)
        ]

    async def create_column(
        self, user_id: str, board_id: str, data: KanbanColumnCreate
    ) -> KanbanColumn:
        record = await self._create(
            KANBAN_COLUMNS,
            {**data.model_dump(mode="json"), "user_id": user_id, "board_id": board_id},
        )
        return KanbanColumn.model_validate(record)

    async def update_column(self, column_id: str, data: KanbanColumnUpdate) -> KanbanColumn:
        record = await self._update(
            KANBAN_COLUMNS, column_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return KanbanColumn.model_validate(record)

    async def delete_column(self, column_id: str) -> None:
        await self._delete(KANBAN_COLUMNS, column_id)

    async def get_cards(self, board_id: str) -> list[KanbanCard]:
        return [
            KanbanCard.model_validate(record) for record in await self._list(KANBAN_CARDS, board_id)
        ]

    async def create_card(self, user_id: str, data: KanbanCardCreate) -> KanbanCard:
        record = await self._create(
            KANBAN_CARDS, {**data.model_dump(mode="json"), "user_id": user_id}
        )
        return KanbanCard.model_validate(record)

    async def update_card(self, card_id: str, data: KanbanCardUpdate) -> KanbanCard:
        record = await self._update(
            KANBAN_CARDS, card_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return KanbanCard.model_validate(record)

    async def delete_card(self, card_id: str) -> None:
        await self._delete(KANBAN_CARDS, card_id)

    # ── Markdown documents ──────────────────────────────────────────────

    async def get_markdown_docs(self, user_id: str) -> list[MarkdownDocument]:
        return [
            MarkdownDocument.model_validate(record)
            for record in await self._list(MARKDOWN_DOCS, user_id)
        ]

    async def create_markdown_doc(
        self, user_id: str, data: MarkdownDocumentCreate
    ) -> MarkdownDocument:
        record = await self._create(
            MARKDOWN_DOCS, {**data.model_dump(mode="json"), "user_id": user_id}
        )
        return MarkdownDocument.model_validate(record)

    async def update_markdown_doc(
        self, doc_id: str, data: MarkdownDocumentUpdate
    ) -> MarkdownDocument:
        record = await self._update(
            MARKDOWN_DOCS, doc_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return MarkdownDocument.model_validate(record)

    async def delete_markdown_doc(self, doc_id: str) -> None:
        await self._delete(MARKDOWN_DOCS, doc_id)


# ── Auth ────────────────────────────────────────────────────────────────────


class AppwriteAuth(AuthService):
    """Account sessions with polling-based auth state notifications.

    Accounts and sessions are created through the API-key client; the
    returned session secret is set on the keyless session client, which then
    answers Account.get and sign-out as that user.

    Args:
        session_client: Keyless Appwrite Client that carries the session secret.
        admin_account: Account service on the API-key client.
        session_account: Account service on ``session_client``.
        database: Database adapter, used to provision profiles on sign-up.
        poll_interval: Seconds between session checks per subscription.
    """

    def __init__(
        self,
        session_client: Client,
        admin_account: Account,
        session_account: Account,
        database: AppwriteDatabase,
        poll_interval: float = 5.0,
    ) -> None:
        self._session_client = session_client
        self._admin_account = admin_account
        self._session_account = session_account
        self._database = database
        self._poll_interval = poll_interval
        self._loops: list[PollingLoop] = []

    async def _open_session(self, email: str, password: str) -> None:
        session = await _call(self._admin_account.create_email_password_session, email, password)
        if not session.secret:
            raise BackendError("Appwrite returned no session secret; check APPWRITE_API_KEY")
        self._session_client.set_session(session.secret)

    async def sign_in(self, email: str, password: str) -> AuthResponse:
        try:
            await self._open_session(email, password)
            account = await _call(self._session_account.get)
        except Exception as exc:
            logger.warning("appwrite.sign_in_failed", email=email, error=str(exc))
            return AuthResponse(error=exc)
        logger.info("appwrite.signed_in", user_id=account.id)
        return AuthResponse(user=_to_user(account))

    async def sign_up(self, email: str, password: str) -> AuthResponse:
        try:
            account = await _call(self._admin_account.create, ID.unique(), email, password)
        except Exception as exc:
            logger.warning("appwrite.sign_up_failed", email=email, error=str(exc))
            return AuthResponse(error=exc)
        user = _to_user(account)
        try:
            await self._database.ensure_profile(user.id)
            await self._open_session(email, password)
        except Exception as exc:
            # The account itself is not rolled back
            logger.warning(
                "appwrite.sign_up_incomplete", user_id=user.id, email=email, error=str(exc)
            )
            return AuthResponse(error=exc)
        logger.info("appwrite.signed_up", user_id=user.id)
        return AuthResponse(user=user)

    async def sign_out(self) -> SignOutResponse:
        try:
            await _call(self._session_account.delete_session, "current")
        except Exception as exc:
            logger.warning("appwrite.sign_out_failed", error=str(exc))
            return SignOutResponse(error=exc)
        self._session_client.set_session("")
        return SignOutResponse()

    async def get_current_user(self) -> User | None:
        try:
            account = await _call(self._session_account.get)
        except Exception as exc:
            # 401 is a guest caller: no session, or it expired
            if not (isinstance(exc, AppwriteException) and exc.code == 401):
                logger.warning("appwrite.get_user_failed", exc_info=True)
            return None
        return _to_user(account)

    async def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        cursor: dict[str, str | None] = {"user_id": None}

        async def _check() -> None:
            user = await self.get_current_user()
            user_id = user.id if user else None
            if user_id == cursor["user_id"]:
                return
            cursor["user_id"] = user_id
            logger.info("appwrite.auth_state_changed", user_id=user_id)
            try:
                callback(user)
            except Exception:
                logger.warning("appwrite.auth_callback_failed", exc_info=True)

        loop = PollingLoop(_check, self._poll_interval, name="appwrite_auth_state")
        await loop.start()
        self._loops.append(loop)

        async def unsubscribe() -> None:
            if loop in self._loops:
                self._loops.remove(loop)
            await loop.stop()

        return unsubscribe

    async def stop_polling(self) -> None:
        for loop in list(self._loops):
            await loop.stop()
        self._loops.clear()


# ── Storage ─────────────────────────────────────────────────────────────────


class AppwriteStorage(StorageService):
    """Files in the configured Appwrite bucket, addressed by file id.

    The ``bucket`` argument of every call is accepted for contract parity
    and mapped onto ``bucket_id``.
    """

    def __init__(self, storage: Storage, endpoint: str, project_id: str, bucket_id: str) -> None:
        self._storage = storage
        self._endpoint = endpoint.rstrip("/")
        self._project_id = project_id
        self._bucket_id = bucket_id

    def _view_url(self, file_id: str) -> str:
        return (
            f"{self._endpoint}/storage/buckets/{self._bucket_id}/files/{file_id}"
            f"/view?project={self._project_id}"
        )

    async def upload_file(self, bucket: str, path: str, file: FileUpload) -> UploadedFile:
        upload = InputFile.from_bytes(file.content, file.name, file.content_type)
        try:
            created = await _call(self._storage.create_file, self._bucket_id, ID.unique(), upload)
        except Exception:
            logger.error("appwrite.upload_failed", bucket_id=self._bucket_id, exc_info=True)
            raise
        logger.info("appwrite.file_uploaded", file_id=created.id, size=len(file.content))
        return UploadedFile(path=created.id, url=self._view_url(created.id), name=file.name)

    async def delete_file(self, bucket: str, path: str) -> None:
        try:
            await _call(self._storage.delete_file, self._bucket_id, path)
        except Exception:
            logger.error("appwrite.delete_file_failed", file_id=path, exc_info=True)
            raise
        logger.info("appwrite.file_deleted", file_id=path)

    def get_public_url(self, bucket: str, path: str) -> str:
        return self._view_url(path)

    async def list_files(self, bucket: str, path: str | None = None) -> list[UploadedFile]:
        try:
            response = await _call(self._storage.list_files, self._bucket_id)
        except Exception:
            logger.error("appwrite.list_files_failed", bucket_id=self._bucket_id, exc_info=True)
            raise
        return [
            UploadedFile(path=item.id, url=self._view_url(item.id), name=item.name)
            for item in response.files
        ]


# ── Service ─────────────────────────────────────────────────────────────────


class AppwriteBackend(BackendService):
    """Appwrite implementation of the backend contract.

    Args:
        client: API-key Appwrite Client for Databases, Storage and session creation.
        session_client: Keyless Appwrite Client that carries the user session.
        settings: Application settings.
        account: Account service override on ``client`` (tests inject fakes).
        session_account: Account service override on ``session_client``.
        databases: Databases service override.
        storage: Storage service override.
    """

    provider = BackendProvider.appwrite

    def __init__(
        self,
        client: Client,
        session_client: Client,
        settings: Settings,
        account: Account | None = None,
        session_account: Account | None = None,
        databases: Databases | None = None,
        storage: Storage | None = None,
    ) -> None:
        if not settings.APPWRITE_BUCKET_ID:
            raise BackendError("APPWRITE_BUCKET_ID is required")
        self._client = client
        self.database = AppwriteDatabase(
            databases or Databases(client),
            settings.APPWRITE_DATABASE_ID,
            list_limit=settings.LIST_LIMIT,
            message_poll_interval=settings.MESSAGE_POLL_INTERVAL_SECONDS,
        )
        self.auth = AppwriteAuth(
            session_client,
            account or Account(client),
            session_account or Account(session_client),
            self.database,
            poll_interval=settings.AUTH_POLL_INTERVAL_SECONDS,
        )
        self.storage = AppwriteStorage(
            storage or Storage(client),
            endpoint=settings.APPWRITE_ENDPOINT,
            project_id=settings.APPWRITE_PROJECT_ID,
            bucket_id=settings.APPWRITE_BUCKET_ID,
        )

    async def close(self) -> None:
        await self.auth.stop_polling()
        await self.database.stop_polling()
        logger.info("appwrite.backend_closed")


def create_appwrite_backend(settings: Settings) -> AppwriteBackend:
    """Build the API-key client and the session client for the configured project."""
    client = (
        Client()
        .set_endpoint(settings.APPWRITE_ENDPOINT)
        .set_project(settings.APPWRITE_PROJECT_ID)
        .set_key(settings.APPWRITE_API_KEY)
    )
    session_client = Client().set_endpoint(settings.APPWRITE_ENDPOINT).set_project(
        settings.APPWRITE_PROJECT_ID
    )
    logger.info(
        "appwrite.client_created",
        endpoint=settings.APPWRITE_ENDPOINT,
        project_id=settings.APPWRITE_PROJECT_ID,
    )
    return AppwriteBackend(client, session_client, settings)
