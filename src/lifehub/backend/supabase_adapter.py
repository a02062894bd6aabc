"""Supabase backend adapter -- Postgres tables, GoTrue auth, realtime channels.

Implements the backend contract on top of the async supabase-py client:
- Reads compose ``eq`` + ``order`` + ``limit`` on the PostgREST builder and
  are retried on transport errors (tenacity, 3 attempts, 1-10s backoff)
- Inserts and updates return the written row in the same round trip
- Auth state changes are pushed by GoTrue and re-emitted for every event
- Message inserts arrive over a realtime channel on ``public.messages``
- Objects in the images bucket live under a ``{user_id}/`` folder, so delete
  and URL resolution rebuild that prefix from the signed-in user
"""

from __future__ import annotations

import uuid
from typing import Any

import httpx
import structlog
from supabase import AsyncClient, acreate_client
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.lifehub.backend.catalog import (
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
from src.lifehub.backend.timestamps import now_iso
from src.lifehub.config import BackendProvider, Settings

logger = structlog.get_logger(__name__)

_supabase_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)


def _to_user(raw: Any) -> User | None:
    """Map a GoTrue user object to the domain User."""
    if raw is None:
        return None
    return User(id=raw.id, email=getattr(raw, "email", None))


def _message_from_payload(payload: dict[str, Any]) -> Message:
    """Extract the inserted row from a postgres_changes payload."""
    data = payload.get("data") or {}
    record = data.get("record") or payload.get("new") or payload.get("record")
    if not record:
        raise BackendError("realtime payload carries no record")
    return Message.model_validate(record)


# ── Database ────────────────────────────────────────────────────────────────


class SupabaseDatabase(DatabaseService):
    """PostgREST-backed table access.

    Args:
        client: Connected supabase AsyncClient.
        list_limit: Row cap applied to every list query.
    """

    def __init__(self, client: AsyncClient, list_limit: int = 500) -> None:
        self._client = client
        self._list_limit = list_limit
        self._channels: list[Any] = []

    # ── Generic helpers ─────────────────────────────────────────────────

    @_supabase_retry
    async def _select(self, spec: CollectionSpec, scope_value: str | None = None) -> list[dict]:
        query = self._client.table(spec.name).select("*")
        if spec.scope_field is not None:
            query = query.eq(spec.scope_field, scope_value)
        response = await (
            query.order(spec.order_field, desc=spec.descending).limit(self._list_limit).execute()
        )
        return response.data or []

    async def _list(self, spec: CollectionSpec, scope_value: str | None = None) -> list[dict]:
        try:
            return await self._select(spec, scope_value)
        except Exception:
            logger.error("supabase.list_failed", table=spec.name, exc_info=True)
            raise

    @_supabase_retry
    async def _fetch_one(self, spec: CollectionSpec, field: str, value: str) -> dict | None:
        response = await self._client.table(spec.name).select("*").eq(field, value).limit(1).execute()
        rows = response.data or []
        return rows[0] if rows else None

    async def _insert(self, spec: CollectionSpec, row: dict[str, Any]) -> dict:
        try:
            response = await self._client.table(spec.name).insert(row).execute()
        except Exception:
            logger.error("supabase.insert_failed", table=spec.name, exc_info=True)
            raise
        if not response.data:
            raise BackendError(f"insert into {spec.name} returned no row")
        logger.info("supabase.row_created", table=spec.name, row_id=response.data[0].get("id"))
        return response.data[0]

    async def _update(
        self,
        spec: CollectionSpec,
        row_id: str,
        values: dict[str, Any],
        match_field: str = "id",
    ) -> dict:
        if spec.tracks_updated_at:
            values = {**values, "updated_at": now_iso()}
        try:
            if values:
                response = (
                    await self._client.table(spec.name).update(values).eq(match_field, row_id).execute()
                )
                row = response.data[0] if response.data else None
            else:
                row = await self._fetch_one(spec, match_field, row_id)
        except Exception:
            logger.error("supabase.update_failed", table=spec.name, row_id=row_id, exc_info=True)
            raise
        if row is None:
            raise BackendError(f"{spec.name} row {row_id} not found")
        return row

    async def _delete(self, spec: CollectionSpec, row_id: str) -> None:
        try:
            await self._client.table(spec.name).delete().eq("id", row_id).execute()
        except Exception:
            logger.error("supabase.delete_failed", table=spec.name, row_id=row_id, exc_info=True)
            raise
        logger.info("supabase.row_deleted", table=spec.name, row_id=row_id)

    async def ensure_profile(self, user_id: str) -> dict:
        """Return the user's profile row, inserting an empty one if none exists."""
        row = await self._fetch_one(PROFILES, "user_id", user_id)
        if row is None:
            row = await self._insert(PROFILES, {"user_id": user_id})
        return row

    # ── Profiles ────────────────────────────────────────────────────────

    async def get_profile(self, user_id: str) -> Profile | None:
        try:
            row = await self.ensure_profile(user_id)
        except Exception:
            logger.error("supabase.profile_fetch_failed", user_id=user_id, exc_info=True)
            raise
        return Profile.model_validate(row)

    async def update_profile(self, user_id: str, data: ProfileUpdate) -> Profile | None:
        await self.ensure_profile(user_id)
        row = await self._update(
            PROFILES, user_id, data.model_dump(mode="json", exclude_unset=True), match_field="user_id"
        )
        return Profile.model_validate(row)

    # ── Notes ───────────────────────────────────────────────────────────

    async def get_notes(self, user_id: str) -> list[Note]:
        return [Note.model_validate(row) for row in await self._list(NOTES, user_id)]

    async def create_note(self, user_id: str, data: NoteCreate) -> Note:
        row = await self._insert(NOTES, {**data.model_dump(mode="json"), "user_id": user_id})
        return Note.model_validate(row)

    async def update_note(self, note_id: str, data: NoteUpdate) -> Note:
        row = await self._update(NOTES, note_id, data.model_dump(mode="json", exclude_unset=True))
        return Note.model_validate(row)

    async def delete_note(self, note_id: str) -> None:
        await self._delete(NOTES, note_id)

    # ── Todos ───────────────────────────────────────────────────────────

    async def get_todos(self, user_id: str) -> list[Todo]:
        return [Todo.model_validate(row) for row in await self._list(TODOS, user_id)]

    async def create_todo(self, user_id: str, data: TodoCreate) -> Todo:
        row = await self._insert(TODOS, {**data.model_dump(mode="json"), "user_id": user_id})
        return Todo.model_validate(row)

    async def update_todo(self, todo_id: str, data: TodoUpdate) -> Todo:
        row = await self._update(TODOS, todo_id, data.model_dump(mode="json", exclude_unset=True))
        return Todo.model_validate(row)

    async def delete_todo(self, todo_id: str) -> None:
        await self._delete(TODOS, todo_id)

    # ── Messages ────────────────────────────────────────────────────────

    async def get_messages(self) -> list[Message]:
        return [Message.model_validate(row) for row in await self._list(MESSAGES)]

    async def create_message(self, user_id: str, content: str) -> Message:
        data = MessageCreate(content=content)
        row = await self._insert(MESSAGES, {**data.model_dump(), "user_id": user_id})
        return Message.model_validate(row)

    async def subscribe_to_messages(self, callback: MessageCallback) -> Unsubscribe:
        def _on_insert(payload: dict[str, Any]) -> None:
            try:
                callback(_message_from_payload(payload))
            except Exception:
                logger.warning("supabase.message_callback_failed", exc_info=True)

        channel = self._client.channel(f"messages-{uuid.uuid4().hex[:8]}")
        channel.on_postgres_changes(
            "INSERT", schema="public", table=MESSAGES.name, callback=_on_insert
        )
        await channel.subscribe()
        self._channels.append(channel)
        logger.info("supabase.messages_subscribed")

        async def unsubscribe() -> None:
            if channel not in self._channels:
                return
            self._channels.remove(channel)
            await self._client.remove_channel(channel)
            logger.info("supabase.messages_unsubscribed")

        return unsubscribe

    async def close_channels(self) -> None:
        for channel in list(self._channels):
            await self._client.remove_channel(channel)
        self._channels.clear()

    # ── Habits ──────────────────────────────────────────────────────────

    async def get_habits(self, user_id: str) -> list[Habit]:
        return [Habit.model_validate(row) for row in await self._list(HABITS, user_id)]

    async def create_habit(self, user_id: str, data: HabitCreate) -> Habit:
        row = await self._insert(HABITS, {**data.model_dump(mode="json"), "user_id": user_id})
        return Habit.model_validate(row)

    async def update_habit(self, habit_id: str, data: HabitUpdate) -> Habit:
        row = await self._update(HABITS, habit_id, data.model_dump(mode="json", exclude_unset=True))
        return Habit.model_validate(row)

    async def delete_habit(self, habit_id: str) -> None:
        await self._delete(HABITS, habit_id)

    async def get_habit_logs(self, habit_id: str) -> list[HabitLog]:
        return [HabitLog.model_validate(row) for row in await self._list(HABIT_LOGS, habit_id)]

    async def create_habit_log(
        self, user_id: str, habit_id: str, notes: str | None = None
    ) -> HabitLog:
        row = await self._insert(
            HABIT_LOGS, {"user_id": user_id, "habit_id": habit_id, "notes": notes}
        )
        return HabitLog.model_validate(row)

    async def delete_habit_log(self, log_id: str) -> None:
        await self._delete(HABIT_LOGS, log_id)

    # ── Events ──────────────────────────────────────────────────────────

    async def get_events(self, user_id: str) -> list[Event]:
        return [Event.model_validate(row) for row in await self._list(EVENTS, user_id)]

    async def create_event(self, user_id: str, data: EventCreate) -> Event:
        row = await self._insert(EVENTS, {**data.model_dump(mode="json"), "user_id": user_id})
        return Event.model_validate(row)

    async def update_event(self, event_id: str, data: EventUpdate) -> Event:
        row = await self._update(EVENTS, event_id, data.model_dump(mode="json", exclude_unset=True))
        return Event.model_validate(row)

    async def delete_event(self, event_id: str) -> None:
        await self._delete(EVENTS, event_id)

    # ── Expenses ────────────────────────────────────────────────────────

    async def get_expenses(self, user_id: str) -> list[Expense]:
        return [Expense.model_validate(row) for row in await self._list(EXPENSES, user_id)]

    async def create_expense(self, user_id: str, data: ExpenseCreate) -> Expense:
        row = await self._insert(EXPENSES, {**data.model_dump(mode="json"), "user_id": user_id})
        return Expense.model_validate(row)

    async def update_expense(self, expense_id: str, data: ExpenseUpdate) -> Expense:
        row = await self._update(
            EXPENSES, expense_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return Expense.model_validate(row)

    async def delete_expense(self, expense_id: str) -> None:
        await self._delete(EXPENSES, expense_id)

    # ── Kanban ──────────────────────────────────────────────────────────

    async def get_boards(self, user_id: str) -> list[KanbanBoard]:
        return [KanbanBoard.model_validate(row) for row in await self._list(KANBAN_BOARDS, user_id)]

    async def create_board(self, user_id: str, data: KanbanBoardCreate) -> KanbanBoard:
        row = await self._insert(
            KANBAN_BOARDS, {**data.model_dump(mode="json"), "user_id": user_id}
        )
        return KanbanBoard.model_validate(row)

    async def update_board(self, board_id: str, data: KanbanBoardUpdate) -> KanbanBoard:
        row = await self._update(
            KANBAN_BOARDS, board_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return KanbanBoard.model_validate(row)

    async def delete_board(self, board_id: str) -> None:
        await self._delete(KANBAN_BOARDS, board_id)

    async def get_columns(self, board_id: str) -> list[KanbanColumn]:
        return [
            KanbanColumn.model_validate(row) for row in await self._list(KANBAN_COLUMNS, board_id)
        ]

    async def create_column(
        self, user_id: str, board_id: str, data: KanbanColumnCreate
    ) -> KanbanColumn:
        row = await self._insert(
            KANBAN_COLUMNS,
            {**data.model_dump(mode="json"), "user_id": user_id, "board_id": board_id},
        )
        return KanbanColumn.model_validate(row)

    async def update_column(self, column_id: str, data: KanbanColumnUpdate) -> KanbanColumn:
        row = await self._update(
            KANBAN_COLUMNS, column_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return KanbanColumn.model_validate(row)

    async def delete_column(self, column_id: str) -> None:
        await self._delete(KANBAN_COLUMNS, column_id)

    async def get_cards(self, board_id: str) -> list[KanbanCard]:
        return [KanbanCard.model_validate(row) for row in await self._list(KANBAN_CARDS, board_id)]

    async def create_card(self, user_id: str, data: KanbanCardCreate) -> KanbanCard:
        row = await self._insert(KANBAN_CARDS, {**data.model_dump(mode="json"), "user_id": user_id})
        return KanbanCard.model_validate(row)

    async def update_card(self, card_id: str, data: KanbanCardUpdate) -> KanbanCard:
        row = await self._update(
            KANBAN_CARDS, card_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return KanbanCard.model_validate(row)

    async def delete_card(self, card_id: str) -> None:
        await self._delete(KANBAN_CARDS, card_id)

    # ── Markdown documents ──────────────────────────────────────────────

    async def get_markdown_docs(self, user_id: str) -> list[MarkdownDocument]:
        return [
            MarkdownDocument.model_validate(row) for row in await self._list(MARKDOWN_DOCS, user_id)
        ]

    async def create_markdown_doc(
        self, user_id: str, data: MarkdownDocumentCreate
    ) -> MarkdownDocument:
        row = await self._insert(
            MARKDOWN_DOCS, {**data.model_dump(mode="json"), "user_id": user_id}
        )
        return MarkdownDocument.model_validate(row)

    async def update_markdown_doc(
        self, doc_id: str, data: MarkdownDocumentUpdate
    ) -> MarkdownDocument:
        row = await self._update(
            MARKDOWN_DOCS, doc_id, data.model_dump(mode="json", exclude_unset=True)
        )
        return MarkdownDocument.model_validate(row)

    async def delete_markdown_doc(self, doc_id: str) -> None:
        await self._delete(MARKDOWN_DOCS, doc_id)


# ── Auth ────────────────────────────────────────────────────────────────────


class SupabaseAuth(AuthService):
    """GoTrue auth with a cached id of the signed-in user.

    The cached id is what scopes image storage paths; it is kept current by
    an internal auth listener plus the sign-in/up/out calls themselves.
    """

    def __init__(self, client: AsyncClient, database: SupabaseDatabase) -> None:
        self._client = client
        self._database = database
        self.current_user_id: str | None = None
        self._internal_subscription = client.auth.on_auth_state_change(self._track_session)

    def _track_session(self, event: Any, session: Any) -> None:
        user = _to_user(session.user) if session is not None else None
        self.current_user_id = user.id if user else None

    async def sign_in(self, email: str, password: str) -> AuthResponse:
        try:
            response = await self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as exc:
            logger.warning("supabase.sign_in_failed", email=email, error=str(exc))
            return AuthResponse(error=exc)
        user = _to_user(response.user)
        self.current_user_id = user.id if user else None
        logger.info("supabase.signed_in", user_id=self.current_user_id)
        return AuthResponse(user=user)

    async def sign_up(self, email: str, password: str) -> AuthResponse:
        try:
            response = await self._client.auth.sign_up({"email": email, "password": password})
            user = _to_user(response.user)
            if user is not None:
                await self._database.ensure_profile(user.id)
        except Exception as exc:
            logger.warning("supabase.sign_up_failed", email=email, error=str(exc))
            return AuthResponse(error=exc)
        self.current_user_id = user.id if user else None
        logger.info("supabase.signed_up", user_id=self.current_user_id)
        return AuthResponse(user=user)

    async def sign_out(self) -> SignOutResponse:
        try:
            await self._client.auth.sign_out()
        except Exception as exc:
            logger.warning("supabase.sign_out_failed", error=str(exc))
            return SignOutResponse(error=exc)
        self.current_user_id = None
        return SignOutResponse()

    async def get_current_user(self) -> User | None:
        try:
            response = await self._client.auth.get_user()
        except Exception:
            logger.warning("supabase.get_user_failed", exc_info=True)
            return None
        return _to_user(response.user) if response is not None else None

    async def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        def _relay(event: Any, session: Any) -> None:
            try:
                callback(_to_user(session.user) if session is not None else None)
            except Exception:
                logger.warning("supabase.auth_callback_failed", auth_event=str(event), exc_info=True)

        subscription = self._client.auth.on_auth_state_change(_relay)

        async def unsubscribe() -> None:
            subscription.unsubscribe()

        return unsubscribe

    def close(self) -> None:
        self._internal_subscription.unsubscribe()


# ── Storage ─────────────────────────────────────────────────────────────────


class SupabaseStorage(StorageService):
    """Supabase Storage with per-user folders in the images bucket.

    Args:
        client: Connected supabase AsyncClient.
        auth: Auth service providing the signed-in user id.
        base_url: Project URL, used to build public object URLs.
        images_bucket: Bucket whose objects are namespaced by user id.
    """

    def __init__(
        self,
        client: AsyncClient,
        auth: SupabaseAuth,
        base_url: str,
        images_bucket: str = "images",
    ) -> None:
        self._client = client
        self._auth = auth
        self._base_url = base_url.rstrip("/")
        self._images_bucket = images_bucket

    def _scoped_path(self, bucket: str, path: str, *, required: bool = True) -> str:
        """Prefix image paths with the signed-in user's folder."""
        if bucket != self._images_bucket:
            return path
        user_id = self._auth.current_user_id
        if user_id is None:
            if required:
                raise BackendError("no signed-in user for user-scoped storage")
            return path
        prefix = f"{user_id}/"
        return path if path.startswith(prefix) else f"{prefix}{path.lstrip('/')}"

    async def upload_file(self, bucket: str, path: str, file: FileUpload) -> UploadedFile:
        if not path and bucket == self._images_bucket:
            path = uuid.uuid4().hex + (f".{file.extension}" if file.extension else "")
        key = self._scoped_path(bucket, path or file.name)
        try:
            await self._client.storage.from_(bucket).upload(
                key, file.content, {"content-type": file.content_type}
            )
        except Exception:
            logger.error("supabase.upload_failed", bucket=bucket, path=key, exc_info=True)
            raise
        logger.info("supabase.file_uploaded", bucket=bucket, path=key, size=len(file.content))
        return UploadedFile(path=key, url=self.get_public_url(bucket, key), name=file.name)

    async def delete_file(self, bucket: str, path: str) -> None:
        key = self._scoped_path(bucket, path)
        try:
            await self._client.storage.from_(bucket).remove([key])
        except Exception:
            logger.error("supabase.delete_file_failed", bucket=bucket, path=key, exc_info=True)
            raise
        logger.info("supabase.file_deleted", bucket=bucket, path=key)

    def get_public_url(self, bucket: str, path: str) -> str:
        key = self._scoped_path(bucket, path, required=False)
        return f"{self._base_url}/storage/v1/object/public/{bucket}/{key}"

    async def list_files(self, bucket: str, path: str | None = None) -> list[UploadedFile]:
        folder = self._scoped_path(bucket, path or "").rstrip("/")
        try:
            entries = await self._client.storage.from_(bucket).list(folder)
        except Exception:
            logger.error("supabase.list_files_failed", bucket=bucket, path=folder, exc_info=True)
            raise
        files = []
        for entry in entries or []:
            key = f"{folder}/{entry['name']}" if folder else entry["name"]
            files.append(UploadedFile(path=key, url=self.get_public_url(bucket, key), name=entry["name"]))
        return files


# ── Service ─────────────────────────────────────────────────────────────────


class SupabaseBackend(BackendService):
    """Supabase implementation of the backend contract.

    Args:
        client: Connected supabase AsyncClient.
        settings: Application settings (project URL, images bucket, list limit).
    """

    provider = BackendProvider.supabase

    def __init__(self, client: AsyncClient, settings: Settings) -> None:
        self._client = client
        self.database = SupabaseDatabase(client, list_limit=settings.LIST_LIMIT)
        self.auth = SupabaseAuth(client, self.database)
        self.storage = SupabaseStorage(
            client,
            self.auth,
            base_url=settings.SUPABASE_URL,
            images_bucket=settings.SUPABASE_IMAGES_BUCKET,
        )

    async def close(self) -> None:
        self.auth.close()
        await self.database.close_channels()
        logger.info("supabase.backend_closed")


async def create_supabase_backend(settings: Settings) -> SupabaseBackend:
    """Connect a supabase AsyncClient and wrap it in a SupabaseBackend."""
    client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    logger.info("supabase.client_created", url=settings.SUPABASE_URL)
    return SupabaseBackend(client, settings)
