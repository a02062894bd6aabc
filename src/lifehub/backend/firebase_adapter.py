"""Firebase backend adapter -- Firestore documents, Identity Toolkit auth, Cloud Storage.

Key implementation details:
- Writes stamp ``created_at``/``updated_at`` with SERVER_TIMESTAMP and then
  read the document back, because the write acknowledgement does not carry
  the resolved server time
- Every timestamp leaving the adapter goes through normalize_timestamp:
  datetimes and protobuf Timestamps become ISO strings, a still-pending
  sentinel or missing value falls back to the local clock
- Profiles are stored under the user's id, so at most one exists per user
- The message listener runs on the sync Firestore client (watch streams are
  thread based) and hands ADDED changes back to the event loop
- Object keys are ``{bucket}/{path}`` inside the project's storage bucket;
  get_public_url cannot know the download token and returns a tokenless URL
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import firebase_admin
import structlog
from firebase_admin import credentials, firestore_async
from firebase_admin import firestore as firestore_sync
from firebase_admin import storage as firebase_storage
from google.api_core.exceptions import AlreadyExists, DeadlineExceeded, ServiceUnavailable
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.transforms import Sentinel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

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
from src.lifehub.backend.identity_toolkit import (
    REFRESHABLE_TOKEN_ERRORS,
    IdentityToolkitClient,
    IdentityToolkitError,
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
from src.lifehub.backend.timestamps import now_iso, to_iso
from src.lifehub.config import BackendProvider, Settings

logger = structlog.get_logger(__name__)

_firestore_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((ServiceUnavailable, DeadlineExceeded)),
    reraise=True,
)

TIMESTAMP_FIELDS = ("created_at", "updated_at", "completed_at")
DOWNLOAD_URL = "https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{key}?alt=media"
FIREBASE_APP_NAME = "lifehub"


def normalize_timestamp(value: Any, *, required: bool = False) -> str | None:
    """Convert any Firestore timestamp shape to an ISO-8601 string.

    Handles DatetimeWithNanoseconds (a datetime subclass), protobuf
    Timestamps, plain strings, and unresolved SERVER_TIMESTAMP sentinels or
    missing values, which fall back to the local clock when ``required``.
    """
    if value is None or isinstance(value, Sentinel):
        return now_iso() if required else None
    if isinstance(value, datetime):
        return to_iso(value)
    to_datetime = getattr(value, "ToDatetime", None)
    if callable(to_datetime):
        return to_iso(to_datetime())
    return str(value)


def _snapshot_to_record(spec: CollectionSpec, snapshot: Any) -> dict[str, Any]:
    """Flatten a document snapshot into a plain dict with ``id`` and ISO timestamps."""
    record = snapshot.to_dict() or {}
    record["id"] = snapshot.id
    required = {CREATED_FIELD[spec.name]}
    if spec.tracks_updated_at:
        required.add("updated_at")
    for field in TIMESTAMP_FIELDS:
        if field in record or field in required:
            record[field] = normalize_timestamp(record.get(field), required=field in required)
    for field, value in record.items():
        if isinstance(value, datetime):
            record[field] = to_iso(value)
    return record


# ── Database ────────────────────────────────────────────────────────────────


class FirestoreDatabase(DatabaseService):
    """Firestore collections behind the database contract.

    Args:
        db: Async Firestore client for queries and writes.
        listener_db: Sync Firestore client, used only for on_snapshot watches.
        list_limit: Document cap applied to every list query.
    """

    def __init__(self, db: Any, listener_db: Any, list_limit: int = 500) -> None:
        self._db = db
        self._listener_db = listener_db
        self._list_limit = list_limit
        self._watches: list[Any] = []

    # ── Generic helpers ─────────────────────────────────────────────────

    @_firestore_retry
    async def _query(self, spec: CollectionSpec, scope_value: str | None) -> list[Any]:
        query = self._db.collection(spec.name)
        if spec.scope_field is not None:
            query = query.where(filter=FieldFilter(spec.scope_field, "==", scope_value))
        direction = firestore.Query.DESCENDING if spec.descending else firestore.Query.ASCENDING
        query = query.order_by(spec.order_field, direction=direction).limit(self._list_limit)
        return await query.get()

    async def _list(self, spec: CollectionSpec, scope_value: str | None = None) -> list[dict]:
        try:
            snapshots = await self._query(spec, scope_value)
        except Exception:
            logger.error("firebase.list_failed", collection=spec.name, exc_info=True)
            raise
        return [_snapshot_to_record(spec, snapshot) for snapshot in snapshots]

    async def _create(self, spec: CollectionSpec, data: dict[str, Any]) -> dict:
        payload = {**data, CREATED_FIELD[spec.name]: firestore.SERVER_TIMESTAMP}
        if spec.tracks_updated_at:
            payload["updated_at"] = firestore.SERVER_TIMESTAMP
        try:
            _, ref = await self._db.collection(spec.name).add(payload)
            snapshot = await ref.get()
        except Exception:
            logger.error("firebase.create_failed", collection=spec.name, exc_info=True)
            raise
        logger.info("firebase.document_created", collection=spec.name, document_id=ref.id)
        return _snapshot_to_record(spec, snapshot)

    async def _update(self, spec: CollectionSpec, doc_id: str, values: dict[str, Any]) -> dict:
        if spec.tracks_updated_at:
            values = {**values, "updated_at": firestore.SERVER_TIMESTAMP}
        ref = self._db.collection(spec.name).document(doc_id)
        try:
            if values:
                await ref.update(values)
            snapshot = await ref.get()
        except Exception:
            logger.error(
                "firebase.update_failed", collection=spec.name, document_id=doc_id, exc_info=True
            )
            raise
        if not snapshot.exists:
            raise BackendError(f"{spec.name} document {doc_id} not found")
        return _snapshot_to_record(spec, snapshot)

    async def _delete(self, spec: CollectionSpec, doc_id: str) -> None:
        try:
            await self._db.collection(spec.name).document(doc_id).delete()
        except Exception:
            logger.error(
                "firebase.delete_failed", collection=spec.name, document_id=doc_id, exc_info=True
            )
            raise
        logger.info("firebase.document_deleted", collection=spec.name, document_id=doc_id)

    async def ensure_profile(self, user_id: str) -> dict:
        """Return the profile document for user_id, creating it if absent."""
        ref = self._db.collection(PROFILES.name).document(user_id)
        snapshot = await ref.get()
        if not snapshot.exists:
            try:
                await ref.create(
                    {
                        "user_id": user_id,
                        "first_name": None,
                        "last_name": None,
                        "created_at": firestore.SERVER_TIMESTAMP,
                        "updated_at": firestore.SERVER_TIMESTAMP,
                    }
                )
                logger.info("firebase.profile_created", user_id=user_id)
            except AlreadyExists:
                logger.debug("firebase.profile_create_raced", user_id=user_id)
            snapshot = await ref.get()
        return _snapshot_to_record(PROFILES, snapshot)

    # ── Profiles ────────────────────────────────────────────────────────

    async def get_profile(self, user_id: str) -> Profile | None:
        try:
            record = await self.ensure_profile(user_id)
        except Exception:
            logger.error("firebase.profile_fetch_failed", user_id=user_id, exc_info=True)
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
        loop = asyncio.get_running_loop()
        seen: set[str] = set()
        since = datetime.now(timezone.utc)

        def _deliver(message: Message) -> None:
            try:
                callback(message)
            except Exception:
                logger.warning("firebase.message_callback_failed", exc_info=True)

        # Runs on the watch thread
        def _on_snapshot(documents: Any, changes: Any, read_time: Any) -> None:
            for change in changes:
                if change.type.name != "ADDED" or change.document.id in seen:
                    continue
                seen.add(change.document.id)
                message = Message.model_validate(_snapshot_to_record(MESSAGES, change.document))
                loop.call_soon_threadsafe(_deliver, message)

        query = (
            self._listener_db.collection(MESSAGES.name)
            .where(filter=FieldFilter("created_at", ">", since))
            .order_by("created_at", direction=firestore.Query.ASCENDING)
        )
        watch = await asyncio.to_thread(query.on_snapshot, _on_snapshot)
        self._watches.append(watch)
        logger.info("firebase.messages_subscribed")

        async def unsubscribe() -> None:
            if watch not in self._watches:
                return
            self._watches.remove(watch)
            await asyncio.to_thread(watch.unsubscribe)
            logger.info("firebase.messages_unsubscribed")

        return unsubscribe

    async def close_watches(self) -> None:
        for watch in list(self._watches):
            await asyncio.to_thread(watch.unsubscribe)
        self._watches.clear()

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


class FirebaseAuth(AuthService):
    """Email/password auth with a process-local session.

    Listeners are called immediately with the current user when they
    register and again whenever the signed-in user changes.
    """

    def __init__(self, identity: IdentityToolkitClient, database: FirestoreDatabase) -> None:
        self._identity = identity
        self._database = database
        self._session: dict[str, Any] | None = None
        self._listeners: list[AuthStateCallback] = []

    @property
    def _user(self) -> User | None:
        if self._session is None:
            return None
        return User(id=self._session["localId"], email=self._session.get("email"))

    def _set_session(self, session: dict[str, Any] | None) -> None:
        previous = self._user
        self._session = session
        current = self._user
        if (previous.id if previous else None) == (current.id if current else None):
            return
        for listener in list(self._listeners):
            self._notify(listener, current)

    @staticmethod
    def _notify(listener: AuthStateCallback, user: User | None) -> None:
        try:
            listener(user)
        except Exception:
            logger.warning("firebase.auth_callback_failed", exc_info=True)

    async def sign_in(self, email: str, password: str) -> AuthResponse:
        try:
            session = await self._identity.sign_in_with_password(email, password)
        except Exception as exc:
            logger.warning("firebase.sign_in_failed", email=email, error=str(exc))
            return AuthResponse(error=exc)
        self._set_session(session)
        logger.info("firebase.signed_in", user_id=session["localId"])
        return AuthResponse(user=self._user)

    async def sign_up(self, email: str, password: str) -> AuthResponse:
        try:
            session = await self._identity.sign_up(email, password)
            await self._database.ensure_profile(session["localId"])
        except Exception as exc:
            logger.warning("firebase.sign_up_failed", email=email, error=str(exc))
            return AuthResponse(error=exc)
        self._set_session(session)
        logger.info("firebase.signed_up", user_id=session["localId"])
        return AuthResponse(user=self._user)

    async def sign_out(self) -> SignOutResponse:
        self._set_session(None)
        return SignOutResponse()

    async def get_current_user(self) -> User | None:
        if self._session is None:
            return None
        try:
            account = await self._lookup_account()
        except Exception:
            logger.warning("firebase.get_user_failed", exc_info=True)
            return None
        if account is None:
            logger.info("firebase.session_expired")
            self._set_session(None)
            return None
        return self._user

    async def _lookup_account(self) -> dict[str, Any] | None:
        """Look up the session's account, refreshing an expired ID token once.

        Returns None when the session can no longer be used.
        """
        try:
            return await self._identity.lookup(self._session["idToken"])
        except IdentityToolkitError as exc:
            if not exc.code.startswith(REFRESHABLE_TOKEN_ERRORS):
                return None
        refresh_token = self._session.get("refreshToken")
        if not refresh_token:
            return None
        try:
            refreshed = await self._identity.refresh(refresh_token)
            account = await self._identity.lookup(refreshed["idToken"])
        except IdentityToolkitError:
            return None
        # Same user, new tokens: listeners are not notified
        self._session = {**self._session, **refreshed}
        logger.info("firebase.token_refreshed", user_id=self._session["localId"])
        return account

    async def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        self._listeners.append(callback)
        self._notify(callback, self._user)

        async def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe


# ── Storage ─────────────────────────────────────────────────────────────────


class FirebaseStorage(StorageService):
    """Cloud Storage objects keyed ``{bucket}/{path}`` in the project bucket.

    Args:
        bucket: google.cloud.storage Bucket for the Firebase project.
    """

    def __init__(self, bucket: Any) -> None:
        self._bucket = bucket

    def _download_url(self, key: str, token: str | None = None) -> str:
        url = DOWNLOAD_URL.format(bucket=self._bucket.name, key=quote(key, safe=""))
        return f"{url}&token={token}" if token else url

    async def upload_file(self, bucket: str, path: str, file: FileUpload) -> UploadedFile:
        path = path or file.name
        key = f"{bucket}/{path}"
        token = str(uuid.uuid4())
        blob = self._bucket.blob(key)
        blob.metadata = {"firebaseStorageDownloadTokens": token}
        try:
            await asyncio.to_thread(
                blob.upload_from_string, file.content, content_type=file.content_type
            )
        except Exception:
            logger.error("firebase.upload_failed", key=key, exc_info=True)
            raise
        logger.info("firebase.file_uploaded", key=key, size=len(file.content))
        return UploadedFile(path=path, url=self._download_url(key, token), name=file.name)

    async def delete_file(self, bucket: str, path: str) -> None:
        key = f"{bucket}/{path}"
        try:
            await asyncio.to_thread(self._bucket.blob(key).delete)
        except Exception:
            logger.error("firebase.delete_file_failed", key=key, exc_info=True)
            raise
        logger.info("firebase.file_deleted", key=key)

    def get_public_url(self, bucket: str, path: str) -> str:
        # No download token without a metadata round trip
        return self._download_url(f"{bucket}/{path}")

    async def list_files(self, bucket: str, path: str | None = None) -> list[UploadedFile]:
        prefix = f"{bucket}/"
        if path:
            prefix += path.strip("/") + "/"
        try:
            blobs = await asyncio.to_thread(
                lambda: list(self._bucket.list_blobs(prefix=prefix, delimiter="/"))
            )
        except Exception:
            logger.error("firebase.list_files_failed", prefix=prefix, exc_info=True)
            raise
        files = []
        for blob in blobs:
            token = (blob.metadata or {}).get("firebaseStorageDownloadTokens")
            files.append(
                UploadedFile(
                    path=blob.name[len(bucket) + 1 :],
                    url=self._download_url(blob.name, token),
                    name=blob.name.rsplit("/", 1)[-1],
                )
            )
        return files


# ── Service ─────────────────────────────────────────────────────────────────


class FirebaseBackend(BackendService):
    """Firebase implementation of the backend contract.

    Args:
        db: Async Firestore client.
        listener_db: Sync Firestore client for snapshot listeners.
        bucket: Cloud Storage bucket.
        identity: Identity Toolkit client for password auth.
        settings: Application settings.
        app: firebase_admin App to delete on close (None when injected by tests).
    """

    provider = BackendProvider.firebase

    def __init__(
        self,
        db: Any,
        listener_db: Any,
        bucket: Any,
        identity: IdentityToolkitClient,
        settings: Settings,
        app: Any | None = None,
    ) -> None:
        self._app = app
        self.database = FirestoreDatabase(db, listener_db, list_limit=settings.LIST_LIMIT)
        self.auth = FirebaseAuth(identity, self.database)
        self.storage = FirebaseStorage(bucket)

    async def close(self) -> None:
        await self.database.close_watches()
        if self._app is not None:
            firebase_admin.delete_app(self._app)
            self._app = None
        logger.info("firebase.backend_closed")


def create_firebase_backend(settings: Settings) -> FirebaseBackend:
    """Initialize a named firebase_admin app and wrap its clients."""
    if settings.FIREBASE_CREDENTIALS_FILE:
        cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS_FILE)
    else:
        cred = credentials.ApplicationDefault()
    app = firebase_admin.initialize_app(
        cred,
        {
            "projectId": settings.FIREBASE_PROJECT_ID,
            "storageBucket": settings.FIREBASE_STORAGE_BUCKET,
        },
        name=FIREBASE_APP_NAME,
    )
    logger.info("firebase.app_initialized", project_id=settings.FIREBASE_PROJECT_ID)
    return FirebaseBackend(
        db=firestore_async.client(app),
        listener_db=firestore_sync.client(app),
        bucket=firebase_storage.bucket(app=app),
        identity=IdentityToolkitClient(
            settings.FIREBASE_API_KEY, timeout=float(settings.BACKEND_TIMEOUT)
        ),
        settings=settings,
        app=app,
    )
