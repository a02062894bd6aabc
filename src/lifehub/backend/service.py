"""Backend service contract -- the interface every backend adapter implements.

Consumers hold a BackendService and talk to its three sub-services:

- ``auth``: sign-in/up/out, current user, auth state subscription.
  Failures are returned in the response's ``error`` field, never raised.
- ``database``: per-entity get/create/update/delete plus the message feed.
  Failures propagate as exceptions.
- ``storage``: object upload/delete/list and public URL resolution.
  Failures propagate, except ``get_public_url`` which always returns a string.

This asymmetry between auth and data errors is part of the contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

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
from src.lifehub.config import BackendProvider

AuthStateCallback = Callable[[User | None], None]
MessageCallback = Callable[[Message], None]
Unsubscribe = Callable[[], Awaitable[None]]


class BackendError(Exception):
    """Failure detected by an adapter itself rather than raised by a backend SDK."""


class AuthService(ABC):
    """Authentication sub-contract."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthResponse:
        """Open a session with email/password."""
        ...

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> AuthResponse:
        """Create an account, provision its Profile, and open a session."""
        ...

    @abstractmethod
    async def sign_out(self) -> SignOutResponse:
        """Close the current session."""
        ...

    @abstractmethod
    async def get_current_user(self) -> User | None:
        """Return the signed-in user, or None (also on failure)."""
        ...

    @abstractmethod
    async def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        """Invoke callback with the new user (or None) on each auth transition."""
        ...


class DatabaseService(ABC):
    """Document/table sub-contract.

    ``create_*`` calls take the owning user id plus a payload without identity
    fields; ``update_*`` calls take a partial payload and write only the fields
    that were set. Lists come back in a fixed order per entity (see
    backend.catalog).
    """

    # ── Profiles ────────────────────────────────────────────────────────

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile | None:
        """Fetch the user's profile, creating an empty one when missing."""
        ...

    @abstractmethod
    async def update_profile(self, user_id: str, data: ProfileUpdate) -> Profile | None:
        """Update the user's profile, creating it first when missing."""
        ...

    # ── Notes ───────────────────────────────────────────────────────────

    @abstractmethod
    async def get_notes(self, user_id: str) -> list[Note]:
        ...

    @abstractmethod
    async def create_note(self, user_id: str, data: NoteCreate) -> Note:
        ...

    @abstractmethod
    async def update_note(self, note_id: str, data: NoteUpdate) -> Note:
        ...

    @abstractmethod
    async def delete_note(self, note_id: str) -> None:
        ...

    # ── Todos ───────────────────────────────────────────────────────────

    @abstractmethod
    async def get_todos(self, user_id: str) -> list[Todo]:
        ...

    @abstractmethod
    async def create_todo(self, user_id: str, data: TodoCreate) -> Todo:
        ...

    @abstractmethod
    async def update_todo(self, todo_id: str, data: TodoUpdate) -> Todo:
        ...

    @abstractmethod
    async def delete_todo(self, todo_id: str) -> None:
        ...

    # ── Messages ────────────────────────────────────────────────────────

    @abstractmethod
    async def get_messages(self) -> list[Message]:
        """All chat messages, oldest first."""
        ...

    @abstractmethod
    async def create_message(self, user_id: str, content: str) -> Message:
        """Append a message; empty content fails validation before any write."""
        ...

    @abstractmethod
    async def subscribe_to_messages(self, callback: MessageCallback) -> Unsubscribe:
        """Invoke callback once for every message inserted after subscribing."""
        ...

    # ── Habits ──────────────────────────────────────────────────────────

    @abstractmethod
    async def get_habits(self, user_id: str) -> list[Habit]:
        ...

    @abstractmethod
    async def create_habit(self, user_id: str, data: HabitCreate) -> Habit:
        ...

    @abstractmethod
    async def update_habit(self, habit_id: str, data: HabitUpdate) -> Habit:
        ...

    @abstractmethod
    async def delete_habit(self, habit_id: str) -> None:
        ...

    @abstractmethod
    async def get_habit_logs(self, habit_id: str) -> list[HabitLog]:
        ...

    @abstractmethod
    async def create_habit_log(
        self, user_id: str, habit_id: str, notes: str | None = None
    ) -> HabitLog:
        ...

    @abstractmethod
    async def delete_habit_log(self, log_id: str) -> None:
        ...

    # ── Events ──────────────────────────────────────────────────────────

    @abstractmethod
    async def get_events(self, user_id: str) -> list[Event]:
        ...

    @abstractmethod
    async def create_event(self, user_id: str, data: EventCreate) -> Event:
        ...

    @abstractmethod
    async def update_event(self, event_id: str, data: EventUpdate) -> Event:
        ...

    @abstractmethod
    async def delete_event(self, event_id: str) -> None:
        ...

    # ── Expenses ────────────────────────────────────────────────────────

    @abstractmethod
    async def get_expenses(self, user_id: str) -> list[Expense]:
        ...

    @abstractmethod
    async def create_expense(self, user_id: str, data: ExpenseCreate) -> Expense:
        ...

    @abstractmethod
    async def update_expense(self, expense_id: str, data: ExpenseUpdate) -> Expense:
        ...

    @abstractmethod
    async def delete_expense(self, expense_id: str) -> None:
        ...

    # ── Kanban ──────────────────────────────────────────────────────────

    @abstractmethod
    async def get_boards(self, user_id: str) -> list[KanbanBoard]:
        ...

    @abstractmethod
    async def create_board(self, user_id: str, data: KanbanBoardCreate) -> KanbanBoard:
        ...

    @abstractmethod
    async def update_board(self, board_id: str, data: KanbanBoardUpdate) -> KanbanBoard:
        ...

    @abstractmethod
    async def delete_board(self, board_id: str) -> None:
        ...

    @abstractmethod
    async def get_columns(self, board_id: str) -> list[KanbanColumn]:
        ...

    @abstractmethod
    async def create_column(
        self, user_id: str, board_id: str, data: KanbanColumnCreate
    ) -> KanbanColumn:
        ...

    @abstractmethod
    async def update_column(self, column_id: str, data: KanbanColumnUpdate) -> KanbanColumn:
        ...

    @abstractmethod
    async def delete_column(self, column_id: str) -> None:
        ...

    @abstractmethod
    async def get_cards(self, board_id: str) -> list[KanbanCard]:
        ...

    @abstractmethod
    async def create_card(self, user_id: str, data: KanbanCardCreate) -> KanbanCard:
        ...

    @abstractmethod
    async def update_card(self, card_id: str, data: KanbanCardUpdate) -> KanbanCard:
        ...

    @abstractmethod
    async def delete_card(self, card_id: str) -> None:
        ...

    # ── Markdown documents ──────────────────────────────────────────────

    @abstractmethod
    async def get_markdown_docs(self, user_id: str) -> list[MarkdownDocument]:
        ...

    @abstractmethod
    async def create_markdown_doc(
        self, user_id: str, data: MarkdownDocumentCreate
    ) -> MarkdownDocument:
        ...

    @abstractmethod
    async def update_markdown_doc(
        self, doc_id: str, data: MarkdownDocumentUpdate
    ) -> MarkdownDocument:
        ...

    @abstractmethod
    async def delete_markdown_doc(self, doc_id: str) -> None:
        ...


class StorageService(ABC):
    """Object storage sub-contract."""

    @abstractmethod
    async def upload_file(self, bucket: str, path: str, file: FileUpload) -> UploadedFile:
        ...

    @abstractmethod
    async def delete_file(self, bucket: str, path: str) -> None:
        ...

    @abstractmethod
    def get_public_url(self, bucket: str, path: str) -> str:
        """Best-effort URL; never raises, may be unusable for some backends."""
        ...

    @abstractmethod
    async def list_files(self, bucket: str, path: str | None = None) -> list[UploadedFile]:
        ...


class BackendService(ABC):
    """One configured backend: its provider name plus the three sub-services."""

    provider: BackendProvider
    auth: AuthService
    database: DatabaseService
    storage: StorageService

    @abstractmethod
    async def close(self) -> None:
        """Release subscriptions, timers and network clients."""
        ...
