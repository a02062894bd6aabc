"""Pydantic schemas for the LifeHub domain model.

Every adapter produces and consumes exactly these shapes, whichever backend
is active:
- Enums: HabitFrequency, ExpenseType
- Auth: User, AuthResponse, SignOutResponse
- Entities with Create/Update payloads: Profile, Note, Todo, Message, Habit,
  HabitLog, Event, Expense, KanbanBoard, KanbanColumn, KanbanCard,
  MarkdownDocument
- Storage: FileUpload (bytes going up), UploadedFile (reference coming back)

Read models ignore unknown keys, so backend metadata never leaks through.
Timestamps are ISO-8601 strings (see backend.timestamps).
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.lifehub.backend.timestamps import to_iso_date


# ── Enums ───────────────────────────────────────────────────────────────────


class HabitFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ExpenseType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


# ── Auth ────────────────────────────────────────────────────────────────────


class User(BaseModel):
    """Authenticated principal. ``email`` is never None."""

    id: str
    email: str = ""

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str | None) -> str:
        return value or ""


class AuthResponse(BaseModel):
    """Result of sign-in/sign-up. Failures are carried in ``error``, never raised."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    user: User | None = None
    error: Exception | None = None


class SignOutResponse(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    error: Exception | None = None


# ── Profiles ────────────────────────────────────────────────────────────────


class Profile(BaseModel):
    id: str
    user_id: str
    first_name: str | None = None
    last_name: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ProfileUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None


# ── Notes ───────────────────────────────────────────────────────────────────


class Note(BaseModel):
    id: str
    user_id: str
    title: str
    content: str = ""
    created_at: str
    updated_at: str | None = None


class NoteCreate(BaseModel):
    title: str = Field(min_length=1)
    content: str = ""


class NoteUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    content: str | None = None


# ── Todos ───────────────────────────────────────────────────────────────────


def _normalize_due_date(value: date | datetime | str | None) -> str | None:
    if value is None or value == "":
        return None
    return to_iso_date(value)


class Todo(BaseModel):
    id: str
    user_id: str
    task: str
    is_completed: bool = False
    due_date: str | None = None
    created_at: str
    updated_at: str | None = None

    @field_validator("due_date", mode="before")
    @classmethod
    def normalize_due_date(cls, value: date | datetime | str | None) -> str | None:
        return _normalize_due_date(value)


class TodoCreate(BaseModel):
    task: str = Field(min_length=1)
    is_completed: bool = False
    due_date: str | None = None

    @field_validator("due_date", mode="before")
    @classmethod
    def normalize_due_date(cls, value: date | datetime | str | None) -> str | None:
        return _normalize_due_date(value)


class TodoUpdate(BaseModel):
    task: str | None = Field(default=None, min_length=1)
    is_completed: bool | None = None
    due_date: str | None = None

    @field_validator("due_date", mode="before")
    @classmethod
    def normalize_due_date(cls, value: date | datetime | str | None) -> str | None:
        return _normalize_due_date(value)


# ── Messages (append-only) ──────────────────────────────────────────────────


class Message(BaseModel):
    id: str
    user_id: str
    content: str
    created_at: str


class MessageCreate(BaseModel):
    content: str = Field(min_length=1)


# ── Habits ──────────────────────────────────────────────────────────────────


class Habit(BaseModel):
    id: str
    user_id: str
    name: str
    description: str | None = None
    frequency: HabitFrequency = HabitFrequency.DAILY
    created_at: str


class HabitCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    frequency: HabitFrequency = HabitFrequency.DAILY


class HabitUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    frequency: HabitFrequency | None = None


class HabitLog(BaseModel):
    id: str
    habit_id: str
    user_id: str
    completed_at: str
    notes: str | None = None


# ── Calendar events ─────────────────────────────────────────────────────────


class Event(BaseModel):
    id: str
    user_id: str
    title: str
    description: str | None = None
    start_date: str
    end_date: str | None = None
    all_day: bool = False
    created_at: str


class EventCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    start_date: str
    end_date: str | None = None
    all_day: bool = False


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    all_day: bool | None = None


# ── Expenses ────────────────────────────────────────────────────────────────


class Expense(BaseModel):
    id: str
    user_id: str
    amount: float
    category: str
    description: str | None = None
    type: ExpenseType = ExpenseType.EXPENSE
    date: str
    created_at: str


class ExpenseCreate(BaseModel):
    amount: float
    category: str
    description: str | None = None
    type: ExpenseType = ExpenseType.EXPENSE
    date: str


class ExpenseUpdate(BaseModel):
    amount: float | None = None
    category: str | None = None
    description: str | None = None
    type: ExpenseType | None = None
    date: str | None = None


# ── Kanban ──────────────────────────────────────────────────────────────────


class KanbanBoard(BaseModel):
    id: str
    user_id: str
    name: str
    description: str | None = None
    created_at: str


class KanbanBoardCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None


class KanbanBoardUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None


class KanbanColumn(BaseModel):
    id: str
    user_id: str
    board_id: str
    name: str
    position: int
    created_at: str


class KanbanColumnCreate(BaseModel):
    name: str = Field(min_length=1)
    position: int = 0


class KanbanColumnUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    position: int | None = None


class KanbanCard(BaseModel):
    id: str
    user_id: str
    board_id: str
    column_id: str
    title: str
    description: str | None = None
    position: int
    created_at: str


class KanbanCardCreate(BaseModel):
    board_id: str
    column_id: str
    title: str = Field(min_length=1)
    description: str | None = None
    position: int = 0


class KanbanCardUpdate(BaseModel):
    column_id: str | None = None
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    position: int | None = None


# ── Markdown documents ──────────────────────────────────────────────────────


class MarkdownDocument(BaseModel):
    id: str
    user_id: str
    title: str
    content: str = ""
    created_at: str
    updated_at: str | None = None


class MarkdownDocumentCreate(BaseModel):
    title: str = Field(min_length=1)
    content: str = ""


class MarkdownDocumentUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    content: str | None = None


# ── Storage ─────────────────────────────────────────────────────────────────


class FileUpload(BaseModel):
    """File contents handed to ``storage.upload_file``."""

    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def extension(self) -> str:
        _, dot, ext = self.name.rpartition(".")
        return ext.lower() if dot else ""


class UploadedFile(BaseModel):
    """Reference to a stored object.

    ``path`` is the durable object key; ``url`` is derived and may expire or,
    for some backends, be a best-effort placeholder.
    """

    path: str
    url: str
    name: str
