"""Collection catalog -- the per-entity table/collection layout shared by all adapters.

Each adapter translates a CollectionSpec into its own query builder: a
Postgres filter chain, a Firestore query, or an Appwrite Query list. Keeping
the layout in one place is what makes list ordering identical across
backends.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CollectionSpec:
    """Storage layout for one entity type.

    Attributes:
        name: Table / collection name (identical on every backend).
        scope_field: Equality filter applied by list calls, or None for
            globally readable collections.
        order_field: Column the list is sorted by.
        descending: Sort direction for order_field.
        tracks_updated_at: Whether update calls refresh ``updated_at``.
    """

    name: str
    scope_field: str | None
    order_field: str
    descending: bool
    tracks_updated_at: bool = False


PROFILES = CollectionSpec("profiles", "user_id", "created_at", False, tracks_updated_at=True)
NOTES = CollectionSpec("notes", "user_id", "created_at", True, tracks_updated_at=True)
TODOS = CollectionSpec("todos", "user_id", "created_at", True, tracks_updated_at=True)
MESSAGES = CollectionSpec("messages", None, "created_at", False)
HABITS = CollectionSpec("habits", "user_id", "created_at", True)
HABIT_LOGS = CollectionSpec("habit_logs", "habit_id", "completed_at", True)
EVENTS = CollectionSpec("events", "user_id", "start_date", False)
EXPENSES = CollectionSpec("expenses", "user_id", "date", True)
KANBAN_BOARDS = CollectionSpec("kanban_boards", "user_id", "created_at", True)
KANBAN_COLUMNS = CollectionSpec("kanban_columns", "board_id", "position", False)
KANBAN_CARDS = CollectionSpec("kanban_cards", "board_id", "position", False)
MARKDOWN_DOCS = CollectionSpec("markdown_docs", "user_id", "created_at", True, tracks_updated_at=True)

ALL_COLLECTIONS: tuple[CollectionSpec, ...] = (
    PROFILES,
    NOTES,
    TODOS,
    MESSAGES,
    HABITS,
    HABIT_LOGS,
    EVENTS,
    EXPENSES,
    KANBAN_BOARDS,
    KANBAN_COLUMNS,
    KANBAN_CARDS,
    MARKDOWN_DOCS,
)

# Field name of the creation timestamp (habit logs use completed_at instead)
CREATED_FIELD = {spec.name: "created_at" for spec in ALL_COLLECTIONS}
CREATED_FIELD[HABIT_LOGS.name] = "completed_at"
