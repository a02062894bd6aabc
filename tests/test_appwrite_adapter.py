"""Unit tests for the Appwrite adapter.

Appwrite has no push channel for auth state or new messages, so most of
what is specific here is polling: auth transitions, the message cursor,
and loop shutdown. The SDK services are replaced by the fakes in
backend_fakes, which parse the real Query JSON strings.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from appwrite import models
from appwrite.client import Client
from appwrite.exception import AppwriteException
from structlog.testing import capture_logs

from backend_fakes import (
    APPWRITE_STAMP,
    appwrite_file_payload,
    appwrite_session_payload,
    appwrite_user_payload,
    build_appwrite_backend,
    make_settings,
    wait_until,
)
from src.lifehub.backend.appwrite_adapter import (
    AppwriteBackend,
    _document_to_record,
    create_appwrite_backend,
)
from src.lifehub.backend.catalog import NOTES, PROFILES
from src.lifehub.backend.schemas import FileUpload, NoteCreate
from src.lifehub.backend.service import BackendError


@pytest_asyncio.fixture
async def appwrite(settings):
    backend, fakes = build_appwrite_backend(settings)
    yield backend, fakes
    await backend.close()


# ── Auth state polling ──────────────────────────────────────────────────────


class TestAuthPolling:
    async def test_fires_only_on_user_transitions(self, appwrite):
        backend, fakes = appwrite
        await backend.auth.sign_up("a@x.com", "pw123456")
        await backend.auth.sign_out()
        seen = []
        await backend.auth.on_auth_state_change(seen.append)

        await backend.auth.sign_in("a@x.com", "pw123456")
        assert await wait_until(lambda: len(seen) == 1)

        # Same user signing in again is not a transition
        await backend.auth.sign_in("a@x.com", "pw123456")
        calls = fakes.account.get_calls
        assert await wait_until(lambda: fakes.account.get_calls >= calls + 3)
        assert len(seen) == 1

        await backend.auth.sign_out()
        assert await wait_until(lambda: len(seen) == 2)

        assert seen[0].email == "a@x.com"
        assert seen[1] is None

    async def test_first_tick_reports_existing_session(self, appwrite):
        backend, _ = appwrite
        await backend.auth.sign_up("a@x.com", "pw123456")
        seen = []

        await backend.auth.on_auth_state_change(seen.append)

        assert [user.email for user in seen] == ["a@x.com"]

    async def test_logout_fires_once_with_none(self, appwrite):
        backend, fakes = appwrite
        await backend.auth.sign_up("a@x.com", "pw123456")
        seen = []
        await backend.auth.on_auth_state_change(seen.append)

        await backend.auth.sign_out()
        assert await wait_until(lambda: len(seen) == 2)
        calls = fakes.account.get_calls
        assert await wait_until(lambda: fakes.account.get_calls >= calls + 5)

        assert seen[0].email == "a@x.com"
        assert seen[1:] == [None]

    async def test_each_subscription_has_its_own_cursor(self, appwrite):
        backend, _ = appwrite
        await backend.auth.sign_up("a@x.com", "pw123456")
        first, second = [], []

        await backend.auth.on_auth_state_change(first.append)
        await backend.auth.on_auth_state_change(second.append)

        assert len(first) == 1
        assert len(second) == 1

    async def test_unsubscribe_stops_polling(self, appwrite):
        backend, fakes = appwrite
        unsubscribe = await backend.auth.on_auth_state_change(lambda user: None)
        await unsubscribe()

        calls = fakes.account.get_calls
        await asyncio.sleep(0.05)

        assert fakes.account.get_calls == calls

    async def test_failing_callback_keeps_loop_alive(self, appwrite):
        backend, fakes = appwrite
        seen = []

        def _callback(user):
            seen.append(user)
            raise ValueError("listener bug")

        await backend.auth.on_auth_state_change(_callback)
        await backend.auth.sign_up("a@x.com", "pw123456")
        assert await wait_until(lambda: len(seen) == 1)

        await backend.auth.sign_out()
        assert await wait_until(lambda: len(seen) == 2)


# ── Auth calls ──────────────────────────────────────────────────────────────


class TestAuthCalls:
    async def test_session_secret_is_set_and_cleared(self, appwrite):
        backend, fakes = appwrite
        response = await backend.auth.sign_up("a@x.com", "pw123456")
        assert fakes.client.session == f"secret-{response.user.id}"

        await backend.auth.sign_out()
        assert fakes.client.session == ""

    async def test_sign_up_partial_failure_keeps_account(self, appwrite):
        backend, fakes = appwrite
        fakes.databases.fail_collections["profiles"] = AppwriteException(
            "Server error", 500, "general_server_error"
        )

        response = await backend.auth.sign_up("a@x.com", "pw123456")

        assert response.user is None
        assert response.error.code == 500
        assert "a@x.com" in fakes.account.users
        assert fakes.client.session is None

    async def test_sign_out_without_session_returns_error(self, appwrite):
        backend, _ = appwrite
        response = await backend.auth.sign_out()
        assert isinstance(response.error, AppwriteException)

    async def test_sign_up_profile_is_keyed_by_user_id(self, appwrite):
        backend, fakes = appwrite
        response = await backend.auth.sign_up("a@x.com", "pw123456")
        assert list(fakes.databases.collections["profiles"]) == [response.user.id]

    async def test_session_without_secret_is_an_error(self, appwrite, monkeypatch):
        backend, fakes = appwrite
        await backend.auth.sign_up("a@x.com", "pw123456")
        await backend.auth.sign_out()
        # What a keyless caller gets back
        monkeypatch.setattr(
            fakes.account,
            "create_email_password_session",
            lambda email, password: models.Session.model_validate(appwrite_session_payload("u1", "")),
        )

        response = await backend.auth.sign_in("a@x.com", "pw123456")

        assert response.user is None
        assert isinstance(response.error, BackendError)
        assert "APPWRITE_API_KEY" in str(response.error)
        assert fakes.client.session == ""

    async def test_get_current_user_logs_backend_failures(self, appwrite, monkeypatch):
        backend, fakes = appwrite

        def _unavailable():
            raise AppwriteException("Server error", 503, "general_server_error")

        monkeypatch.setattr(fakes.account, "get", _unavailable)
        with capture_logs() as logs:
            assert await backend.auth.get_current_user() is None

        assert [entry["event"] for entry in logs] == ["appwrite.get_user_failed"]
        assert logs[0]["log_level"] == "warning"

    async def test_get_current_user_as_guest_is_quiet(self, appwrite):
        backend, _ = appwrite
        with capture_logs() as logs:
            assert await backend.auth.get_current_user() is None
        assert logs == []


# ── Database ────────────────────────────────────────────────────────────────


class TestDatabase:
    async def test_metadata_is_stripped(self, appwrite):
        backend, fakes = appwrite
        note = await backend.database.create_note("u1", NoteCreate(title="T"))
        stored = fakes.databases.collections["notes"][note.id]
        assert stored["$collectionId"] == "notes"

        record = _document_to_record(NOTES, models.Document.with_data(stored))
        assert not any(key.startswith("$") for key in record)
        assert record["id"] == note.id

    def test_created_at_falls_back_to_metadata(self):
        document = models.Document.with_data(
            {
                "$id": "p1",
                "$sequence": "1",
                "$collectionId": "profiles",
                "$databaseId": "lifehub-db",
                "$createdAt": "2025-01-01T10:00:00.000+00:00",
                "$updatedAt": "2025-01-02T10:00:00.000+00:00",
                "$permissions": [],
                "user_id": "u1",
            }
        )
        record = _document_to_record(PROFILES, document)
        assert record["created_at"] == "2025-01-01T10:00:00.000000+00:00"
        assert record["updated_at"] == "2025-01-02T10:00:00.000000+00:00"

    async def test_list_query_shape(self, appwrite):
        backend, fakes = appwrite
        await backend.database.get_notes("u1")
        assert fakes.databases.queries[-1] == [
            {"method": "equal", "attribute": "user_id", "values": ["u1"]},
            {"method": "orderDesc", "attribute": "created_at"},
            {"method": "limit", "values": [500]},
        ]

    async def test_get_profile_recovers_from_create_race(self, appwrite):
        backend, fakes = appwrite
        original_create = fakes.databases.create_document

        def _racing_create(database_id, collection_id, document_id, data, permissions=None):
            original_create(database_id, collection_id, document_id, data)
            raise AppwriteException("Document already exists", 409, "document_already_exists")

        fakes.databases.create_document = _racing_create

        profile = await backend.database.get_profile("u1")

        assert profile.id == "u1"
        assert profile.user_id == "u1"


# ── Message feed ────────────────────────────────────────────────────────────


class TestMessageFeed:
    async def test_only_new_messages_are_delivered(self, appwrite):
        backend, _ = appwrite
        await backend.database.create_message("u1", "old")
        received = []

        await backend.database.subscribe_to_messages(received.append)
        await backend.database.create_message("u1", "new")

        assert await wait_until(lambda: received)
        await asyncio.sleep(0.05)
        assert [m.content for m in received] == ["new"]

    async def test_polls_forward_from_cursor(self, appwrite):
        backend, fakes = appwrite
        old = await backend.database.create_message("u1", "old")

        await backend.database.subscribe_to_messages(lambda message: None)
        assert await wait_until(lambda: len(fakes.databases.queries) >= 3)

        poll = fakes.databases.queries[-1]
        assert {"method": "cursorAfter", "values": [old.id]} in poll
        assert {"method": "orderAsc", "attribute": "$createdAt"} in poll

    async def test_unsubscribe_stops_delivery(self, appwrite):
        backend, _ = appwrite
        received = []
        unsubscribe = await backend.database.subscribe_to_messages(received.append)
        await unsubscribe()

        await backend.database.create_message("u1", "late")
        await asyncio.sleep(0.05)

        assert received == []

    async def test_poll_errors_do_not_end_the_feed(self, appwrite):
        backend, fakes = appwrite
        received = []
        await backend.database.subscribe_to_messages(received.append)

        fakes.databases.fail_collections["messages"] = AppwriteException("Connection reset by peer")
        await asyncio.sleep(0.03)
        del fakes.databases.fail_collections["messages"]
        await backend.database.create_message("u1", "after outage")

        assert await wait_until(lambda: received)
        assert received[0].content == "after outage"


# ── Storage ─────────────────────────────────────────────────────────────────


class TestStorage:
    async def test_every_bucket_maps_to_configured_bucket(self, appwrite):
        backend, fakes = appwrite
        uploaded = await backend.storage.upload_file(
            "images", "ignored/path.png", FileUpload(name="cat.png", content=b"x", content_type="image/png")
        )

        [record] = fakes.storage.files["lifehub-files"].values()
        assert record["$id"] == uploaded.path
        assert record["mimeType"] == "image/png"
        assert uploaded.url == (
            "https://appwrite.example.com/v1/storage/buckets/lifehub-files/files/"
            f"{uploaded.path}/view?project=lifehub-project"
        )

    def test_public_url(self, appwrite):
        backend, _ = appwrite
        assert backend.storage.get_public_url("avatars", "file-1") == (
            "https://appwrite.example.com/v1/storage/buckets/lifehub-files/files/file-1/view?project=lifehub-project"
        )

    async def test_delete_missing_file_raises(self, appwrite):
        backend, _ = appwrite
        with pytest.raises(AppwriteException):
            await backend.storage.delete_file("images", "missing")


# ── Construction ────────────────────────────────────────────────────────────


class TestConstruction:
    def test_missing_bucket_id_is_rejected(self):
        with pytest.raises(BackendError, match="APPWRITE_BUCKET_ID"):
            AppwriteBackend(object(), object(), make_settings(APPWRITE_BUCKET_ID=""))

    async def test_factory_builds_sdk_services(self):
        backend = create_appwrite_backend(make_settings())
        assert backend.provider.value == "appwrite"
        assert backend.storage.get_public_url("images", "f1").startswith(
            "https://appwrite.example.com/v1/storage/buckets/lifehub-files/files/f1"
        )
        await backend.close()

    def test_factory_keys_only_the_admin_client(self):
        backend = create_appwrite_backend(make_settings(APPWRITE_API_KEY="server-key"))

        admin_headers = backend.storage._storage.client.get_headers()
        session_headers = backend.auth._session_client.get_headers()

        assert admin_headers["x-appwrite-key"] == "server-key"
        assert "x-appwrite-key" not in session_headers


# ── Real SDK services ───────────────────────────────────────────────────────


def _note_document(note_id: str, user_id: str) -> dict:
    return {
        "$id": note_id,
        "$sequence": "1",
        "$collectionId": "notes",
        "$databaseId": "lifehub-db",
        "$createdAt": APPWRITE_STAMP,
        "$updatedAt": APPWRITE_STAMP,
        "$permissions": [],
        "user_id": user_id,
        "title": "T",
        "content": "C",
        "created_at": "2025-01-01T10:00:00.000000+00:00",
        "updated_at": "2025-01-01T10:00:00.000000+00:00",
    }


class TestSdkResponseModels:
    """Real Databases/Account/Storage services over a stubbed Client.call."""

    @pytest.fixture
    def clients(self):
        admin = Client().set_endpoint("https://appwrite.example.com/v1").set_project(
            "lifehub-project"
        ).set_key("server-key")
        session = Client().set_endpoint("https://appwrite.example.com/v1").set_project(
            "lifehub-project"
        )
        return admin, session

    async def test_list_documents_model(self, clients):
        admin, session = clients
        admin.call = MagicMock(return_value={"total": 1, "documents": [_note_document("n1", "u1")]})
        backend = AppwriteBackend(admin, session, make_settings())

        [note] = await backend.database.get_notes("u1")

        assert (note.id, note.user_id, note.title) == ("n1", "u1", "T")
        method, path = admin.call.call_args.args[:2]
        assert (method, path) == ("get", "/databases/lifehub-db/collections/notes/documents")
        await backend.close()

    async def test_create_document_model(self, clients):
        admin, session = clients
        admin.call = MagicMock(return_value=_note_document("n2", "u1"))
        backend = AppwriteBackend(admin, session, make_settings())

        note = await backend.database.create_note("u1", NoteCreate(title="T", content="C"))

        assert note.id == "n2"
        assert note.created_at == "2025-01-01T10:00:00.000000+00:00"
        await backend.close()

    async def test_sign_in_moves_secret_to_session_client(self, clients):
        admin, session = clients
        admin.call = MagicMock(return_value=appwrite_session_payload("u1", "secret-u1"))

        def _session_call(method, path="", headers=None, params=None, response_type="json"):
            if session.get_headers().get("x-appwrite-session") != "secret-u1":
                raise AppwriteException("User (role: guests) missing scope (account)", 401)
            return appwrite_user_payload("u1", "a@x.com")

        session.call = MagicMock(side_effect=_session_call)
        backend = AppwriteBackend(admin, session, make_settings())

        response = await backend.auth.sign_in("a@x.com", "pw123456")

        assert response.error is None
        assert (response.user.id, response.user.email) == ("u1", "a@x.com")
        assert admin.call.call_args.args[1] == "/account/sessions/email"
        assert session.call.call_args.args[1] == "/account"
        await backend.close()

    async def test_list_files_model(self, clients):
        admin, session = clients
        admin.call = MagicMock(
            return_value={
                "total": 1,
                "files": [appwrite_file_payload("lifehub-files", "f1", "cat.png", "image/png", 3)],
            }
        )
        backend = AppwriteBackend(admin, session, make_settings())

        [uploaded] = await backend.storage.list_files("images")

        assert (uploaded.path, uploaded.name) == ("f1", "cat.png")
        assert uploaded.url.endswith("/buckets/lifehub-files/files/f1/view?project=lifehub-project")
        await backend.close()
