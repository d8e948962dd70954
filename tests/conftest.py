import asyncio
import os
import re
from types import SimpleNamespace

import pytest

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")

from supabase import AuthError  # noqa: E402

from homefinder.config import Settings  # noqa: E402
from homefinder.errors import ProfileFetchError, ProfileNotFound, ProfileWriteError  # noqa: E402
from homefinder.session.manager import SessionManager  # noqa: E402


class FakeAuthApiError(AuthError):
    def __init__(self, message: str, status: int = 400, code: str | None = None):
        Exception.__init__(self, message)
        self.message = message
        self.status = status
        self.code = code
        self.name = "AuthApiError"


def make_user(user_id: str, email: str | None = None):
    return SimpleNamespace(id=user_id, email=email, created_at=None, last_sign_in_at=None)


def make_session(user_id: str, email: str | None = None):
    return SimpleNamespace(user=make_user(user_id, email), expires_at=1_900_000_000)


class FakeSubscription:
    def __init__(self, auth, callback):
        self.auth = auth
        self.callback = callback

    def unsubscribe(self):
        if self.callback in self.auth.callbacks:
            self.auth.callbacks.remove(self.callback)


class FakeAuth:
    """Stands in for the Supabase async auth client, emitting events the way it does."""

    def __init__(self, profiles=None):
        self.profiles = profiles
        self.callbacks = []
        self.current = None
        self.accounts: dict[str, tuple[str, object]] = {}
        self.get_session_error = None
        self.sign_out_error = None
        self.oauth_error = None
        self.oauth_requests = []
        self.oauth_identities: dict[str, object] = {}
        self.trigger_delay = 0
        self.sign_out_calls = 0

    def on_auth_state_change(self, callback):
        self.callbacks.append(callback)
        return FakeSubscription(self, callback)

    def emit(self, event, session):
        for callback in list(self.callbacks):
            callback(event, session)

    async def get_session(self):
        if self.get_session_error:
            raise self.get_session_error
        return self.current

    async def sign_in_with_password(self, credentials):
        account = self.accounts.get(credentials["email"])
        if account is None or account[0] != credentials["password"]:
            raise FakeAuthApiError("Invalid login credentials", 400, "invalid_credentials")
        self.current = SimpleNamespace(user=account[1], expires_at=1_900_000_000)
        self.emit("SIGNED_IN", self.current)
        return SimpleNamespace(user=account[1], session=self.current)

    async def sign_up(self, credentials):
        email = credentials["email"]
        if email in self.accounts:
            raise FakeAuthApiError("User already registered", 422, "user_already_exists")
        if len(credentials["password"]) < 6:
            raise FakeAuthApiError("Password should be at least 6 characters", 422, "weak_password")
        user = make_user(f"user-{len(self.accounts) + 1}", email)
        user.user_metadata = credentials["options"]["data"]
        self.accounts[email] = (credentials["password"], user)
        if self.profiles is not None:
            # Database trigger creating the default buyer profile
            self.profiles.provision_later(user.id, email, after_attempts=self.trigger_delay)
        return SimpleNamespace(user=user, session=None)

    async def sign_out(self):
        self.sign_out_calls += 1
        if self.sign_out_error:
            raise self.sign_out_error
        self.current = None
        self.emit("SIGNED_OUT", None)

    async def sign_in_with_oauth(self, credentials):
        if self.oauth_error:
            raise self.oauth_error
        self.oauth_requests.append(credentials)
        redirect_to = credentials["options"]["redirect_to"]
        return SimpleNamespace(
            provider=credentials["provider"],
            url=f"https://auth.example.com/authorize?provider=google&redirect_to={redirect_to}",
        )

    async def exchange_code_for_session(self, params):
        user = self.oauth_identities.get(params["auth_code"])
        if user is None:
            raise FakeAuthApiError("invalid flow state, no valid flow state found", 404, "flow_state_not_found")
        self.current = SimpleNamespace(user=user, expires_at=1_900_000_000)
        self.emit("SIGNED_IN", self.current)
        return SimpleNamespace(user=user, session=self.current)


class FakeProfiles:
    """In-memory ``users``/``agents`` tables with failure and latency knobs."""

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.agents: dict[str, dict] = {}
        self.pending: dict[str, list] = {}
        self.fetch_error = None
        self.insert_error = None
        self.agent_insert_error = None
        self.agent_fetch_error = None
        self.agent_hang = False
        self.insert_hang = False
        self.gates: dict[str, asyncio.Event] = {}
        self.hang = False
        self.fetch_calls = 0
        self.update_attempts = 0

    def provision_later(self, user_id, email, after_attempts=0):
        if after_attempts <= 0:
            self.users[user_id] = {"id": user_id, "email": email, "user_type": "buyer"}
        else:
            self.pending[user_id] = [email, after_attempts]

    async def get_profile(self, user_id):
        self.fetch_calls += 1
        gate = self.gates.get(user_id)
        if gate is not None:
            await gate.wait()
        if self.hang:
            await asyncio.sleep(3600)
        if self.fetch_error:
            raise self.fetch_error
        if user_id not in self.users:
            raise ProfileNotFound("JSON object requested, multiple (or no) rows returned", code="PGRST116")
        return dict(self.users[user_id])

    async def create_profile(self, user_id, email, user_type="buyer"):
        if self.insert_hang:
            await asyncio.sleep(3600)
        if self.insert_error:
            raise self.insert_error
        self.users[user_id] = {"id": user_id, "email": email, "user_type": user_type}
        return dict(self.users[user_id])

    async def set_user_type(self, user_id, user_type):
        self.update_attempts += 1
        if user_id in self.pending:
            self.pending[user_id][1] -= 1
            if self.pending[user_id][1] > 0:
                return None
            email, _ = self.pending.pop(user_id)
            self.users[user_id] = {"id": user_id, "email": email, "user_type": "buyer"}
        if user_id not in self.users:
            return None
        self.users[user_id]["user_type"] = user_type
        return dict(self.users[user_id])

    async def get_agent(self, user_id):
        if self.agent_hang:
            await asyncio.sleep(3600)
        if self.agent_fetch_error:
            raise self.agent_fetch_error
        if user_id not in self.agents:
            raise ProfileNotFound("No row found", code="PGRST116")
        agent = self.agents[user_id]
        return {"name": agent["name"], "phone": agent["phone"], "whatsapp": agent["whatsapp"]}

    async def create_agent(self, user_id, name, phone, whatsapp=None):
        if self.agent_insert_error:
            raise self.agent_insert_error
        self.agents[user_id] = {"user_id": user_id, "name": name, "phone": phone, "whatsapp": whatsapp or phone}
        return dict(self.agents[user_id])

    async def update_agent(self, user_id, name, phone):
        if user_id not in self.agents:
            return None
        self.agents[user_id].update({"name": name, "phone": phone, "whatsapp": phone})
        return dict(self.agents[user_id])


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Synchronous PostgREST builder over in-memory rows; records every call."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.filters = []
        self.action = "select"
        self.payload = None
        self.order_by = None
        self.window = None
        db.calls.append((table, "table", ()))

    def _record(self, name, *args):
        self.db.calls.append((self.table, name, args))
        return self

    def select(self, *columns):
        return self._record("select", *columns)

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self._record("insert", payload)

    def delete(self):
        self.action = "delete"
        return self._record("delete")

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self._record("eq", column, value)

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self._record("neq", column, value)

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row[column] >= value)
        return self._record("gte", column, value)

    def lte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row[column] <= value)
        return self._record("lte", column, value)

    def ilike(self, column, pattern):
        regex = re.compile("^" + re.escape(pattern).replace("%", ".*") + "$", re.IGNORECASE)
        self.filters.append(lambda row: bool(regex.match(str(row.get(column, "")))))
        return self._record("ilike", column, pattern)

    def in_(self, column, values):
        self.filters.append(lambda row: row.get(column) in values)
        return self._record("in_", column, values)

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self._record("order", column, desc)

    def limit(self, size):
        self.window = (0, size)
        return self._record("limit", size)

    def range(self, start, end):
        self.window = (start, end - start + 1)
        return self._record("range", start, end)

    def execute(self):
        rows = self.db.tables.setdefault(self.table, [])
        if self.action == "insert":
            row = {"id": f"{self.table}-{len(rows) + 1}", **self.payload}
            rows.append(row)
            return FakeResponse([row])
        matched = [row for row in rows if all(check(row) for check in self.filters)]
        if self.action == "delete":
            self.db.tables[self.table] = [row for row in rows if row not in matched]
            return FakeResponse(matched)
        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda row: row.get(column) or 0, reverse=desc)
        if self.window:
            start, size = self.window
            matched = matched[start:start + size]
        return FakeResponse([dict(row) for row in matched])


class FakeSupabase:
    def __init__(self, tables=None):
        self.tables = tables or {}
        self.calls = []

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def settings():
    return Settings(
        SUPABASE_URL="http://localhost:54321",
        SUPABASE_SERVICE_ROLE_KEY="service-role-key",
        SITE_URL="https://homefinder.example",
        PROFILE_FETCH_TIMEOUT=0.05,
        AGENT_ROLE_RETRY_ATTEMPTS=4,
        AGENT_ROLE_RETRY_DELAY=0.5,
    )


@pytest.fixture
def profiles():
    return FakeProfiles()


@pytest.fixture
def auth(profiles):
    return FakeAuth(profiles)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def manager(auth, profiles, settings, sleeps):
    async def fake_sleep(delay):
        sleeps.append(delay)
        await asyncio.sleep(0)

    return SessionManager(auth, profiles, settings, sleep=fake_sleep)


@pytest.fixture
def session_factory():
    return make_session


@pytest.fixture
def auth_error():
    return FakeAuthApiError


@pytest.fixture
def fetch_error():
    return ProfileFetchError("permission denied for table users", code="42501")


@pytest.fixture
def write_error():
    return ProfileWriteError("duplicate key value violates unique constraint", code="23505")


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def api_app(auth, profiles, settings, fake_supabase):
    """App wired to the fakes: every new visitor session gets a manager over ``auth``/``profiles``."""
    from homefinder.main import create_app
    from homefinder.session.registry import SessionRegistry
    from homefinder.supabase_client import get_supabase_client

    async def fast_sleep(delay):
        await asyncio.sleep(0)

    async def factory():
        return SessionManager(auth, profiles, settings, sleep=fast_sleep)

    app = create_app(registry=SessionRegistry(factory))
    app.dependency_overrides[get_supabase_client] = lambda: fake_supabase
    return app


@pytest.fixture
def api(api_app):
    from fastapi.testclient import TestClient

    with TestClient(api_app) as client:
        yield client


@pytest.fixture
def user_factory():
    return make_user
