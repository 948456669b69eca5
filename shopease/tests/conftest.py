"""
Shared fixtures: a fresh app over an in-memory SQLite database per test.
"""
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shopease.config import Settings
from shopease.main import create_app
from shopease.auth.mailer import EmailSender, get_email_sender

PREFIX = "/shopease/auth"
PASSWORD = "secret1"


class RecordingEmailSender(EmailSender):
    """Keeps reset emails in memory instead of sending them."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.sent: List[Dict[str, str]] = []

    def send_reset_password_email(self, to_email: str, name: str, token: str) -> bool:
        self.sent.append({"to": to_email, "name": name, "token": token})
        return True


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        jwt_secret_key="test-secret-key",
        bcrypt_rounds=4,
        api_prefix=PREFIX,
    )


@pytest.fixture
def mailbox(settings) -> RecordingEmailSender:
    return RecordingEmailSender(settings)


@pytest_asyncio.fixture
async def app(settings, mailbox):
    app = create_app(settings)
    await app.state.database.create_all()
    app.dependency_overrides[get_email_sender] = lambda: mailbox
    yield app
    await app.state.database.dispose()


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        yield ac


@pytest_asyncio.fixture
async def db(app):
    async with app.state.database.session_factory() as session:
        yield session


def user_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "username": "alice",
        "email": "alice@x.com",
        "password": PASSWORD,
        "firstname": "Alice",
        "lastname": "Smith",
        "phone": "+15551234567",
    }
    payload.update(overrides)
    return payload


async def register(client: AsyncClient, **overrides: Any):
    return await client.post(f"{PREFIX}/register", json=user_payload(**overrides))


async def login_token(client: AsyncClient, email: str = "alice@x.com", password: str = PASSWORD) -> str:
    response = await client.post(f"{PREFIX}/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]["token"]


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def alice_token(client) -> str:
    response = await register(client)
    assert response.status_code == 201, response.text
    return await login_token(client)
