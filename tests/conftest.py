import os
from itertools import count

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.database import Base, build_engine  # noqa: E402
from app.errors import PlatformError  # noqa: E402
from app.services.echo_registry import EchoRegistry  # noqa: E402
from app.services.locks import UserLockRegistry  # noqa: E402
from app.services.message_router import MessageRouter  # noqa: E402
from app.services.outbound_service import BotSender  # noqa: E402

import app.models  # noqa: E402,F401


class FakeWhatsAppClient:
    """Records sends and hands out sequential platform ids."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail_for: set[str] = set()
        self.sessions: set[str] = {"default"}
        self._ids = count(1)
        self.on_send = None

    async def send_text(self, session_id, to, text):
        if to in self.fail_for:
            raise PlatformError("bridge down", status_code=503)
        if self.on_send is not None:
            self.on_send(to, text)
        message_id = f"BOT{next(self._ids)}"
        self.sent.append({"session_id": session_id, "to": to, "text": text, "id": message_id})
        return message_id

    async def get_session(self, session_id):
        return {"id": session_id} if session_id in self.sessions else None

    async def aclose(self):
        return None


@pytest.fixture
def engine():
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_client():
    return FakeWhatsAppClient()


@pytest.fixture
def echoes():
    return EchoRegistry(ttl_seconds=60)


@pytest.fixture
def sender(fake_client, echoes):
    return BotSender(fake_client, echoes, randomize=lambda text: f"​{text}‌")


@pytest.fixture
def router(session_factory, sender, echoes):
    return MessageRouter(session_factory, sender, echoes, UserLockRegistry())
