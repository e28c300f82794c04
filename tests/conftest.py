import os
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_manuscripts.db")
os.environ.setdefault("APP_BASE_URL", "https://desk.example.com")
os.environ.setdefault("NOTIFY_TRANSPORT", "dummy")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from manuscript_desk import models  # noqa: F401
from manuscript_desk.database import Base, get_db
from manuscript_desk.deps import get_notifier, get_rewriter
from manuscript_desk.main import app
from manuscript_desk.models import Client, Template
from manuscript_desk.services.notifications import NotificationGateway, SendResult
from manuscript_desk.services.rewrite import RewriteGateway


class FakeNotifier(NotificationGateway):
    name = "fake"

    def __init__(self, fail_phones=()):
        super().__init__(send_delay=0)
        self.sent: list[dict] = []
        self.fail_phones = set(fail_phones)

    async def _deliver(self, phone, kind, text, variables, confirm_url) -> SendResult:
        self.sent.append({"phone": phone, "kind": kind, "text": text, "confirm_url": confirm_url})
        if phone in self.fail_phones:
            return SendResult(success=False, error="K105: rejected")
        return SendResult(success=True, message_id=f"fake-{len(self.sent)}")


class FakeRewriter(RewriteGateway):
    def __init__(self, reply: str = "[제목]\n새 제목\n\n[본문]\n새 본문"):
        self.reply = reply
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.reply


@pytest_asyncio.fixture()
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'desk.db'}", poolclass=NullPool)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture()
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture()
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def rewriter():
    return FakeRewriter()


@pytest.fixture()
def make_client(db):
    counter = {"n": 0}

    async def _make(**overrides) -> Client:
        counter["n"] += 1
        data = {
            "name": f"Client {counter['n']}",
            "region": "Gangnam",
            "business_type": "수학학원",
            "main_service": "중등 수학",
            "differentiator": "소수정예",
            "contact": f"0101234{counter['n']:04d}",
            "is_active": True,
        }
        data.update(overrides)
        client = Client(**data)
        db.add(client)
        await db.commit()
        return client

    return _make


@pytest.fixture()
def make_template(db):
    async def _make(**overrides) -> Template:
        data = {
            "business_type": "수학학원",
            "month": 1,
            "week": 1,
            "topic": "겨울방학",
            "title": "{{region}} {{business_name}} 겨울방학 특강",
            "content": "{{region}}에 있는 {{business_name}}입니다.",
            "send_count": 0,
            "approve_count": 0,
            "is_active": True,
        }
        data.update(overrides)
        template = Template(**data)
        db.add(template)
        await db.commit()
        return template

    return _make


@pytest_asyncio.fixture()
async def api(session_maker, notifier, rewriter):
    async def get_db_override():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_rewriter] = lambda: rewriter
    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
