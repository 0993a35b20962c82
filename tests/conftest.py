import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import ratestuff.models  # noqa: F401
from ratestuff.config import get_settings
from ratestuff.database import Base, get_db
from ratestuff.main import app
from ratestuff.models.brand_account import BrandAccount
from ratestuff.routers.brand import request_code_limiter, verify_code_limiter
from ratestuff.services.email_service import EmailDeliveryError, EmailSender, get_email_sender
from ratestuff.utils.admin_guard import AdminAllowList, AdminGuard
from ratestuff.utils.security import create_session_token, get_admin_guard

ADMIN_EMAIL = "admin@ratestuff.net"


class FakeSender(EmailSender):
    """记录发送内容，fail=True 时模拟投递失败"""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, to_email, subject, html_content):
        if self.fail:
            raise EmailDeliveryError("SMTPServerDisconnected")
        self.sent.append({"to": to_email, "subject": subject, "html": html_content})
        return {"success": True}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "jwt_blacklist_enabled", False)
    monkeypatch.setattr(settings, "store_timeout_seconds", 5.0)


@pytest.fixture
async def engine(anyio_backend):
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(engine):
    session_maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def admin_guard():
    return AdminGuard(AdminAllowList([ADMIN_EMAIL]))


@pytest.fixture
async def client(db_session, sender, admin_guard):
    async def _get_db():
        yield db_session

    async def _no_limit():
        return None

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_email_sender] = lambda: sender
    app.dependency_overrides[get_admin_guard] = lambda: admin_guard
    app.dependency_overrides[request_code_limiter] = _no_limit
    app.dependency_overrides[verify_code_limiter] = _no_limit
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = create_session_token("admin-1", ADMIN_EMAIL)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def make_brand(db_session):
    async def _make(email="brand@acme.com", slug=None, active=True):
        brand = BrandAccount(
            email=email,
            slug=slug or email.split("@")[0],
            display_name="Acme",
            active=active,
        )
        db_session.add(brand)
        await db_session.commit()
        await db_session.refresh(brand)
        return brand

    return _make
