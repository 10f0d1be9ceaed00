# backend/tests/conftest.py
import httpx
import pytest
import pytest_asyncio
from sqlalchemy import create_engine, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from app.models.base import Base
from app.models.user import User
from app.services.auth_service import AuthService
from app.services.token_service import TokenService
from app.services.wx_service import AccessTokenCache, WxService

WX_BASE = "https://api.weixin.qq.com"


class FakeClock:
    """可手动推进的单调时钟，替代 time.monotonic。"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeWxPlatform:
    """
    模拟微信服务端，作为 httpx.MockTransport 的 handler。

    每个接口的响应可以是 dict（返回 200 JSON）、httpx.Response，
    或接收 request 的可调用对象（可用于抛出网络异常或按调用次数返回不同结果）。
    """

    def __init__(self):
        self.calls = {"token": 0, "session": 0, "phone": 0}
        self.requests = {"token": [], "session": [], "phone": []}
        self.token_response = lambda request: {
            "access_token": f"AT{self.calls['token']}",
            "expires_in": 7200,
        }
        self.session_response = {"openid": "o1", "session_key": "sk1"}
        self.phone_response = {
            "errcode": 0,
            "errmsg": "ok",
            "phone_info": {
                "phoneNumber": "13800000000",
                "purePhoneNumber": "13800000000",
                "countryCode": "86",
                "watermark": {"timestamp": 1700000000, "appid": "wxapp"},
            },
        }

    def _route(self, path: str):
        if path == "/cgi-bin/token":
            return "token", self.token_response
        if path == "/sns/jscode2session":
            return "session", self.session_response
        if path == "/wxa/business/getuserphonenumber":
            return "phone", self.phone_response
        raise AssertionError(f"unexpected path {path}")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        name, body = self._route(request.url.path)
        self.calls[name] += 1
        self.requests[name].append(request)
        if callable(body):
            body = body(request)
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wx_platform():
    return FakeWxPlatform()


@pytest_asyncio.fixture
async def wx(wx_platform, clock):
    client = httpx.AsyncClient(transport=httpx.MockTransport(wx_platform), base_url=WX_BASE)
    service = WxService(
        app_id="wxapp",
        app_secret="wxsecret",
        retry_attempts=3,
        expiry_margin=300,
        backoff=0,
        client=client,
        token_cache=AccessTokenCache(clock=clock),
    )
    yield service
    await service.close()


@pytest.fixture
def tokens():
    return TokenService(secret="test-secret", algorithm="HS256", expire_seconds=7200)


@pytest.fixture
def auth(wx, tokens):
    return AuthService(wx=wx, tokens=tokens)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test.db"


@pytest.fixture
def sync_engine(db_path):
    """同步引擎：建表、准备数据、断言行数。"""
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest_asyncio.fixture
async def session_factory(sync_engine, db_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


def insert_user(sync_engine, **fields) -> int:
    fields.setdefault("nickname", f"用户{fields['phone'][-4:]}")
    with Session(sync_engine) as session:
        user = User(**fields)
        session.add(user)
        session.commit()
        return user.id


def count_users(sync_engine, phone: str | None = None) -> int:
    stmt = select(func.count()).select_from(User)
    if phone is not None:
        stmt = stmt.where(User.phone == phone)
    with Session(sync_engine) as session:
        return session.execute(stmt).scalar_one()


def load_user(sync_engine, user_id: int) -> User:
    with Session(sync_engine, expire_on_commit=False) as session:
        return session.get(User, user_id)
