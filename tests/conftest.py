import os

# Configure before the application modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["JWT_SECRET"] = "test-secret-key"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["RETRY_BASE_DELAY"] = "0"
os.environ["RETRY_MAX_DELAY"] = "0"

import fnmatch  # noqa: E402
import json  # noqa: E402
from decimal import Decimal  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from barberhub import models_whatsapp  # noqa: E402, F401
from barberhub import rate_limiter  # noqa: E402
from barberhub.cache import cache  # noqa: E402
from barberhub.auth import create_access_token  # noqa: E402
from barberhub.database import Base, SessionLocal, engine, get_db  # noqa: E402
from barberhub.main import app  # noqa: E402
from barberhub.models import Barbershop, Client, Product, Profile, Service  # noqa: E402
from barberhub.services.evolution_service import EvolutionService  # noqa: E402
from barberhub.services.openai_service import OpenAIService  # noqa: E402
from barberhub.shared.enums import ProfileRole  # noqa: E402

WEEKDAY_HOURS = {"open": "09:00", "close": "18:00"}
OPENING_HOURS = {
    "monday": WEEKDAY_HOURS,
    "tuesday": WEEKDAY_HOURS,
    "wednesday": WEEKDAY_HOURS,
    "thursday": WEEKDAY_HOURS,
    "friday": WEEKDAY_HOURS,
    "saturday": {"open": "09:00", "close": "14:00"},
    "sunday": {"closed": True},
}


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with rate_limiter.cache_lock:
        rate_limiter.memory_cache.clear()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def shop(db):
    barbershop = Barbershop(
        name="Navalha de Ouro",
        slug="navalha-de-ouro",
        address="Rua Augusta, 100",
        opening_hours=OPENING_HOURS,
        slot_interval_minutes=15,
    )
    db.add(barbershop)
    db.commit()
    db.refresh(barbershop)
    return barbershop


def _profile(db, shop, user_id, name, role, rate="0"):
    profile = Profile(
        barbershop_id=shop.id,
        user_id=user_id,
        full_name=name,
        role=role,
        commission_rate=Decimal(rate),
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def admin(db, shop):
    return _profile(db, shop, "user-admin", "Ana Souza", ProfileRole.ADMIN)


@pytest.fixture
def barber(db, shop):
    return _profile(db, shop, "user-barber", "Carlos Lima", ProfileRole.BARBER, rate="40")


@pytest.fixture
def receptionist(db, shop):
    return _profile(db, shop, "user-desk", "Beatriz Melo", ProfileRole.RECEPTIONIST)


@pytest.fixture
def haircut(db, shop):
    service = Service(
        barbershop_id=shop.id, name="Corte", duration_minutes=30, price=Decimal("50.00")
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def beard(db, shop):
    service = Service(
        barbershop_id=shop.id,
        name="Barba",
        duration_minutes=20,
        price=Decimal("30.00"),
        commission_rate=Decimal("50"),
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def pomade(db, shop):
    product = Product(
        barbershop_id=shop.id,
        name="Pomada",
        price=Decimal("40.00"),
        stock_quantity=10,
        commission_rate=Decimal("10"),
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def customer(db, shop):
    person = Client(barbershop_id=shop.id, name="João Pereira", phone="11987654321")
    db.add(person)
    db.commit()
    db.refresh(person)
    return person


def auth_headers(profile: Profile) -> dict:
    return {"Authorization": f"Bearer {create_access_token(profile.user_id)}"}


class FakeEvolution:
    """Scripted Evolution API: (method, path) -> (status, json body)"""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get((request.method, request.url.path), (404, {"error": "not found"}))
        return httpx.Response(status, json=body)

    def service(self) -> EvolutionService:
        return EvolutionService(
            base_url="http://evolution.test",
            api_key="test-key",
            transport=httpx.MockTransport(self),
            max_attempts=2,
            base_delay=0,
            time_budget=None,
        )

    def calls_to(self, prefix: str) -> list:
        return [r for r in self.requests if r.url.path.startswith(prefix)]

    def sent_json(self, prefix: str) -> list:
        return [json.loads(r.content) for r in self.calls_to(prefix)]


class FakeOpenAI:
    """Scripted chat-completions endpoint returning queued assistant messages in order"""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        reply = self.replies.pop(0)
        if isinstance(reply, int):
            return httpx.Response(reply, json={"error": {"message": "scripted failure"}})
        return httpx.Response(200, json={"choices": [{"message": reply}]})

    def service(self) -> OpenAIService:
        return OpenAIService(
            api_key="sk-test",
            api_url="http://openai.test/v1/chat/completions",
            transport=httpx.MockTransport(self),
            max_attempts=2,
            base_delay=0,
        )


def text_reply(content: str) -> dict:
    return {"role": "assistant", "content": content}


def tool_reply(name: str, arguments: dict, call_id: str = "call_1") -> dict:
    return {
        "role": "assistant",
        "content": None,
        "tool_calls": [
            {"id": call_id, "type": "function", "function": {"name": name, "arguments": json.dumps(arguments)}}
        ],
    }


class FakeRedis:
    """Dict-backed stand-in for the few redis-py calls the cache makes"""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    def keys(self, pattern):
        return [key for key in self.store if fnmatch.fnmatchcase(key, pattern)]


@pytest.fixture
def redis_cache(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(cache, "enabled", True)
    monkeypatch.setattr(cache, "redis_client", fake)
    return fake
