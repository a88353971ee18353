import asyncio
import os
import socket
import sys
import tempfile
from pathlib import Path
from typing import Dict, List, Set

import httpx
import pytest


BACKEND = Path(__file__).resolve().parents[1]

# Prefer repo sources over any installed package.
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))

# Settings are read once at import time; point the app at a throwaway database.
_DB_DIR = tempfile.mkdtemp(prefix="yardwatch-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/app.db"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["ALERT_SIGNING_SECRET"] = "test-salt"
os.environ["REDIS_URL"] = ""
os.environ["ADMIN_API_KEY"] = "test-admin-key"

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from yardwatch.database import Base  # noqa: E402
from yardwatch.errors import UpstreamFailure  # noqa: E402
from yardwatch.scrapers.base import InventorySource, Yard  # noqa: E402
from yardwatch.services.aggregator import InventoryAggregator  # noqa: E402
from yardwatch.services.alert_service import AlertService  # noqa: E402
from yardwatch.services.push import PushDelivery, VapidKeyManager  # noqa: E402
from yardwatch.services.store import KeyValueStore, SavedSearchStore  # noqa: E402
import yardwatch.models  # noqa: E402,F401


TEST_YARDS = [
    Yard("1020", "BOISE", "jalopy", "http://jalopy.test"),
    Yard("1022", "NAMPA", "jalopy", "http://jalopy.test"),
    Yard("trusty", "TRUSTY'S", "trusty", "http://trusty.test"),
]

PUSH_ENDPOINT = "https://push.example.test/send/abc123"


def vehicle(yard: Yard, year: int, make: str, model: str, row: str) -> Dict:
    return {"yardId": yard.id, "yardName": yard.name, "year": year, "make": make, "model": model, "row": row}


def alert_payload(**overrides) -> Dict:
    payload = {
        "make": "TOYOTA",
        "model": "PRIUS",
        "minYear": 2008,
        "maxYear": 2012,
        "subscription": {
            "endpoint": PUSH_ENDPOINT,
            "keys": {"auth": "auth-secret", "p256dh": "p256dh-key"},
        },
    }
    payload.update(overrides)
    return payload


class FakeInventory:
    """In-memory stand-in for every yard site; tests mutate ``rows`` between sweeps"""

    def __init__(self):
        self.rows: Dict[str, List[Dict]] = {}
        self.makes: Dict[str, List[str]] = {}
        self.models: Dict[str, Dict[str, List[str]]] = {}
        self.failing: Set[str] = set()
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def factory(self, yard: Yard, client: httpx.AsyncClient) -> InventorySource:
        return FakeSource(yard, client, self)

    async def enter(self, kind: str, yard: Yard):
        self.calls.append((kind, yard.id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if yard.id in self.failing:
                raise UpstreamFailure(f"{yard.name} is down")
        finally:
            self.in_flight -= 1


class FakeSource(InventorySource):
    kind = "fake"

    def __init__(self, yard: Yard, client: httpx.AsyncClient, inventory: FakeInventory):
        super().__init__(yard, client)
        self.inventory = inventory

    async def fetch_inventory(self, make, model=""):
        await self.inventory.enter("inventory", self.yard)
        return [
            dict(r) for r in self.inventory.rows.get(self.yard.id, [])
            if r["make"].upper() == make.upper() and (not model or r["model"].upper() == model.upper())
        ]

    async def fetch_makes(self):
        await self.inventory.enter("makes", self.yard)
        return list(self.inventory.makes.get(self.yard.id, []))

    async def fetch_models(self, make):
        await self.inventory.enter("models", self.yard)
        return list(self.inventory.models.get(self.yard.id, {}).get(make.upper(), []))


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    if os.getenv("LIVE") == "1":
        return

    real_connect = socket.socket.connect

    def guarded_connect(sock, address):
        host = address[0] if isinstance(address, tuple) else address
        if host not in ("127.0.0.1", "localhost"):
            raise RuntimeError("Network access blocked in tests")
        return real_connect(sock, address)

    monkeypatch.setattr(socket.socket, "connect", guarded_connect)


@pytest.fixture
def inventory():
    inv = FakeInventory()
    boise, nampa, trusty = TEST_YARDS
    inv.rows = {
        "1020": [
            vehicle(boise, 2006, "TOYOTA", "PRIUS", "3"),
            vehicle(boise, 2009, "TOYOTA", "PRIUS", "11"),
            vehicle(boise, 2011, "HONDA", "CIVIC", "5"),
        ],
        "1022": [vehicle(nampa, 2012, "TOYOTA", "PRIUS", "8")],
        "trusty": [vehicle(trusty, 2004, "TOYOTA", "CAMRY", "21")],
    }
    inv.makes = {"1020": ["TOYOTA", "HONDA"], "1022": ["TOYOTA"], "trusty": ["FORD", "TOYOTA"]}
    inv.models = {
        "1020": {"TOYOTA": ["PRIUS", "COROLLA"]},
        "1022": {"TOYOTA": ["PRIUS"]},
        "trusty": {"TOYOTA": ["CAMRY", "PRIUS"]},
    }
    return inv


@pytest.fixture
def aggregator(inventory):
    return InventoryAggregator(
        yards=TEST_YARDS,
        source_factory=inventory.factory,
        pool_size=2,
        cache_ttl=0,
        lookup_cache_ttl=0,
    )


@pytest.fixture
async def kv(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/kv.db", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield KeyValueStore(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()


@pytest.fixture
def store(kv):
    return SavedSearchStore(kv)


@pytest.fixture
def key_manager(kv):
    return VapidKeyManager(kv)


@pytest.fixture
def push_requests():
    return []


@pytest.fixture
def push_status():
    """Status code the fake push service answers with; tests may change it"""
    return {"code": 201}


@pytest.fixture
def delivery(key_manager, push_requests, push_status):
    def handler(request: httpx.Request) -> httpx.Response:
        push_requests.append(request)
        return httpx.Response(push_status["code"])

    return PushDelivery(key_manager, transport=httpx.MockTransport(handler))


@pytest.fixture
def service(store, aggregator, delivery, key_manager):
    return AlertService(store, aggregator, delivery, key_manager=key_manager)
