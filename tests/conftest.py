"""Pytest fixtures for testing"""

import asyncio
import dataclasses
import itertools
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from budget_engine.api.main import create_app
from budget_engine.domain.exceptions import RecordNotFoundError, RecordStoreError, ScenarioNotFoundError
from budget_engine.domain.models import (
    RECORD_TYPES,
    ConversionItem,
    GoalSavingsAllocation,
    Scenario,
    ScenarioContext,
)
from budget_engine.engine.cache import QueryCache
from budget_engine.engine.scenario import ScenarioEngine
from budget_engine.infrastructure.database.models import Base
from budget_engine.infrastructure.database.repositories import SqlRecordStore

USER_ID = "user-1"
SCENARIO_ID = "scn-1"
FIXED_NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)

# (from, to) -> factor applied by the fake gateway
DEFAULT_RATES = {
    ("EUR", "USD"): 1.084,
    ("GBP", "USD"): 1.25,
    ("USD", "EUR"): 0.92,
    ("GBP", "EUR"): 1.15,
    ("EUR", "GBP"): 0.87,
    ("USD", "GBP"): 0.8,
}

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    """Monotonic clock the cache reads; tests move it forward by hand"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRecordStore:
    """In-memory record store with failure and latency injection"""

    def __init__(self):
        self.records: Dict[str, List[Any]] = {entity_type: [] for entity_type in RECORD_TYPES}
        self.allocations: List[GoalSavingsAllocation] = []
        self.scenarios: List[Scenario] = []
        self.list_calls: Dict[str, int] = defaultdict(int)
        self.fail_reads: set = set()
        self.fail_writes = False
        self.read_gate: Optional[asyncio.Event] = None
        self.write_gate: Optional[asyncio.Event] = None
        self._ids = itertools.count(1)

    def seed(self, entity_type: str, **fields):
        values = {
            "id": f"{entity_type}-{next(self._ids)}",
            "user_id": USER_ID,
            "scenario_id": SCENARIO_ID,
            "created_at": FIXED_NOW,
            "currency": "USD",
        }
        values.update(fields)
        record = RECORD_TYPES[entity_type](**values)
        self.records[entity_type].insert(0, record)
        return record

    def seed_allocation(self, goal_id: str, savings_id: str, amount_used: float, currency: str = "USD"):
        allocation = GoalSavingsAllocation(
            id=f"alloc-{next(self._ids)}",
            goal_id=goal_id,
            savings_id=savings_id,
            amount_used=amount_used,
            currency=currency,
            created_at=FIXED_NOW,
        )
        self.allocations.insert(0, allocation)
        return allocation

    def seed_scenario(self, scenario_id: str = SCENARIO_ID, base_currency: Optional[str] = "USD", user_id: str = USER_ID):
        scenario = Scenario(
            id=scenario_id,
            user_id=user_id,
            slug=scenario_id,
            name=None,
            base_currency=base_currency,
            created_at=FIXED_NOW,
        )
        self.scenarios.append(scenario)
        return scenario

    async def list(self, entity_type: str, user_id: str, scenario_id: str):
        self.list_calls[entity_type] += 1
        if self.read_gate is not None:
            await self.read_gate.wait()
        if entity_type in self.fail_reads:
            raise RecordStoreError(f"{entity_type} read failed")
        return [r for r in self.records[entity_type] if r.user_id == user_id and r.scenario_id == scenario_id]

    async def create(self, entity_type: str, payload: Dict[str, Any]):
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.fail_writes:
            raise RecordStoreError("write rejected")
        record = RECORD_TYPES[entity_type](id=f"srv-{next(self._ids)}", created_at=FIXED_NOW, **payload)
        self.records[entity_type].insert(0, record)
        return record

    async def update(self, entity_type: str, user_id: str, scenario_id: str, record_id: str, payload: Dict[str, Any]):
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.fail_writes:
            raise RecordStoreError("write rejected")
        records = self.records[entity_type]
        for index, record in enumerate(records):
            if record.id == record_id and record.user_id == user_id and record.scenario_id == scenario_id:
                records[index] = dataclasses.replace(record, **payload)
                return records[index]
        raise RecordNotFoundError(f"{entity_type} {record_id} not found")

    async def list_allocations(self, user_id: str, scenario_id: str):
        self.list_calls["allocations"] += 1
        return list(self.allocations)

    async def list_scenarios(self, user_id: str):
        return [s for s in self.scenarios if s.user_id == user_id]

    async def get_scenario(self, user_id: str, scenario_id: str):
        return next((s for s in self.scenarios if s.id == scenario_id and s.user_id == user_id), None)

    async def set_base_currency(self, user_id: str, scenario_id: str, base_currency: str):
        scenario = await self.get_scenario(user_id, scenario_id)
        if scenario is None:
            raise ScenarioNotFoundError(f"Scenario {scenario_id} not found")
        updated = dataclasses.replace(scenario, base_currency=base_currency)
        self.scenarios[self.scenarios.index(scenario)] = updated
        return updated


class FakeGateway:
    """Conversion gateway answering from a fixed rate table"""

    def __init__(self, rates: Optional[Dict] = None):
        self.rates = dict(rates or DEFAULT_RATES)
        self.calls: List[tuple] = []
        self.fail = False
        self.response: Optional[List[Dict[str, Any]]] = None
        self.gate: Optional[asyncio.Event] = None

    async def convert_bulk(self, items: Sequence[ConversionItem], target_currency: str):
        self.calls.append(([(i.id, i.amount, i.currency) for i in items], target_currency))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            return None
        if self.response is not None:
            return self.response
        return [
            {"converted_amount": item.amount * self.rates[(item.currency, target_currency)]}
            if (item.currency, target_currency) in self.rates
            else {"converted_amount": None}
            for item in items
        ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> QueryCache:
    return QueryCache(clock=clock, stale_seconds=120, gc_seconds=600)


@pytest.fixture
def store() -> FakeRecordStore:
    store = FakeRecordStore()
    store.seed_scenario()
    return store


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def context() -> ScenarioContext:
    return ScenarioContext(id=SCENARIO_ID, user_id=USER_ID, base_currency="USD")


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def scenario_engine(context, store, gateway, cache) -> ScenarioEngine:
    return ScenarioEngine(context, store, gateway, cache=cache, clock=lambda: FIXED_NOW)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sql_store(db: Session) -> SqlRecordStore:
    return SqlRecordStore(TestingSessionLocal)


@pytest.fixture
def client(sql_store: SqlRecordStore, gateway: FakeGateway) -> Generator[TestClient, None, None]:
    """Create FastAPI test client backed by the test database and a fake gateway"""
    app = create_app(store=sql_store, gateway=gateway)
    with TestClient(app) as test_client:
        yield test_client
