"""
Shared fixtures: in-memory database, fake marketplace client, fake scheduler.
"""
import asyncio
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CBG_REQUEST_DELAY_MS", "0")

from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from apscheduler.jobstores.base import JobLookupError
from sqlalchemy import event, select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cbgwatch.database import configure_sqlite, init_db
from cbgwatch.models import Alert, Item, PriceSnapshot, Setting, WatchlistEntry
from cbgwatch.scrapers.base import BaseMarketClient, MarketplaceError
from cbgwatch.services.alert_engine import AlertEngine
from cbgwatch.services.price_checker import PriceChecker
from cbgwatch.services.scheduler import PriceMonitor
from cbgwatch.services.watchlist_scanner import WatchlistScanner


def make_item(item_id: str, price: int, name: Optional[str] = None, status: str = "normal") -> Dict[str, Any]:
    return {
        "id": item_id,
        "name": name or f"Item {item_id}",
        "image_url": None,
        "capture_urls": [],
        "serial_num": None,
        "category": "hero_skin",
        "rarity": "gold",
        "star_grid": [None, None, None, None],
        "current_price": price,
        "seller_name": None,
        "status": status,
        "collect_count": 3,
        "game_ordersn": None,
    }


class FakeMarketClient(BaseMarketClient):
    """Serves items from a dict; ids in `failing` raise MarketplaceError."""

    def __init__(self, items: Optional[Dict[str, Dict[str, Any]]] = None):
        self.items = items or {}
        self.failing: set = set()
        self.calls: List[str] = []
        self.search_calls: List[Dict[str, Any]] = []
        self.search_error: Optional[Exception] = None
        self.details: Dict[str, Dict[str, Any]] = {}
        self.listings: Dict[str, List[Dict[str, Any]]] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_item_by_id(self, item_id: str):
        self.calls.append(item_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if item_id in self.failing:
                raise MarketplaceError(f"upstream error for {item_id}")
            item = self.items.get(item_id)
            return dict(item) if item else None
        finally:
            self.in_flight -= 1

    async def get_items_by_category(self, kind_id, page=1, count=15, keyword=None, price_min=None, price_max=None):
        self.search_calls.append({
            "kind_id": kind_id, "page": page, "count": count,
            "keyword": keyword, "price_min": price_min, "price_max": price_max,
        })
        if self.search_error:
            raise self.search_error
        items = [dict(item) for item in self.items.values()]
        return {"items": items, "total": len(items), "page_count": 1}

    async def get_item_detail(self, equip_id, ordersn=None):
        detail = self.details.get(equip_id)
        return dict(detail) if detail else None

    async def get_listings_by_type(self, equip_type, search_type, page=1, count=15, order_by="price ASC"):
        if equip_type in self.failing:
            raise MarketplaceError(f"upstream error for {equip_type}")
        return {"items": self.listings.get(equip_type, []), "is_last_page": True}


class RecordingDispatcher:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def send(self, title, body, data=None):
        self.sent.append({"title": title, "body": body, "data": data})
        if self.fail:
            raise RuntimeError("webhook down")
        return True


class FakeJob:
    def __init__(self, job_id, func, kwargs):
        self.id = job_id
        self.func = func
        self.kwargs = kwargs


class FakeScheduler:
    """Records jobs instead of timing them."""

    def __init__(self):
        self.running = False
        self.jobs: Dict[str, FakeJob] = {}
        self.add_job_calls = 0
        self.listeners = []

    def add_listener(self, callback, mask):
        self.listeners.append((callback, mask))

    def start(self):
        self.running = True

    def shutdown(self, wait=True):
        self.running = False

    def add_job(self, func, trigger=None, id=None, **kwargs):
        self.add_job_calls += 1
        job = FakeJob(id, func, dict(kwargs, trigger=trigger))
        self.jobs[id] = job
        return job

    def remove_job(self, job_id, jobstore=None):
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]


class Seeder:
    """Inserts rows directly for test setup."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def item(self, item_id: str, price: Optional[int], name: Optional[str] = None, **fields) -> None:
        async with self.session_factory() as db:
            data = make_item(item_id, price, name=name)
            data.update(fields)
            db.add(Item(**data))
            await db.commit()

    async def entry(
        self,
        item_id: str,
        target_price: Optional[int] = None,
        alert_enabled: bool = True,
    ) -> int:
        async with self.session_factory() as db:
            entry = WatchlistEntry(item_id=item_id, target_price=target_price, alert_enabled=alert_enabled)
            db.add(entry)
            await db.commit()
            return entry.id

    async def setting(self, key: str, value: str) -> None:
        async with self.session_factory() as db:
            existing = await db.get(Setting, key)
            if existing:
                existing.value = value
            else:
                db.add(Setting(key=key, value=value))
            await db.commit()

    async def set_price(self, item_id: str, price: int) -> None:
        async with self.session_factory() as db:
            item = await db.get(Item, item_id)
            item.current_price = price
            await db.commit()

    async def get_item(self, item_id: str) -> Optional[Item]:
        async with self.session_factory() as db:
            return await db.get(Item, item_id)

    async def snapshots(self, item_id: str) -> List[PriceSnapshot]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(PriceSnapshot).where(PriceSnapshot.item_id == item_id).order_by(PriceSnapshot.id)
            )
            return list(result.scalars().all())

    async def alerts(self, watchlist_id: Optional[int] = None) -> List[Alert]:
        async with self.session_factory() as db:
            query = select(Alert).order_by(Alert.id)
            if watchlist_id is not None:
                query = query.where(Alert.watchlist_id == watchlist_id)
            result = await db.execute(query)
            return list(result.scalars().all())

    async def count_open_alerts(self, watchlist_id: int) -> int:
        async with self.session_factory() as db:
            result = await db.execute(
                select(func.count(Alert.id)).where(
                    Alert.watchlist_id == watchlist_id,
                    Alert.is_resolved.is_(False),
                )
            )
            return result.scalar_one()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    configure_sqlite(engine.sync_engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await init_db(bind=engine, session_factory=factory)
    return factory


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
def client():
    return FakeMarketClient()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def alert_engine(session_factory, dispatcher):
    return AlertEngine(session_factory, dispatcher)


@pytest.fixture
def price_checker(session_factory, client):
    return PriceChecker(session_factory, client)


@pytest.fixture
def scanner(session_factory, price_checker, alert_engine):
    return WatchlistScanner(session_factory, price_checker, alert_engine)


@pytest.fixture
def fake_scheduler():
    return FakeScheduler()


@pytest.fixture
def monitor(scanner, session_factory, fake_scheduler):
    return PriceMonitor(scanner, session_factory, scheduler=fake_scheduler)


@pytest.fixture
def reject_inserts():
    """Make inserts of a model fail mid-flush while predicate(row) holds."""
    registered = []

    def install(model, predicate=lambda target: True):
        def _reject(mapper, connection, target):
            if predicate(target):
                raise SQLAlchemyError(f"disk I/O error inserting into {mapper.local_table.name}")

        event.listen(model, "before_insert", _reject)
        registered.append((model, _reject))

    yield install

    for model, listener in registered:
        event.remove(model, "before_insert", listener)
