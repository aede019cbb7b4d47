"""
Alert engine: one open alert per entry, re-arm on resolution, best-effort notify
"""
import pytest
from sqlalchemy.exc import IntegrityError

from cbgwatch.models import Alert
from cbgwatch.services.alert_engine import AlertEngine, AlertService
from conftest import RecordingDispatcher


class TestAlertEvaluation:

    @pytest.mark.asyncio
    async def test_qualifying_entry_gets_single_alert(self, alert_engine, seed):
        await seed.item("X", 30000, name="Fox Spirit")
        entry_id = await seed.entry("X", target_price=35000)

        created = await alert_engine.evaluate()

        assert len(created) == 1
        alerts = await seed.alerts(entry_id)
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.item_id == "X"
        assert alert.triggered_price == 30000
        assert alert.target_price == 35000
        assert alert.is_read is False
        assert alert.is_resolved is False

    @pytest.mark.asyncio
    async def test_second_pass_is_idempotent(self, alert_engine, seed, dispatcher):
        await seed.item("X", 30000)
        entry_id = await seed.entry("X", target_price=35000)

        await alert_engine.evaluate()
        created = await alert_engine.evaluate()

        assert created == []
        assert len(await seed.alerts(entry_id)) == 1
        assert len(dispatcher.sent) == 1

    @pytest.mark.asyncio
    async def test_price_equal_to_target_qualifies(self, alert_engine, seed):
        await seed.item("X", 35000)
        entry_id = await seed.entry("X", target_price=35000)

        await alert_engine.evaluate()

        assert await seed.count_open_alerts(entry_id) == 1

    @pytest.mark.asyncio
    async def test_price_one_unit_above_target_does_not_qualify(self, alert_engine, seed):
        await seed.item("X", 35001)
        entry_id = await seed.entry("X", target_price=35000)

        await alert_engine.evaluate()

        assert await seed.alerts(entry_id) == []

    @pytest.mark.asyncio
    async def test_entries_without_target_or_disabled_are_ignored(self, alert_engine, seed):
        await seed.item("X", 100)
        no_target = await seed.entry("X", target_price=None)
        disabled = await seed.entry("X", target_price=500, alert_enabled=False)

        await alert_engine.evaluate()

        assert await seed.alerts(no_target) == []
        assert await seed.alerts(disabled) == []

    @pytest.mark.asyncio
    async def test_each_entry_for_same_item_alerts_separately(self, alert_engine, seed):
        await seed.item("X", 100)
        first = await seed.entry("X", target_price=200)
        second = await seed.entry("X", target_price=300)

        await alert_engine.evaluate()

        assert await seed.count_open_alerts(first) == 1
        assert await seed.count_open_alerts(second) == 1

    @pytest.mark.asyncio
    async def test_resolution_rearms_entry(self, alert_engine, seed, session_factory):
        await seed.item("X", 30000)
        entry_id = await seed.entry("X", target_price=35000)
        first, = await alert_engine.evaluate()

        async with session_factory() as db:
            assert await AlertService(db).resolve(first.id) is True

        created = await alert_engine.evaluate()

        assert len(created) == 1
        assert await seed.count_open_alerts(entry_id) == 1
        assert len(await seed.alerts(entry_id)) == 2

    @pytest.mark.asyncio
    async def test_reading_does_not_rearm(self, alert_engine, seed, session_factory):
        await seed.item("X", 30000)
        entry_id = await seed.entry("X", target_price=35000)
        first, = await alert_engine.evaluate()

        async with session_factory() as db:
            await AlertService(db).mark_read(first.id)

        assert await alert_engine.evaluate() == []
        assert len(await seed.alerts(entry_id)) == 1

    @pytest.mark.asyncio
    async def test_target_change_picked_up_from_cached_price(self, alert_engine, seed, session_factory):
        await seed.item("X", 30000)
        entry_id = await seed.entry("X", target_price=20000)
        assert await alert_engine.evaluate() == []

        from cbgwatch.services.watchlist_service import WatchlistService
        async with session_factory() as db:
            await WatchlistService(db).update(entry_id, target_price=30000)

        created = await alert_engine.evaluate()
        assert [a.target_price for a in created] == [30000]


class TestAlertNotification:

    @pytest.mark.asyncio
    async def test_notification_describes_item_and_prices(self, alert_engine, seed, dispatcher):
        await seed.item("X", 30000, name="Fox Spirit")
        await seed.entry("X", target_price=35000)

        created = await alert_engine.evaluate()

        message, = dispatcher.sent
        assert "Fox Spirit" in message["body"]
        assert "¥300.00" in message["body"]
        assert "¥350.00" in message["body"]
        assert message["data"] == {"alert_id": created[0].id, "item_id": "X"}

    @pytest.mark.asyncio
    async def test_dispatch_failure_keeps_alert_and_continues(self, session_factory, seed):
        dispatcher = RecordingDispatcher(fail=True)
        engine = AlertEngine(session_factory, dispatcher)
        await seed.item("X", 100)
        await seed.item("Y", 100)
        first = await seed.entry("X", target_price=200)
        second = await seed.entry("Y", target_price=200)

        created = await engine.evaluate()

        assert len(created) == 2
        assert len(dispatcher.sent) == 2
        assert await seed.count_open_alerts(first) == 1
        assert await seed.count_open_alerts(second) == 1

    @pytest.mark.asyncio
    async def test_store_failure_skips_only_that_entry(self, alert_engine, seed, dispatcher, reject_inserts):
        await seed.item("X", 100)
        await seed.item("Y", 100)
        first = await seed.entry("X", target_price=200)
        second = await seed.entry("Y", target_price=200)
        reject_inserts(Alert, lambda alert: alert.watchlist_id == first)

        created = await alert_engine.evaluate()

        assert [alert.watchlist_id for alert in created] == [second]
        assert await seed.alerts(first) == []
        assert await seed.count_open_alerts(second) == 1
        assert [message["data"]["item_id"] for message in dispatcher.sent] == ["Y"]

    @pytest.mark.asyncio
    async def test_engine_without_dispatcher(self, session_factory, seed):
        await seed.item("X", 100)
        entry_id = await seed.entry("X", target_price=200)

        await AlertEngine(session_factory).evaluate()

        assert await seed.count_open_alerts(entry_id) == 1


class TestOpenAlertConstraint:

    @pytest.mark.asyncio
    async def test_database_rejects_second_open_alert(self, seed, session_factory):
        await seed.item("X", 100)
        entry_id = await seed.entry("X", target_price=200)

        async with session_factory() as db:
            db.add(Alert(watchlist_id=entry_id, item_id="X", triggered_price=100, target_price=200))
            await db.commit()

        async with session_factory() as db:
            db.add(Alert(watchlist_id=entry_id, item_id="X", triggered_price=90, target_price=200))
            with pytest.raises(IntegrityError):
                await db.commit()

    @pytest.mark.asyncio
    async def test_resolved_alerts_do_not_count(self, seed, session_factory):
        await seed.item("X", 100)
        entry_id = await seed.entry("X", target_price=200)

        async with session_factory() as db:
            db.add(Alert(watchlist_id=entry_id, item_id="X", triggered_price=100, target_price=200, is_resolved=True))
            db.add(Alert(watchlist_id=entry_id, item_id="X", triggered_price=100, target_price=200, is_resolved=True))
            db.add(Alert(watchlist_id=entry_id, item_id="X", triggered_price=100, target_price=200))
            await db.commit()

        assert await seed.count_open_alerts(entry_id) == 1


class TestAlertService:

    @pytest.mark.asyncio
    async def test_list_unread_only(self, alert_engine, seed, session_factory):
        await seed.item("X", 100)
        await seed.item("Y", 100)
        await seed.entry("X", target_price=200)
        await seed.entry("Y", target_price=200)
        first, second = await alert_engine.evaluate()

        async with session_factory() as db:
            service = AlertService(db)
            await service.mark_read(first.id)
            unread = await service.get_alerts(unread_only=True)
            everything = await service.get_alerts()

        assert [a.id for a in unread] == [second.id]
        assert {a.id for a in everything} == {first.id, second.id}

    @pytest.mark.asyncio
    async def test_missing_alert_operations_return_false(self, session_factory):
        async with session_factory() as db:
            service = AlertService(db)
            assert await service.mark_read(999) is False
            assert await service.resolve(999) is False
            assert await service.delete(999) is False

    @pytest.mark.asyncio
    async def test_delete(self, alert_engine, seed, session_factory):
        await seed.item("X", 100)
        entry_id = await seed.entry("X", target_price=200)
        alert, = await alert_engine.evaluate()

        async with session_factory() as db:
            assert await AlertService(db).delete(alert.id) is True

        assert await seed.alerts(entry_id) == []
