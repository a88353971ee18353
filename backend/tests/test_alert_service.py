import pytest

from conftest import PUSH_ENDPOINT, TEST_YARDS, alert_payload
from yardwatch.errors import ConflictError, NotFoundError, QuotaError, ValidationError
from yardwatch.services.alert_service import AlertService


OWNER = "owner-a"
OTHER = "owner-b"


def _subscription(n):
    return {"endpoint": f"https://push.example.test/send/{n}", "keys": {"auth": "a", "p256dh": "p"}}


async def test_create_prefetches_snapshot(service, store):
    alert = await service.create_alert(OWNER, alert_payload())

    assert alert["make"] == "TOYOTA"
    assert alert["hasPush"] is True
    assert "pushEndpoint" not in alert
    assert "ownerKey" not in alert

    [saved] = await store.read_all()
    assert saved["ownerKey"] == OWNER
    assert saved["pushEndpoint"] == PUSH_ENDPOINT
    # 2006 is outside 2008-2012
    assert [(r["yardId"], r["year"]) for r in saved["lastSnapshot"]] == [("1020", 2009), ("1022", 2012)]
    assert saved["lastNotificationStatus"] is None


async def test_create_rejects_invalid_payload(service, store):
    with pytest.raises(ValidationError):
        await service.create_alert(OWNER, alert_payload(make=""))
    assert await store.read_all() == []


async def test_list_is_scoped_to_owner(service):
    await service.create_alert(OWNER, alert_payload())
    await service.create_alert(OTHER, alert_payload())

    mine = await service.list_alerts(OWNER)
    assert len(mine) == 1
    assert set(mine[0]) == {
        "id", "make", "model", "year", "minYear", "maxYear",
        "hasPush", "createdAt", "lastNotifiedAt", "lastNotificationStatus",
    }
    assert await service.list_alerts("nobody") == []


async def test_duplicate_search_conflicts(service):
    await service.create_alert(OWNER, alert_payload())
    with pytest.raises(ConflictError, match="already saved"):
        await service.create_alert(OWNER, alert_payload(make="toyota"))


async def test_changing_one_field_is_a_new_search(service):
    await service.create_alert(OWNER, alert_payload())
    await service.create_alert(OWNER, alert_payload(maxYear=2013))
    await service.create_alert(OWNER, alert_payload(model="CAMRY"))
    await service.create_alert(OWNER, alert_payload(subscription=_subscription("other")))
    assert len(await service.list_alerts(OWNER)) == 4


async def test_same_search_by_different_owner_is_allowed(service):
    await service.create_alert(OWNER, alert_payload())
    await service.create_alert(OTHER, alert_payload())


async def test_per_owner_quota(store, aggregator, delivery):
    service = AlertService(store, aggregator, delivery, max_per_owner=3)
    for n in range(3):
        await service.create_alert(OWNER, alert_payload(subscription=_subscription(n)))

    with pytest.raises(QuotaError, match="Too many saved alerts"):
        await service.create_alert(OWNER, alert_payload(subscription=_subscription(99)))

    await service.create_alert(OTHER, alert_payload())


async def test_default_per_owner_quota_is_25(service):
    for n in range(25):
        await service.create_alert(OWNER, alert_payload(subscription=_subscription(n)))

    with pytest.raises(QuotaError):
        await service.create_alert(OWNER, alert_payload(subscription=_subscription(25)))


async def test_total_quota(service, store):
    await store.replace_all([{"id": str(n), "ownerKey": f"seed-{n}", "make": "FORD"} for n in range(500)])
    with pytest.raises(QuotaError, match="Alert capacity reached"):
        await service.create_alert(OWNER, alert_payload())
    assert len(await store.read_all()) == 500


async def test_total_quota_allows_the_last_slot(service, store):
    await store.replace_all([{"id": str(n), "ownerKey": f"seed-{n}", "make": "FORD"} for n in range(499)])

    created = await service.create_alert(OWNER, alert_payload())
    assert len(await store.read_all()) == 500
    assert created["id"] == (await store.read_all())[-1]["id"]

    with pytest.raises(QuotaError, match="Alert capacity reached"):
        await service.create_alert(OTHER, alert_payload())
    assert len(await store.read_all()) == 500


async def test_zero_limits_are_honored(store, aggregator, delivery):
    closed = AlertService(store, aggregator, delivery, max_total=0)
    assert closed.max_total == 0
    with pytest.raises(QuotaError, match="Alert capacity reached"):
        await closed.create_alert(OWNER, alert_payload())

    no_owner_slots = AlertService(store, aggregator, delivery, max_per_owner=0)
    with pytest.raises(QuotaError, match="Too many saved alerts"):
        await no_owner_slots.create_alert(OWNER, alert_payload())
    assert await store.read_all() == []


async def test_total_quota_checked_before_duplicates(store, aggregator, delivery):
    service = AlertService(store, aggregator, delivery, max_total=1)
    await service.create_alert(OWNER, alert_payload())
    with pytest.raises(QuotaError):
        await service.create_alert(OWNER, alert_payload())


async def test_delete_own_alert(service):
    alert = await service.create_alert(OWNER, alert_payload())
    await service.delete_alert(OWNER, alert["id"])
    assert await service.list_alerts(OWNER) == []


async def test_delete_other_owners_alert_is_not_found(service):
    alert = await service.create_alert(OWNER, alert_payload())
    with pytest.raises(NotFoundError):
        await service.delete_alert(OTHER, alert["id"])
    assert len(await service.list_alerts(OWNER)) == 1


async def test_delete_unknown_and_blank_ids(service):
    with pytest.raises(NotFoundError):
        await service.delete_alert(OWNER, "no-such-id")
    with pytest.raises(ValidationError, match="id is required"):
        await service.delete_alert(OWNER, "  ")


async def test_poll_notification(service, store):
    with pytest.raises(ValidationError, match="endpoint is required"):
        await service.poll_notification("")

    assert await service.poll_notification(PUSH_ENDPOINT) == {"notification": None}

    await service.create_alert(OWNER, alert_payload())
    result = await service.poll_notification(f"  {PUSH_ENDPOINT} ")
    assert result == {"notification": None, "lastNotifiedAt": None, "lastNotificationStatus": None}


async def test_prefetch_failure_still_saves(store, delivery):
    class BrokenAggregator:
        async def search(self, make, model=""):
            raise RuntimeError("upstream exploded")

    service = AlertService(store, BrokenAggregator(), delivery)
    alert = await service.create_alert(OWNER, alert_payload())

    assert alert["lastNotificationStatus"] == "prefetch failed: upstream exploded"
    [saved] = await store.read_all()
    assert saved["lastSnapshot"] == []


async def test_prefetch_with_every_yard_down_saves_empty_snapshot(service, store, inventory):
    inventory.failing.update(y.id for y in TEST_YARDS)
    await service.create_alert(OWNER, alert_payload())
    [saved] = await store.read_all()
    assert saved["lastSnapshot"] == []
    assert saved["lastNotificationStatus"] is None


async def test_public_key_is_generated_and_persisted(service):
    body = await service.public_key()
    assert body["publicKey"]
    assert body["persistedToStore"] is True
    assert "persistenceError" not in body
    assert (await service.public_key())["publicKey"] == body["publicKey"]
