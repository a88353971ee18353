"""
Saved-search alert engine: lifecycle, quotas and the daily sweep.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from yardwatch.config import get_settings
from yardwatch.errors import ConflictError, NotFoundError, QuotaError, ValidationError
from yardwatch.services.aggregator import InventoryAggregator, get_aggregator
from yardwatch.services.alert_rules import (
    derive_year_range,
    diff_new_vehicles,
    filter_by_year_range,
    is_same_search,
    normalize_text,
    redact_search,
    search_terms,
    validate_alert_payload,
)
from yardwatch.services.push import PushDelivery, VapidKeyManager
from yardwatch.services.store import SavedSearchStore

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AlertService:
    """
    Saved searches for anonymous owners.

    All reads and writes go through the whole-collection store, so a sweep
    running while a user creates or deletes an alert can overwrite that
    change (last writer wins).
    """

    def __init__(
        self,
        store: SavedSearchStore,
        aggregator: InventoryAggregator,
        delivery: PushDelivery,
        key_manager: Optional[VapidKeyManager] = None,
        max_total: Optional[int] = None,
        max_per_owner: Optional[int] = None,
    ):
        settings = get_settings()
        self.store = store
        self.aggregator = aggregator
        self.delivery = delivery
        self.key_manager = key_manager or delivery.key_manager
        self.max_total = settings.max_alerts_total if max_total is None else max_total
        self.max_per_owner = settings.max_alerts_per_owner if max_per_owner is None else max_per_owner

    async def list_alerts(self, owner_key: str) -> List[Dict[str, Any]]:
        """The owner's saved searches, without push credentials"""
        searches = await self.store.read_all()
        return [redact_search(s) for s in searches if s.get("ownerKey") == owner_key]

    async def create_alert(self, owner_key: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Validate and store a new saved search.

        Raises:
            ValidationError: malformed payload
            QuotaError: system-wide or per-owner limit reached
            ConflictError: the owner already saved this exact search
        """
        validated = validate_alert_payload(payload)

        searches = await self.store.read_all()
        if len(searches) >= self.max_total:
            raise QuotaError("Alert capacity reached. Try again later.")

        mine = [s for s in searches if s.get("ownerKey") == owner_key]
        if len(mine) >= self.max_per_owner:
            raise QuotaError("Too many saved alerts. Delete one before adding another.")

        if any(is_same_search(s, validated) for s in mine):
            raise ConflictError("You already saved this search.")

        record: Dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "ownerKey": owner_key,
            "createdAt": utc_now_iso(),
            **validated,
            "lastSnapshot": [],
            "lastNotifiedAt": None,
            "lastNotificationStatus": None,
            "lastNotificationPayload": None,
        }

        # Prefetch so the first sweep diffs against real inventory
        try:
            record["lastSnapshot"] = await self.run_saved_search(record)
        except Exception as e:
            logger.warning(f"Prefetch for new alert {record['id']} failed: {e}")
            record["lastSnapshot"] = []
            record["lastNotificationStatus"] = f"prefetch failed: {e}"

        await self.store.append(record)
        logger.info(f"Created alert {record['id']} for {validated['make']} {validated['model']}".rstrip())
        return redact_search(record)

    async def delete_alert(self, owner_key: str, alert_id: str) -> None:
        """
        Remove one of the owner's saved searches.

        Raises:
            ValidationError: no id given
            NotFoundError: no such id for this owner (other owners' ids included)
        """
        alert_id = normalize_text(alert_id)
        if not alert_id:
            raise ValidationError("id is required")

        searches = await self.store.read_all()
        remaining = [s for s in searches if not (s.get("id") == alert_id and s.get("ownerKey") == owner_key)]
        if len(remaining) == len(searches):
            raise NotFoundError("Not found")

        await self.store.replace_all(remaining)
        logger.info(f"Deleted alert {alert_id}")

    async def poll_notification(self, endpoint: str) -> Dict[str, Any]:
        """Latest notification for the first saved search using this push endpoint"""
        endpoint = normalize_text(endpoint)
        if not endpoint:
            raise ValidationError("endpoint is required")

        searches = await self.store.read_all()
        match = next((s for s in searches if normalize_text(s.get("pushEndpoint")) == endpoint), None)
        if not match:
            return {"notification": None}

        return {
            "notification": match.get("lastNotificationPayload") or None,
            "lastNotifiedAt": match.get("lastNotifiedAt") or None,
            "lastNotificationStatus": match.get("lastNotificationStatus") or None,
        }

    async def public_key(self) -> Dict[str, Any]:
        keys = await self.key_manager.get_keys()
        body: Dict[str, Any] = {
            "publicKey": keys.public_key,
            "persistedToStore": keys.persisted_to_store,
        }
        if keys.persistence_error:
            body["persistenceError"] = keys.persistence_error
        return body

    async def run_saved_search(self, search: Mapping[str, Any]) -> List[Dict]:
        """Aggregate a search's make/model and apply its year range"""
        make, model = search_terms(search)
        if not make:
            return []

        rows = await self.aggregator.search(make, model)
        return filter_by_year_range(rows, derive_year_range(search))

    async def sweep(self) -> Dict[str, Any]:
        """
        Re-run every saved search, one at a time.

        New vehicles (by identity key, compared with the previous snapshot)
        trigger one push per search. Every snapshot is replaced, and the whole
        collection is written back once at the end.
        """
        started = utc_now_iso()
        searches = await self.store.read_all()
        summary: Dict[str, Any] = {"started": started, "searches": len(searches), "notified": 0, "new_vehicles": 0}
        if not searches:
            logger.info("Alert sweep: no saved searches")
            return summary

        refreshed = []
        for search in searches:
            current = await self.run_saved_search(search)
            previous = search.get("lastSnapshot")
            new_vehicles = diff_new_vehicles(current, previous if isinstance(previous, list) else [])

            updated = {**search, "lastSnapshot": current}

            if new_vehicles:
                result = await self.delivery.deliver(search, new_vehicles)
                updated["lastNotifiedAt"] = utc_now_iso()
                updated["lastNotificationStatus"] = result.status
                updated["lastNotificationPayload"] = result.payload
                summary["notified"] += 1
                summary["new_vehicles"] += len(new_vehicles)

            refreshed.append(updated)

        await self.store.replace_all(refreshed)
        logger.info(
            f"Alert sweep complete: {summary['searches']} searches, "
            f"{summary['notified']} notified, {summary['new_vehicles']} new vehicles"
        )
        return summary


# Process-wide service
_alert_service: Optional[AlertService] = None


def get_alert_service() -> AlertService:
    """Get or create the AlertService wired to the configured database and yards"""
    global _alert_service
    if _alert_service is None:
        from yardwatch.database import async_session_maker
        from yardwatch.services.push import get_vapid_key_manager
        from yardwatch.services.store import KeyValueStore

        key_manager = get_vapid_key_manager()
        _alert_service = AlertService(
            store=SavedSearchStore(KeyValueStore(async_session_maker)),
            aggregator=get_aggregator(),
            delivery=PushDelivery(key_manager),
            key_manager=key_manager,
        )
    return _alert_service
