"""
Saved-search alert REST API endpoints
"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, status

from yardwatch.api.deps import alert_service, get_owner_key
from yardwatch.services.alert_service import AlertService

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("")
async def list_alerts(
    owner_key: str = Depends(get_owner_key),
    service: AlertService = Depends(alert_service),
):
    """List the caller's saved searches"""
    alerts = await service.list_alerts(owner_key)
    return {"count": len(alerts), "alerts": alerts}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_alert(
    payload: Dict[str, Any] = Body(...),
    owner_key: str = Depends(get_owner_key),
    service: AlertService = Depends(alert_service),
):
    """
    Save a search with a push subscription.

    Body: {make, model?, minYear?, maxYear?, year?, subscription: {endpoint, keys: {auth, p256dh}}}
    """
    alert = await service.create_alert(owner_key, payload)
    return {"ok": True, "alert": alert}


@router.get("/public-key")
async def public_key(service: AlertService = Depends(alert_service)):
    """VAPID public key for PushManager.subscribe()"""
    return await service.public_key()


@router.post("/notification")
async def poll_notification(
    payload: Dict[str, Any] = Body(default={}),
    service: AlertService = Depends(alert_service),
):
    """Called by the service worker after a bare push to fetch the message text"""
    return await service.poll_notification(payload.get("endpoint") or "")


@router.delete("")
async def delete_alert_by_query(
    id: Optional[str] = None,
    owner_key: str = Depends(get_owner_key),
    service: AlertService = Depends(alert_service),
):
    """Delete a saved search given as ?id=..."""
    await service.delete_alert(owner_key, id or "")
    return {"ok": True}


@router.delete("/{alert_id}")
async def delete_alert(
    alert_id: str,
    owner_key: str = Depends(get_owner_key),
    service: AlertService = Depends(alert_service),
):
    """Delete one of the caller's saved searches"""
    await service.delete_alert(owner_key, alert_id)
    return {"ok": True}
