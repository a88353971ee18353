"""
Shared FastAPI dependencies
"""
import secrets
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from yardwatch.config import get_settings
from yardwatch.errors import ForbiddenError
from yardwatch.services.aggregator import InventoryAggregator, get_aggregator
from yardwatch.services.alert_service import AlertService, get_alert_service
from yardwatch.services.owner import client_ip_from_headers, owner_key

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_owner_key(request: Request) -> str:
    """Pseudo-identity of the caller (address + user agent, salted and hashed)"""
    peer = request.client.host if request.client else None
    client_ip = client_ip_from_headers(request.headers, peer_host=peer)
    user_agent = request.headers.get("user-agent", "")
    return owner_key(client_ip, user_agent, get_settings().alert_signing_secret)


async def verify_admin_key(api_key: Optional[str] = Depends(_api_key_header)):
    """
    Check X-API-Key against ADMIN_API_KEY.

    The admin routes stay closed until a key is configured.
    """
    configured_key = get_settings().admin_api_key
    if not configured_key:
        raise ForbiddenError("Admin API disabled")
    if not api_key or not secrets.compare_digest(api_key, configured_key):
        raise ForbiddenError("Invalid or missing API key")


def alert_service() -> AlertService:
    return get_alert_service()


def aggregator() -> InventoryAggregator:
    return get_aggregator()
