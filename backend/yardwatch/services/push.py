"""
Web Push delivery with VAPID authentication.

Pushes carry no payload: the browser's service worker wakes up and asks
POST /alerts/notification for the text. Only the P-256 key pair and the
ES256 JWT are needed, so no payload encryption happens here.
"""
import base64
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlsplit
import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jose import jwt

from yardwatch.config import get_settings
from yardwatch.errors import DeliveryFailure, DependencyUnavailable
from yardwatch.services.alert_rules import build_notification_payload, normalize_text
from yardwatch.services.store import KeyValueStore, VAPID_KEYS_KEY

logger = logging.getLogger(__name__)

JWT_LIFETIME_SECONDS = 12 * 60 * 60


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(text: str) -> bytes:
    text = text.strip()
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


@dataclass
class VapidKeys:
    public_key: str  # raw uncompressed P-256 point, base64url
    private_key: str  # PKCS8 DER (or raw 32-byte scalar), base64url
    subject: str
    persisted_to_store: bool = False
    persistence_error: Optional[str] = None


@dataclass
class DeliveryResult:
    status: str
    payload: Dict[str, Any] = field(default_factory=dict)


def generate_vapid_key_pair(subject: str) -> VapidKeys:
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_raw = private_key.public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )
    private_der = private_key.private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return VapidKeys(public_key=b64url_encode(public_raw), private_key=b64url_encode(private_der), subject=subject)


def load_private_key(private_key: str) -> ec.EllipticCurvePrivateKey:
    """Accept PKCS8 DER or the bare 32-byte scalar most VAPID tools print"""
    raw = b64url_decode(private_key)
    if len(raw) == 32:
        return ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256R1())
    key = serialization.load_der_private_key(raw, password=None)
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise ValueError("VAPID private key is not an EC key")
    return key


def create_vapid_jwt(audience: str, keys: VapidKeys, now: Optional[int] = None) -> str:
    issued = int(now if now is not None else time.time())
    pem = load_private_key(keys.private_key).private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")
    claims = {"aud": audience, "exp": issued + JWT_LIFETIME_SECONDS, "sub": keys.subject}
    return jwt.encode(claims, pem, algorithm="ES256")


async def send_web_push(endpoint: str, keys: VapidKeys, client: httpx.AsyncClient, ttl_seconds: int = 43200) -> None:
    """
    POST an empty push message to a subscription endpoint.

    Raises:
        DeliveryFailure: the push service could not be reached or refused the message
    """
    parts = urlsplit(endpoint)
    if not parts.scheme or not parts.netloc:
        raise DeliveryFailure(f"invalid push endpoint: {endpoint}")

    token = create_vapid_jwt(f"{parts.scheme}://{parts.netloc}", keys)
    headers = {
        "TTL": str(ttl_seconds),
        "Authorization": f"vapid t={token}, k={keys.public_key}",
    }

    try:
        response = await client.post(endpoint, headers=headers)
    except httpx.HTTPError as e:
        raise DeliveryFailure(f"push service unreachable: {e}") from e

    if not response.is_success:
        raise DeliveryFailure(f"push service returned {response.status_code}: {response.text[:200]}")


class VapidKeyManager:
    """
    Resolves the deployment's VAPID key pair.

    Order: configured env keys, the in-process cache, the key-value store,
    and finally a freshly generated pair which is written back to the store.
    The store is the source of truth; the cache only saves a read per call.
    """

    def __init__(self, kv: Optional[KeyValueStore], public_key: str = "", private_key: str = "", subject: str = ""):
        self.kv = kv
        self.public_key = (public_key or "").strip()
        self.private_key = (private_key or "").strip()
        self.subject = (subject or "mailto:alerts@example.com").strip()
        self._cached: Optional[VapidKeys] = None

    async def get_keys(self) -> VapidKeys:
        if self.public_key and self.private_key:
            self._cached = VapidKeys(self.public_key, self.private_key, self.subject)
            return self._cached

        if self._cached:
            if self.kv and not self._cached.persisted_to_store:
                await self._persist(self._cached)
            return self._cached

        persistence_error = None if self.kv else "Key store not configured for VAPID keys"

        if self.kv:
            try:
                stored = await self.kv.get_json(VAPID_KEYS_KEY)
            except DependencyUnavailable as e:
                stored = None
                persistence_error = f"store read failed: {e}"
                logger.error(f"VAPID key read failed: {e}")

            if isinstance(stored, Mapping) and stored.get("publicKey") and stored.get("privateKey"):
                self._cached = VapidKeys(
                    public_key=stored["publicKey"],
                    private_key=stored["privateKey"],
                    subject=stored.get("subject") or self.subject,
                    persisted_to_store=True,
                )
                return self._cached

        generated = generate_vapid_key_pair(self.subject)
        generated.persistence_error = persistence_error
        self._cached = generated
        logger.info("Generated a new VAPID key pair")

        if self.kv:
            await self._persist(generated)
        return generated

    def forget(self):
        """Drop the in-process copy; the next call reloads from the store"""
        self._cached = None

    async def _persist(self, keys: VapidKeys):
        try:
            await self.kv.put_json(VAPID_KEYS_KEY, {
                "publicKey": keys.public_key,
                "privateKey": keys.private_key,
                "subject": keys.subject,
            })
            keys.persisted_to_store = True
            keys.persistence_error = None
        except DependencyUnavailable as e:
            keys.persistence_error = f"store write failed: {e}"
            logger.error(f"VAPID key write failed: {e}")


class PushDelivery:
    """Best-effort wake-up of a saved search's push endpoint"""

    def __init__(
        self,
        key_manager: VapidKeyManager,
        ttl_seconds: Optional[int] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_manager = key_manager
        self.ttl_seconds = ttl_seconds or get_settings().push_ttl_seconds
        self.timeout = timeout
        self.transport = transport

    async def deliver(self, search: Mapping[str, Any], new_vehicles: List[Mapping]) -> DeliveryResult:
        """
        Build the notification text and wake the browser.
        Never raises; the outcome is reported in ``DeliveryResult.status``.
        """
        payload = build_notification_payload(search, new_vehicles)
        keys = await self.key_manager.get_keys()

        if not keys.public_key or not keys.private_key:
            return DeliveryResult("push unavailable (missing VAPID keys)", payload)

        endpoint = normalize_text(search.get("pushEndpoint"))
        if not endpoint:
            return DeliveryResult("no push subscription", payload)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                await send_web_push(endpoint, keys, client, self.ttl_seconds)
        except Exception as e:
            logger.warning(f"Push to alert {search.get('id')} failed: {e}")
            return DeliveryResult(f"push failed: {e}", payload)

        logger.info(f"Push sent for alert {search.get('id')} ({len(new_vehicles)} new)")
        return DeliveryResult("push sent", payload)


# Process-wide key manager
_key_manager: Optional[VapidKeyManager] = None


def get_vapid_key_manager() -> VapidKeyManager:
    """Get or create the process-wide VapidKeyManager"""
    global _key_manager
    if _key_manager is None:
        from yardwatch.database import async_session_maker

        settings = get_settings()
        _key_manager = VapidKeyManager(
            KeyValueStore(async_session_maker),
            public_key=settings.vapid_public_key,
            private_key=settings.vapid_private_key,
            subject=settings.vapid_subject,
        )
    return _key_manager
