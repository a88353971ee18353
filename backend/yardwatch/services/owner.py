"""
Anonymous owner keys.

There are no accounts: a saved search belongs to whoever shares the caller's
network address and user agent. Good enough to rate-limit abuse, not a
security boundary.
"""
from hashlib import sha256
from typing import Mapping, Optional


def hash_string(value: str) -> str:
    """Hex SHA-256 of a UTF-8 string"""
    return sha256((value or "").encode("utf-8")).hexdigest()


def owner_key(client_ip: str, user_agent: str, salt: str) -> str:
    """Derive a stable, one-way owner key from salt, address and user agent"""
    salt = (salt or "default-salt").strip()
    return hash_string(f"{salt}:{(client_ip or '').strip()}:{(user_agent or '').strip()}")


def client_ip_from_headers(headers: Mapping[str, str], peer_host: Optional[str] = None) -> str:
    """
    Best guess at the caller's address: the CDN header first, then the first
    X-Forwarded-For hop, then the socket peer.
    """
    cf_ip = (headers.get("cf-connecting-ip") or "").strip()
    if cf_ip:
        return cf_ip

    forwarded = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded

    return (peer_host or "").strip()
