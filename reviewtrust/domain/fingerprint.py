"""
Fingerprint Builder
===================

Derives the identity surrogate used for abuse detection: claimed email,
proxy-aware source IP, and a device key. Never fails; without a
client-supplied device fingerprint the key falls back to a hash of
user-agent and IP.
"""

import hashlib
from typing import Mapping, Optional

from .models import Fingerprint
from .validation import normalize_email

DEVICE_FINGERPRINT_HEADER = "x-device-fingerprint"
UNKNOWN_IP = "unknown"


def _header(headers: Mapping[str, str], name: str) -> str:
    # Starlette headers are case-insensitive, plain dicts are not
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                value = candidate
                break
    return (value or "").strip()


def client_ip(headers: Mapping[str, str], peer_host: Optional[str] = None) -> str:
    """Resolve the caller IP: X-Forwarded-For first hop, X-Real-IP, then peer."""
    forwarded = _header(headers, "x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = _header(headers, "x-real-ip")
    if real_ip:
        return real_ip

    return (peer_host or "").strip() or UNKNOWN_IP


def device_key(user_agent: str, ip: str, device_fingerprint: Optional[str] = None) -> str:
    explicit = (device_fingerprint or "").strip()
    if explicit:
        return explicit
    digest = hashlib.sha256(f"{user_agent or ''}|{ip or ''}".encode("utf-8"))
    return digest.hexdigest()


def build_fingerprint(email: str, ip: str, user_agent: str = "",
                      device_fingerprint: Optional[str] = None) -> Fingerprint:
    ip = (ip or "").strip() or UNKNOWN_IP
    return Fingerprint(
        email=normalize_email(email),
        ip=ip,
        device_key=device_key(user_agent, ip, device_fingerprint),
        user_agent=user_agent or "",
    )
