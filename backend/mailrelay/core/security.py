"""Security utilities: session auth dependency and webhook signature verification"""
import base64
import hashlib
import hmac
import time
from typing import Mapping, Optional

from fastapi import HTTPException, Request

from mailrelay.core.logging import security_logger
from mailrelay.db.redis import get_session

SVIX_ID_HEADER = "svix-id"
SVIX_TIMESTAMP_HEADER = "svix-timestamp"
SVIX_SIGNATURE_HEADER = "svix-signature"

DEFAULT_TOLERANCE_SECONDS = 300


def require_auth(request: Request) -> str:
    """Dependency: Require authentication, return user_id"""
    session_id = request.cookies.get("session_id")

    if not session_id:
        raise HTTPException(401, "Not authenticated. Please log in.")

    user_id = get_session(session_id)
    if not user_id:
        raise HTTPException(401, "Session expired. Please log in again.")

    return user_id


def get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup for plain dicts and Starlette Headers"""
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def _signing_key(secret: str) -> bytes:
    # Svix secrets are "whsec_" + base64 key material
    if secret.startswith("whsec_"):
        return base64.b64decode(secret[len("whsec_"):])
    return secret.encode("utf-8")


def sign_svix_payload(payload: bytes, svix_id: str, svix_timestamp: str, secret: str) -> str:
    """Compute the base64 Svix signature for a payload"""
    signed_payload = svix_id.encode("utf-8") + b"." + svix_timestamp.encode("utf-8") + b"." + payload
    digest = hmac.new(_signing_key(secret), signed_payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_svix_signature(
    payload: bytes,
    headers: Mapping[str, str],
    secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS
) -> bool:
    """Verify a Resend webhook signature using the Svix format (HMAC-SHA256)

    The signed content is ``{svix-id}.{svix-timestamp}.{body}``. The
    ``svix-signature`` header may carry several space-separated signatures
    (``v1,sig1 v1,sig2``) during secret rotation; any match is accepted.
    """
    if not secret:
        return False

    svix_id = get_header(headers, SVIX_ID_HEADER)
    svix_timestamp = get_header(headers, SVIX_TIMESTAMP_HEADER)
    svix_signature = get_header(headers, SVIX_SIGNATURE_HEADER)

    if not svix_id or not svix_timestamp or not svix_signature:
        return False

    try:
        timestamp = int(svix_timestamp)
    except ValueError:
        security_logger.warning(f"Webhook signature rejected: bad timestamp {svix_timestamp!r}")
        return False

    if tolerance_seconds and abs(time.time() - timestamp) > tolerance_seconds:
        security_logger.warning("Webhook signature rejected: timestamp outside tolerance window")
        return False

    try:
        expected_signature = sign_svix_payload(payload, svix_id, svix_timestamp, secret)
    except (ValueError, TypeError) as e:
        security_logger.error(f"Cannot compute webhook signature: {e}")
        return False

    for sig_part in svix_signature.split(" "):
        if not sig_part.startswith("v1,"):
            continue
        provided_signature = sig_part.split(",", 1)[1]
        if hmac.compare_digest(expected_signature, provided_signature):
            security_logger.debug("Webhook signature verified successfully")
            return True

    security_logger.warning("Webhook signature verification failed - no matching signature found")
    return False
