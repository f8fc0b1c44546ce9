"""
Identity Resolver

Derives who is looking at a post from the inbound request: client IP, user
agent, browsing session id and (when authenticated) the user id. The result
is an explicit Viewer value passed into every engagement operation.
"""

import logging
import re
import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_IP_ADDRESS = "127.0.0.1"
UNKNOWN_USER_AGENT = "unknown"
MAX_SESSION_ID_LENGTH = 255

BOT_PATTERN = re.compile(
    r"bot|crawler|spider|scraper|slurp|baiduspider|facebookexternalhit|whatsapp|telegram|discord",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Viewer:
    session_id: str
    ip_address: str
    user_agent: str
    user_id: Optional[int] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


def get_client_ip(headers: Mapping[str, str]) -> str:
    """First x-forwarded-for entry, then x-real-ip, then loopback."""
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return DEFAULT_IP_ADDRESS


def get_user_agent(headers: Mapping[str, str]) -> str:
    return headers.get("user-agent") or UNKNOWN_USER_AGENT


def generate_session_id(ip_address: str) -> str:
    """
    Best-effort unique id for a browsing session without a client-supplied one.

    Combines the client IP, the current time in milliseconds and a random
    suffix. Not meant to be unguessable.
    """
    return f"{ip_address}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def is_bot(user_agent: str) -> bool:
    return bool(BOT_PATTERN.search(user_agent or ""))


def resolve_viewer(
    headers: Mapping[str, str],
    session_id: Optional[str] = None,
    user_id: Optional[int] = None,
) -> Viewer:
    """
    Build the Viewer for one request.

    Args:
        headers: Request headers (case-insensitive mapping)
        session_id: Client-supplied session id, if any
        user_id: Authenticated user id from the auth collaborator, if any
    """
    ip_address = get_client_ip(headers)
    user_agent = get_user_agent(headers)

    session_id = (session_id or "").strip()[:MAX_SESSION_ID_LENGTH]
    if not session_id:
        session_id = generate_session_id(ip_address)
        logger.debug(f"Generated session id for {ip_address}")

    return Viewer(session_id=session_id, ip_address=ip_address, user_agent=user_agent, user_id=user_id)
