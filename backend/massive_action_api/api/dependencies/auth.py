"""Request-scoped access control: session, API switch, client IP allow-list.

Every bridge call runs these gates before any handler. The outcome is an
explicit ``RequestContext`` handed to the handlers instead of ambient session
globals, so handlers can be exercised without a live host session.
"""

from __future__ import annotations

import ipaddress
import logging
import re
from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, Request, status

from massive_action_api.api.dependencies.host import get_host_engine
from massive_action_api.core.config import Settings, get_settings
from massive_action_api.core.host import ApiClient, HostEngine, HostSession

logger = logging.getLogger(__name__)

SESSION_HEADER = "Session-Token"
# glpi_<random>, but not glpi_<random>_rememberme
SESSION_COOKIE = re.compile(r"^glpi_[^_]+$")


@dataclass(frozen=True)
class RequestContext:
    session_token: str
    session: HostSession
    client_ip: str
    app_tokens: dict[int, str | None] = field(default_factory=dict)

    def forward_headers(self) -> dict[str, str]:
        """Headers that let a follow-up call act under the same session."""
        return {SESSION_HEADER: self.session_token}


def extract_session_token(request: Request) -> str | None:
    token = request.headers.get(SESSION_HEADER)
    if token:
        return token
    for name, value in request.cookies.items():
        if SESSION_COOKIE.match(name) and value:
            return value
    return None


def matching_api_clients(clients: list[ApiClient], client_ip: str) -> list[ApiClient]:
    """Active clients whose IPv4 range or IPv6 address admits ``client_ip``.

    Clients without any restriction for the caller's address family match.
    """
    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        address = None

    matches = []
    for client in clients:
        if not client.is_active:
            continue
        if isinstance(address, ipaddress.IPv4Address):
            start, end = client.ipv4_range_start, client.ipv4_range_end
            if start is None or (end is not None and start <= int(address) <= end):
                matches.append(client)
        elif client.ipv6 is None or _same_address(client.ipv6, client_ip):
            matches.append(client)
    return matches


def _same_address(configured: str, client_ip: str) -> bool:
    try:
        return ipaddress.ip_address(configured) == ipaddress.ip_address(client_ip)
    except ValueError:
        return configured == client_ip


def get_request_context(
    request: Request,
    engine: HostEngine = Depends(get_host_engine),
    settings: Settings = Depends(get_settings),
) -> RequestContext:
    """Resolve the caller's host session or refuse the request (401/403)."""
    token = extract_session_token(request)
    session = engine.authenticate(token) if token else None
    if session is None or session.user_id <= 0:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    if not session.active_profile:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="No active profile found"
        )

    if not settings.api_enabled or not engine.api_enabled():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="API disabled")

    client_ip = request.client.host if request.client else ""
    clients = matching_api_clients(engine.api_clients(), client_ip)
    if not clients:
        logger.warning(f"Refused API call from {client_ip}: no matching API client")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                "There isn't an active API client matching your IP address "
                f"in the configuration ({client_ip})"
            ),
        )

    return RequestContext(
        session_token=token,
        session=session,
        client_ip=client_ip,
        app_tokens={client.id: client.app_token for client in clients},
    )
