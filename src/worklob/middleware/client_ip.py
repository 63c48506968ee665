"""Resolve the address a request came from.

``X-Forwarded-For`` is only read when the socket peer is one of
``WORKLOB_TRUSTED_PROXIES``. Anything else the client sends in that header
is ignored.
"""

from ipaddress import ip_address, ip_network

from starlette.requests import Request

from worklob.config import get_settings


def _is_trusted(host: str, trusted: list[str]) -> bool:
    try:
        address = ip_address(host)
    except ValueError:
        return False
    for entry in trusted:
        try:
            if address in ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def client_ip(request: Request) -> str:
    """
    The socket peer, or the nearest untrusted hop behind trusted proxies.

    The forwarded chain is walked from the right, so hops a client prepends
    to the header are never reached while a real proxy appends the peer it saw.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = get_settings().trusted_proxies
    if not trusted or not _is_trusted(peer, trusted):
        return peer

    forwarded = request.headers.get("x-forwarded-for", "")
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if not _is_trusted(hop, trusted):
            return hop
    return hops[0] if hops else peer
