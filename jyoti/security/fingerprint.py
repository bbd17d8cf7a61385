"""Anonymous caller fingerprinting.

A fingerprint is the SHA-256 of the client IP, user agent and a fixed set of
request headers. It is the only key shared by rate-limit, cooldown and abuse
state and is never reversed into the original values.

The client IP comes from the transport. Forwarding headers are caller
controlled, so they are read only when the peer is a configured trusted
proxy.
"""

from __future__ import annotations

import hashlib
import ipaddress
from collections.abc import Iterable, Mapping

FINGERPRINT_HEADERS: tuple[str, ...] = ("accept-language", "accept-encoding", "accept")

UNKNOWN_CLIENT = "unknown"

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def parse_trusted_proxies(cidrs: Iterable[str]) -> tuple[IPNetwork, ...]:
    """Parse proxy addresses or CIDR ranges.

    Raises:
        ValueError: If an entry is not an IP address or network

    Examples:
        >>> parse_trusted_proxies(["10.0.0.0/8", "127.0.0.1"])
        (IPv4Network('10.0.0.0/8'), IPv4Network('127.0.0.1/32'))
    """
    return tuple(ipaddress.ip_network(cidr.strip(), strict=False) for cidr in cidrs)


def _is_trusted(address: str, trusted_proxies: tuple[IPNetwork, ...]) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return any(ip in network for network in trusted_proxies)


def extract_client_ip(
    client_host: str | None,
    headers: Mapping[str, str],
    trusted_proxies: tuple[IPNetwork, ...] = (),
) -> str:
    """Resolve the caller IP.

    Forwarding headers are ignored unless ``client_host`` is a trusted proxy.
    Behind trusted proxies the right-most ``X-Forwarded-For`` hop that is not
    itself a trusted proxy is the caller; ``X-Real-IP`` is used when there is
    no ``X-Forwarded-For``.

    Args:
        client_host: Peer address reported by the transport
        headers: Request headers (case-insensitive mapping)
        trusted_proxies: Networks whose forwarding headers are believed

    Returns:
        Caller address, or ``unknown`` when the transport reports none
    """
    peer = client_host or UNKNOWN_CLIENT
    if not _is_trusted(peer, trusted_proxies):
        return peer

    hops = [hop.strip() for hop in headers.get("x-forwarded-for", "").split(",") if hop.strip()]
    for hop in reversed(hops):
        if not _is_trusted(hop, trusted_proxies):
            return hop
    if hops:
        # Every hop is a trusted proxy; the left-most is closest to the caller
        return hops[0]

    real_ip = headers.get("x-real-ip", "").strip()
    return real_ip or peer


def generate_fingerprint(
    client_ip: str,
    user_agent: str | None,
    headers: Mapping[str, str],
) -> str:
    """Hash transport-level identity into a stable fingerprint.

    Examples:
        >>> fp = generate_fingerprint("10.0.0.1", "curl/8.0", {})
        >>> len(fp)
        64
    """
    parts = [client_ip or UNKNOWN_CLIENT, user_agent or ""]
    parts.extend(headers.get(name, "") for name in FINGERPRINT_HEADERS)
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
