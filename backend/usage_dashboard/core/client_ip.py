"""Secure client IP detection for requests behind reverse proxies.

Rate-limit keys are built from the client IP, so a spoofable IP would let an
attacker rotate keys and bypass login throttling.

SECURITY CONSIDERATIONS:
- X-Forwarded-For can be spoofed by clients
- Only trust proxy headers from known, trusted proxy IPs
- The rightmost non-proxy IP in X-Forwarded-For is the client IP
- Fall back to the socket peer address when not behind a trusted proxy
"""

import ipaddress
import logging
from functools import lru_cache

from starlette.requests import Request

logger = logging.getLogger(__name__)

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@lru_cache(maxsize=8)
def parse_trusted_proxies(trusted_proxy_ips: str) -> tuple[IPNetwork, ...]:
    """Parse a comma-separated list of IPs/CIDRs into networks.

    Invalid entries are logged and skipped.
    """
    networks = []
    for ip_str in trusted_proxy_ips.split(","):
        ip_str = ip_str.strip()
        if not ip_str:
            continue
        try:
            # A bare address becomes a /32 (or /128) network
            networks.append(ipaddress.ip_network(ip_str, strict=False))
        except ValueError as e:
            logger.warning("Invalid trusted proxy IP/network '%s': %s", ip_str, e)
    return tuple(networks)


def _is_trusted_proxy(ip_str: str, networks: tuple[IPNetwork, ...]) -> bool:
    try:
        ip_addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(ip_addr in network for network in networks)


def _valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def get_client_ip(request: Request, trusted_proxy_ips: str = "") -> str:
    """
    Get the real client IP address from a request.

    Algorithm:
    1. Get the direct connection IP (request.client.host)
    2. If the direct IP is from a trusted proxy, parse X-Forwarded-For
    3. Walk X-Forwarded-For from right to left, returning the first
       non-trusted-proxy IP
    4. Try X-Real-IP, then fall back to the direct IP

    Returns:
        Client IP address string, or "unknown" if it cannot be determined
    """
    direct_ip = request.client.host if request.client else None
    if not direct_ip:
        return "unknown"

    networks = parse_trusted_proxies(trusted_proxy_ips)
    if not _is_trusted_proxy(direct_ip, networks):
        return direct_ip

    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        # Format: "client, proxy1, proxy2, ..."
        ips = [ip.strip() for ip in x_forwarded_for.split(",")]
        for ip in reversed(ips):
            if not ip:
                continue
            if not _valid_ip(ip):
                logger.warning("Invalid IP in X-Forwarded-For: %s", ip)
                continue
            if not _is_trusted_proxy(ip, networks):
                return ip

        # All IPs in chain are trusted proxies - unusual, return leftmost
        if ips and _valid_ip(ips[0]):
            return ips[0]

    x_real_ip = (request.headers.get("X-Real-IP") or "").strip()
    if x_real_ip:
        if _valid_ip(x_real_ip):
            return x_real_ip
        logger.warning("Invalid X-Real-IP header: %s", x_real_ip)

    return direct_ip
