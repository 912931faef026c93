"""
Visitor country detection for payment routing.

Order of precedence:
1. Country header set by the edge (cf-ipcountry, x-vercel-ip-country)
2. ip-api.com lookup of the client IP
3. DEFAULT_COUNTRY_CODE

Unknown visitors fall back to the default country, which routes to the
international provider.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

import httpx

from panelpass.config.settings import get_settings

logger = logging.getLogger(__name__)

EDGE_COUNTRY_HEADERS = ("cf-ipcountry", "x-vercel-ip-country")
CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")

IP_API_URL = "http://ip-api.com/json/{ip}?fields=status,country,countryCode"

# Cloudflare sends XX for unknown and T1 for Tor
_UNKNOWN_EDGE_CODES = {"", "XX", "T1"}


@dataclass(frozen=True)
class GeoResult:
    country_code: str
    source: str  # "edge" | "lookup" | "default"

    @property
    def is_nigeria(self) -> bool:
        return self.country_code == "NG"


def get_client_ip(headers: Mapping[str, str], fallback: Optional[str] = None) -> Optional[str]:
    """Client IP from proxy headers, first hop of x-forwarded-for wins."""
    for name in CLIENT_IP_HEADERS:
        value = headers.get(name)
        if value:
            return value.split(",")[0].strip()
    return fallback


def _is_public_ip(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return address.is_global


async def lookup_country(ip: str, timeout: float = 3.0) -> Optional[str]:
    """
    Resolve an IP to an ISO country code with ip-api.com.

    Returns:
        Upper-case country code, or None if the lookup fails
    """
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout)) as client:
            response = await client.get(
                IP_API_URL.format(ip=ip),
                headers={"Accept": "application/json"}
            )
    except httpx.HTTPError as e:
        logger.warning("Geo lookup failed", extra={"ip": ip, "error": str(e)})
        return None

    if response.status_code != 200:
        logger.warning("Geo lookup returned error status", extra={
            "ip": ip,
            "status_code": response.status_code
        })
        return None

    try:
        data = response.json()
    except ValueError:
        return None

    if data.get("status") == "success" and data.get("countryCode"):
        return str(data["countryCode"]).upper()
    return None


async def detect_country(headers: Mapping[str, str], client_host: Optional[str] = None) -> GeoResult:
    """
    Detect the visitor's country from request headers.

    Args:
        headers: Request headers (case-insensitive mapping)
        client_host: Socket peer address, used when no proxy header is set
    """
    settings = get_settings()

    for name in EDGE_COUNTRY_HEADERS:
        code = (headers.get(name) or "").strip().upper()
        if code not in _UNKNOWN_EDGE_CODES:
            return GeoResult(country_code=code, source="edge")

    ip = get_client_ip(headers, fallback=client_host)
    if ip and settings.geo_lookup_enabled and _is_public_ip(ip):
        code = await lookup_country(ip)
        if code:
            return GeoResult(country_code=code, source="lookup")

    return GeoResult(country_code=settings.default_country_code, source="default")
