"""Geolocation resolvers - IP address to coarse location.

Resolvers never raise: private, reserved or unresolvable addresses
yield an explicit unknown Location.
"""

import ipaddress
import logging
from typing import Mapping, Optional, Protocol, Union

import httpx

from riskgate.common.constants import TimeoutConstants
from riskgate.data.schemas.signals import Location


logger = logging.getLogger(__name__)


class GeolocationResolver(Protocol):
    """IP address -> coarse location."""

    def resolve(self, ip_address: str) -> Location:
        ...


def _public_address(ip_address: str) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
    """Parse an address, returning None for unparseable or non-public ones."""
    try:
        address = ipaddress.ip_address(ip_address)
    except ValueError:
        return None
    if (
        address.is_private
        or address.is_loopback
        or address.is_reserved
        or address.is_link_local
        or address.is_multicast
        or address.is_unspecified
    ):
        return None
    return address


class StaticGeolocationResolver:
    """Resolves addresses from a fixed CIDR -> Location table."""

    def __init__(
        self,
        networks: Optional[Mapping[str, Location]] = None,
        default: Optional[Location] = None,
    ):
        """Initialize resolver.

        Args:
            networks: CIDR blocks mapped to the location they belong to.
            default: Location for public addresses outside every block.
                Unknown if not provided.
        """
        self._networks = [
            (ipaddress.ip_network(cidr, strict=False), location)
            for cidr, location in (networks or {}).items()
        ]
        self._default = default or Location.unknown()

    def resolve(self, ip_address: str) -> Location:
        address = _public_address(ip_address)
        if address is None:
            return Location.unknown()

        for network, location in self._networks:
            if address.version == network.version and address in network:
                return location
        return self._default


class HttpGeolocationResolver:
    """Resolves addresses through an ip-api compatible JSON service.

    Expected response: {"status": "success", "country": ..., "regionName": ...,
    "city": ...}. Any transport error, timeout or unexpected payload
    results in an unknown location.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = TimeoutConstants.GEOLOCATION_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def resolve(self, ip_address: str) -> Location:
        if _public_address(ip_address) is None:
            return Location.unknown()

        try:
            response = self._client.get(
                f"{self.base_url}/json/{ip_address}", timeout=self.timeout
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                f"Geolocation lookup failed: {type(e).__name__}",
                extra={"ip_address": ip_address},
            )
            return Location.unknown()

        if not isinstance(payload, dict) or payload.get("status") != "success":
            return Location.unknown()

        country = payload.get("country")
        if not country:
            return Location.unknown()

        return Location(
            city=payload.get("city") or "",
            region=payload.get("regionName") or "",
            country=country,
        )

    def close(self) -> None:
        self._client.close()
