"""Geolocation time cache.

Resolves the UTC offset of a device from the network address it last
reported from.  The offset is what turns a configured wall-clock preheat
time into a delay the device can count down.

Lookups go to an external service, so they are rate limited (one per
refresh interval per address, with a shorter back-off after failures)
and never raise into callers: a failed lookup keeps the last known
offset.
"""

from __future__ import annotations

import asyncio
import ipaddress
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

import aiohttp

from pycarlink import _constants as const
from pycarlink.exceptions import GeoLookupError

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def is_public_address(address: str) -> bool:
    """Only globally routable addresses can be geolocated."""
    try:
        return ipaddress.ip_address(address.strip()).is_global
    except ValueError:
        return False


class GeoLookup(Protocol):
    """Structural interface for address-to-offset lookups.

    Implementations raise :class:`GeoLookupError` on any failure.
    """

    async def lookup_offset(self, address: str) -> int:
        ...


class IpApiGeoLookup:
    """Lookup against an ip-api.com compatible JSON endpoint.

    Without an explicit *http_session* one is created on first use and
    closed by :meth:`close`.
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession | None = None,
        base_url: str = const.GEO_BASE_URL,
    ) -> None:
        self._external_session = http_session is not None
        self._http = http_session
        self._base_url = base_url.rstrip("/")

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self._http

    async def close(self) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    async def lookup_offset(self, address: str) -> int:
        """Return the UTC offset in seconds for *address*."""
        url = f"{self._base_url}/{address}"
        _logger.debug("GET %s", url)

        try:
            async with self._session().get(url, params={"fields": "status,message,offset"}) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise GeoLookupError(f"HTTP {resp.status} from geolocation lookup: {text[:200]}", address=address)
        except GeoLookupError:
            raise
        except aiohttp.ClientError as exc:
            raise GeoLookupError(f"Geolocation lookup failed: {exc}", address=address) from exc
        except UnicodeDecodeError as exc:
            raise GeoLookupError(f"Undecodable geolocation response: {exc}", address=address) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise GeoLookupError(f"Invalid JSON from geolocation lookup: {text[:200]}", address=address) from exc

        if not isinstance(body, dict) or body.get("status") != "success":
            message = body.get("message", "") if isinstance(body, dict) else ""
            raise GeoLookupError(f"Geolocation lookup rejected {address}: {message}", address=address)

        offset = body.get("offset")
        if isinstance(offset, bool) or not isinstance(offset, int):
            raise GeoLookupError(f"Missing 'offset' in geolocation response: {text[:200]}", address=address)
        return offset


class GeoTimeCache:
    """Cached UTC offset for one device's last-seen address.

    Parameters
    ----------
    lookup
        External lookup; ``None`` disables lookups and pins the offset
        to *default_offset_s*.
    clock
        Returns the current UTC time.
    refresh_interval_s
        A successful lookup for the same address is reused this long.
    retry_interval_s
        After a failed lookup, the same address is not retried sooner.
    timeout_s
        Upper bound for a single lookup.
    default_offset_s
        Offset until the first successful lookup.
    """

    def __init__(
        self,
        lookup: GeoLookup | None,
        *,
        clock: Callable[[], datetime] = _utcnow,
        refresh_interval_s: float = const.GEO_REFRESH_INTERVAL_S,
        retry_interval_s: float = const.GEO_RETRY_INTERVAL_S,
        timeout_s: float = const.GEO_LOOKUP_TIMEOUT_S,
        default_offset_s: int = 0,
    ) -> None:
        self._lookup = lookup
        self._clock = clock
        self._refresh_interval = timedelta(seconds=refresh_interval_s)
        self._retry_interval = timedelta(seconds=retry_interval_s)
        self._timeout_s = timeout_s
        self._offset = default_offset_s
        self._last_seen_address: str | None = None
        self._last_lookup_time: datetime | None = None
        self._failed_address: str | None = None
        self._last_failure_time: datetime | None = None
        self._inflight: asyncio.Task[int] | None = None
        self._inflight_address: str | None = None

    @property
    def offset_seconds(self) -> int:
        """Best known offset; never blocks."""
        return self._offset

    @property
    def last_seen_address(self) -> str | None:
        return self._last_seen_address

    @property
    def last_lookup_time(self) -> datetime | None:
        return self._last_lookup_time

    def needs_refresh(self, address: str | None) -> bool:
        if self._lookup is None or not address or not is_public_address(address):
            return False
        now = self._clock()
        if (
            address == self._last_seen_address
            and self._last_lookup_time is not None
            and now - self._last_lookup_time < self._refresh_interval
        ):
            return False
        if (
            address == self._failed_address
            and self._last_failure_time is not None
            and now - self._last_failure_time < self._retry_interval
        ):
            return False
        return True

    async def resolve_offset(self, address: str | None) -> int:
        """Return the offset for *address*, looking it up if the cache is stale.

        Waits at most the lookup timeout; on failure the last known
        offset is returned.
        """
        if address is None or not self.needs_refresh(address):
            return self._offset
        return await asyncio.shield(self._start_refresh(address))

    def refresh_in_background(self, address: str | None) -> asyncio.Task[int] | None:
        """Schedule a lookup for *address* if stale and return the task.

        Must be called from a running event loop.
        """
        if address is None or not self.needs_refresh(address):
            return None
        return self._start_refresh(address)

    def _start_refresh(self, address: str) -> asyncio.Task[int]:
        task = self._inflight
        if task is not None and not task.done() and self._inflight_address == address:
            return task
        task = asyncio.get_running_loop().create_task(self._refresh(address))
        self._inflight = task
        self._inflight_address = address
        return task

    async def _refresh(self, address: str) -> int:
        lookup = self._lookup
        if lookup is None:
            return self._offset
        try:
            offset = await asyncio.wait_for(lookup.lookup_offset(address), self._timeout_s)
        except GeoLookupError as exc:
            self._record_failure(address)
            _logger.warning("Keeping UTC offset %ds: %s", self._offset, exc)
            return self._offset
        except TimeoutError:
            self._record_failure(address)
            _logger.warning("Geolocation lookup for %s timed out; keeping UTC offset %ds", address, self._offset)
            return self._offset
        except Exception:
            self._record_failure(address)
            _logger.warning(
                "Geolocation lookup for %s failed unexpectedly; keeping UTC offset %ds",
                address,
                self._offset,
                exc_info=True,
            )
            return self._offset

        if offset != self._offset:
            _logger.info("UTC offset for %s is now %ds (was %ds)", address, offset, self._offset)
        self._offset = offset
        self._last_seen_address = address
        self._last_lookup_time = self._clock()
        self._failed_address = None
        self._last_failure_time = None
        return offset

    def _record_failure(self, address: str) -> None:
        self._failed_address = address
        self._last_failure_time = self._clock()
