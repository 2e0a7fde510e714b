"""HTTP surface of the coordinator (aiohttp.web).

Device-facing routes are plain ``GET`` requests with query parameters,
so that firmware can call them with a bare HTTP client:

=================  ===========================================
``/api/update``    telemetry report, replies ``OK``
``/api/cmd``       command poll, replies ``NONE`` or a command
``/api/ack``       acknowledgment, replies ``OK``
``/api/time``      UTC time sync (JSON)
``/api/schedule``  sleep-interval tuple as ``SLEEP=a,b,c;``
=================  ===========================================

Operator-facing routes read and change the same per-device state
(``/api/state``, ``/api/history``, ``/api/queue_cmd``,
``/api/queue_status``, ``/api/clear_queue``, ``/api/clear_history``,
``/api/preheat``, ``/api/sleep``).

Every ``/api/*`` route requires the shared secret as ``key`` query
parameter or ``X-Api-Key`` header.  All routes take an optional
``device`` parameter selecting the device channel.
"""

from __future__ import annotations

import json
import logging
import secrets
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from pycarlink._redact import redact_for_log
from pycarlink.config import CarLinkConfig
from pycarlink.coordinator import Coordinator
from pycarlink.exceptions import CarLinkAuthError, InvalidParameterError, MissingParameterError
from pycarlink.geo import IpApiGeoLookup
from pycarlink.models.directives import SleepDirective
from pycarlink.models.schedule import PreheatSchedule, SleepSchedule

_logger = logging.getLogger(__name__)

COORDINATOR_KEY: web.AppKey[Coordinator] = web.AppKey("coordinator", Coordinator)
GEO_LOOKUP_KEY: web.AppKey[IpApiGeoLookup] = web.AppKey("geo_lookup", IpApiGeoLookup)

API_PREFIX = "/api/"
SECRET_PARAM = "key"
SECRET_HEADER = "X-Api-Key"
DEVICE_PARAM = "device"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def peer_address(request: web.Request) -> str | None:
    """Client address, honouring the first ``X-Forwarded-For`` hop."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",", 1)[0].strip()
    return first_hop or request.remote


def _check_secret(request: web.Request, expected: str) -> None:
    presented = request.query.get(SECRET_PARAM) or request.headers.get(SECRET_HEADER) or ""
    if not secrets.compare_digest(presented.encode(), expected.encode()):
        raise CarLinkAuthError(f"Rejected {request.method} {request.path} from {peer_address(request)}")


async def _read_params(request: web.Request) -> dict[str, Any]:
    """Query parameters merged with a form or JSON body (body wins)."""
    params: dict[str, Any] = dict(request.query)
    if request.method == "POST" and request.can_read_body:
        if request.content_type == "application/json":
            try:
                body = await request.json()
            except json.JSONDecodeError as exc:
                raise InvalidParameterError("Request body is not valid JSON") from exc
            if not isinstance(body, dict):
                raise InvalidParameterError("JSON body must be an object")
            params.update(body)
        else:
            params.update(await request.post())
    return params


def _device(request: web.Request) -> str | None:
    return request.query.get(DEVICE_PARAM)


class CarLinkApi:
    """Route handlers bound to one :class:`Coordinator`."""

    def __init__(self, coordinator: Coordinator) -> None:
        self._coordinator = coordinator

    # ------------------------------------------------------------------
    # Middlewares
    # ------------------------------------------------------------------

    @web.middleware
    async def auth_middleware(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        if request.path.startswith(API_PREFIX):
            try:
                _check_secret(request, self._coordinator.config.shared_secret)
            except CarLinkAuthError as exc:
                _logger.warning("%s", exc)
                raise web.HTTPUnauthorized(text="Unauthorized") from exc
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("%s %s %s", request.method, request.path, redact_for_log(dict(request.query)))
        return await handler(request)

    @web.middleware
    async def error_middleware(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except MissingParameterError as exc:
            raise web.HTTPBadRequest(text=str(exc)) from exc
        except ValidationError as exc:
            return web.json_response(
                {
                    "error": "Invalid parameters",
                    "details": exc.errors(include_url=False, include_context=False, include_input=False),
                },
                status=400,
            )

    # ------------------------------------------------------------------
    # Device-facing
    # ------------------------------------------------------------------

    async def handle_update(self, request: web.Request) -> web.Response:
        """Telemetry report; replaces the device's actual state."""
        device = _device(request)
        report = self._coordinator.report_telemetry(request.query, device=device, address=peer_address(request))
        self._coordinator.refresh_geo_in_background(device=device)
        _logger.info(
            "Update from %s: engine=%s heater=%d batt=%dmV",
            device or "default",
            report.engine,
            int(report.heater),
            report.battery_mv,
        )
        return web.Response(text="OK")

    async def handle_cmd(self, request: web.Request) -> web.Response:
        """Command poll: one command per poll, or ``NONE``."""
        return web.Response(text=self._coordinator.dequeue(device=_device(request)))

    async def handle_ack(self, request: web.Request) -> web.Response:
        params = await _read_params(request)
        self._coordinator.acknowledge(params.get("cmd"), params.get("status"), device=_device(request))
        return web.Response(text="OK")

    async def handle_time(self, request: web.Request) -> web.Response:
        now = self._coordinator.now()
        return web.json_response(
            {
                "epoch": int(now.timestamp()),
                "iso": now.isoformat(timespec="seconds").replace("+00:00", "Z"),
                "offset": self._coordinator.utc_offset(device=_device(request)),
            }
        )

    async def handle_schedule(self, request: web.Request) -> web.Response:
        """Sleep-interval tuple in directive form, e.g. ``SLEEP=5,300,600;``."""
        schedule = self._coordinator.sleep_schedule(device=_device(request))
        return web.Response(text=SleepDirective(values=schedule.as_tuple()).to_wire())

    # ------------------------------------------------------------------
    # Operator-facing
    # ------------------------------------------------------------------

    async def handle_state(self, request: web.Request) -> web.Response:
        snapshot = self._coordinator.snapshot(device=_device(request))
        return web.json_response(snapshot.model_dump(mode="json"))

    async def handle_history(self, request: web.Request) -> web.Response:
        """Ledger entries, oldest first.

        ``QUEUED`` means not acknowledged yet.  That includes preheat
        commands withdrawn from the queue by a newer schedule, which the
        device never receives.
        """
        entries = self._coordinator.history(device=_device(request))
        return web.json_response([entry.model_dump(mode="json") for entry in entries])

    async def handle_queue_cmd(self, request: web.Request) -> web.Response:
        params = await _read_params(request)
        self._coordinator.enqueue(params.get("cmd"), device=_device(request))
        return web.Response(text="OK")

    async def handle_queue_status(self, request: web.Request) -> web.Response:
        device = _device(request)
        return web.json_response(
            {
                "count": self._coordinator.queue_length(device=device),
                "pending": self._coordinator.pending_commands(device=device),
            }
        )

    async def handle_clear_queue(self, request: web.Request) -> web.Response:
        self._coordinator.clear_queue(device=_device(request))
        return web.Response(text="OK")

    async def handle_clear_history(self, request: web.Request) -> web.Response:
        self._coordinator.clear_history(device=_device(request))
        return web.Response(text="OK")

    async def handle_get_preheat(self, request: web.Request) -> web.Response:
        schedule = self._coordinator.preheat_schedule(device=_device(request))
        return web.json_response(schedule.model_dump(mode="json"))

    async def handle_set_preheat(self, request: web.Request) -> web.Response:
        """Replace the preheat schedule; omitted fields keep their current value."""
        device = _device(request)
        params = await _read_params(request)
        current = self._coordinator.preheat_schedule(device=device)
        schedule = PreheatSchedule.model_validate({**current.model_dump(), **params})
        directive = await self._coordinator.set_preheat_schedule(schedule, device=device)
        return web.json_response({"schedule": schedule.model_dump(mode="json"), "directive": directive.to_wire()})

    async def handle_get_sleep(self, request: web.Request) -> web.Response:
        schedule = self._coordinator.sleep_schedule(device=_device(request))
        return web.json_response(schedule.model_dump(mode="json"))

    async def handle_set_sleep(self, request: web.Request) -> web.Response:
        device = _device(request)
        params = await _read_params(request)
        current = self._coordinator.sleep_schedule(device=device)
        schedule = SleepSchedule.model_validate({**current.model_dump(), **params})
        self._coordinator.set_sleep_schedule(schedule, device=device)
        return web.json_response(schedule.model_dump(mode="json"))

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    def add_routes(self, app: web.Application) -> None:
        app.router.add_get("/health", self.handle_health)

        app.router.add_get("/api/update", self.handle_update)
        app.router.add_get("/api/cmd", self.handle_cmd)
        app.router.add_get("/api/ack", self.handle_ack)
        app.router.add_post("/api/ack", self.handle_ack)
        app.router.add_get("/api/time", self.handle_time)
        app.router.add_get("/api/schedule", self.handle_schedule)

        app.router.add_get("/api/state", self.handle_state)
        app.router.add_get("/api/history", self.handle_history)
        app.router.add_get("/api/queue_cmd", self.handle_queue_cmd)
        app.router.add_post("/api/queue_cmd", self.handle_queue_cmd)
        app.router.add_get("/api/queue_status", self.handle_queue_status)
        app.router.add_post("/api/clear_queue", self.handle_clear_queue)
        app.router.add_post("/api/clear_history", self.handle_clear_history)
        app.router.add_get("/api/preheat", self.handle_get_preheat)
        app.router.add_post("/api/preheat", self.handle_set_preheat)
        app.router.add_get("/api/sleep", self.handle_get_sleep)
        app.router.add_post("/api/sleep", self.handle_set_sleep)


def create_app(coordinator: Coordinator) -> web.Application:
    """Build the application around an existing coordinator."""
    api = CarLinkApi(coordinator)
    app = web.Application(middlewares=[api.auth_middleware, api.error_middleware])
    app[COORDINATOR_KEY] = coordinator
    api.add_routes(app)
    return app


def build_app(config: CarLinkConfig) -> web.Application:
    """Production wiring: coordinator with an ip-api lookup, closed on shutdown."""
    geo_lookup = IpApiGeoLookup(base_url=config.geo_base_url) if config.geo_enabled else None
    app = create_app(Coordinator(config, geo_lookup=geo_lookup))
    if geo_lookup is not None:
        app[GEO_LOOKUP_KEY] = geo_lookup

        async def _close_geo_lookup(app: web.Application) -> None:
            await app[GEO_LOOKUP_KEY].close()

        app.on_cleanup.append(_close_geo_lookup)
    return app
