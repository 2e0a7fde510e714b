#!/usr/bin/env python3
"""Simulated car controller for exercising a running coordinator.

Behaves like the firmware: reports telemetry, polls for one command,
applies it to its own state and acknowledges it, then sleeps for the
awake poll interval fetched from ``/api/schedule``.

Secret sourcing:
- CARLINK_SHARED_SECRET (or ``--key``)

Example::

    CARLINK_SHARED_SECRET=s3cret python scripts/device_sim.py --url http://localhost:3000 --cycles 5
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

import aiohttp

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pycarlink.directives import parse_command  # noqa: E402
from pycarlink.models import DesiredState, EngineMode, PreheatDirective, SleepDirective  # noqa: E402
from pycarlink.state.policy import apply_directive  # noqa: E402


class _SimulatedCar:
    def __init__(self) -> None:
        self.state = DesiredState()
        self.battery_mv = 12600
        self.sequence = 0
        self.preheat: PreheatDirective | None = None
        self.poll_interval_s = 5

    def apply(self, command: str) -> str:
        parsed = parse_command(command)
        for directive in parsed.directives:
            if isinstance(directive, PreheatDirective):
                self.preheat = None if directive.is_cancel else directive
            else:
                self.state = apply_directive(self.state, directive)
        if parsed.malformed:
            return "ERROR"
        return "SCHEDULED" if self.preheat is not None and parsed.has_preheat else "OK"

    def telemetry(self) -> dict[str, str]:
        self.sequence += 1
        if self.state.engine in (EngineMode.IGN, EngineMode.READY):
            self.battery_mv = min(14200, self.battery_mv + 40)
        elif self.state.heater:
            self.battery_mv = max(11000, self.battery_mv - 15 * self.state.level)
        return {
            "engine": str(self.state.engine),
            "heater": "1" if self.state.heater else "0",
            "level": str(self.state.level),
            "batt": str(self.battery_mv),
            "seq": str(self.sequence),
            "ph": "1" if self.preheat is not None else "0",
            "ph_left": str(self.preheat.delay_s) if self.preheat is not None else "0",
        }


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate a polling car controller against a pycarlink server")
    parser.add_argument("--url", default="http://localhost:3000", help="Base URL of the coordinator.")
    parser.add_argument("--key", default=None, help="Shared secret. Defaults to CARLINK_SHARED_SECRET.")
    parser.add_argument("--device", default=None, help="Device id; omitted means the default channel.")
    parser.add_argument("--cycles", type=int, default=0, help="Number of poll cycles; 0 runs until interrupted.")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Override the poll interval instead of using the server's sleep schedule.",
    )
    return parser.parse_args()


async def _cycle(http: aiohttp.ClientSession, base: str, params: dict[str, str], car: _SimulatedCar) -> None:
    async with http.get(f"{base}/api/update", params={**params, **car.telemetry()}) as resp:
        resp.raise_for_status()

    async with http.get(f"{base}/api/cmd", params=params) as resp:
        resp.raise_for_status()
        command = (await resp.text()).strip()

    if command != "NONE":
        status = car.apply(command)
        print(f"<- {command}  ({status})")
        async with http.get(f"{base}/api/ack", params={**params, "cmd": command, "status": status}) as resp:
            resp.raise_for_status()

    async with http.get(f"{base}/api/schedule", params=params) as resp:
        resp.raise_for_status()
        for directive in parse_command(await resp.text()).directives:
            if isinstance(directive, SleepDirective):
                car.poll_interval_s = directive.values[0]


async def _run(args: argparse.Namespace) -> int:
    key = args.key or os.environ.get("CARLINK_SHARED_SECRET")
    if not key:
        print("Missing shared secret: pass --key or set CARLINK_SHARED_SECRET")
        return 1

    params = {"key": key}
    if args.device:
        params["device"] = args.device
    base = args.url.rstrip("/")
    car = _SimulatedCar()

    async with aiohttp.ClientSession() as http:
        cycle = 0
        while args.cycles <= 0 or cycle < args.cycles:
            cycle += 1
            try:
                await _cycle(http, base, params, car)
            except aiohttp.ClientResponseError as exc:
                print(f"Server rejected request: HTTP {exc.status} {exc.message}")
                return 1
            except aiohttp.ClientError as exc:
                print(f"Poll failed: {exc}")
            print(f"   state={car.state.model_dump(mode='json')} batt={car.battery_mv}mV")
            await asyncio.sleep(args.interval if args.interval is not None else car.poll_interval_s)
    return 0


def main() -> int:
    args = _parse_args()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
