"""pycarlink - Async polling coordinator for ESP32 car controllers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pycarlink")
except PackageNotFoundError:
    __version__ = "0+local"

from pycarlink.config import CarLinkConfig
from pycarlink.coordinator import Coordinator, DeviceChannel
from pycarlink.directives import format_command, parse_command, parse_directive
from pycarlink.exceptions import (
    CarLinkAuthError,
    CarLinkConfigError,
    CarLinkError,
    GeoLookupError,
    InvalidParameterError,
    MalformedDirectiveError,
    MissingParameterError,
)
from pycarlink.geo import GeoLookup, GeoTimeCache, IpApiGeoLookup
from pycarlink.models import (
    CommandStatus,
    DesiredState,
    EngineMode,
    HistoryEntry,
    ParsedCommand,
    PreheatDirective,
    PreheatSchedule,
    PreheatState,
    SleepSchedule,
    StateSnapshot,
    TelemetryReport,
)
from pycarlink.scheduler import PreheatScheduler, compute_preheat_delay

__all__ = [
    "__version__",
    "CarLinkAuthError",
    "CarLinkConfig",
    "CarLinkConfigError",
    "CarLinkError",
    "CommandStatus",
    "Coordinator",
    "DesiredState",
    "DeviceChannel",
    "EngineMode",
    "GeoLookup",
    "GeoLookupError",
    "GeoTimeCache",
    "HistoryEntry",
    "InvalidParameterError",
    "IpApiGeoLookup",
    "MalformedDirectiveError",
    "MissingParameterError",
    "ParsedCommand",
    "PreheatDirective",
    "PreheatSchedule",
    "PreheatScheduler",
    "PreheatState",
    "SleepSchedule",
    "StateSnapshot",
    "TelemetryReport",
    "compute_preheat_delay",
    "format_command",
    "parse_command",
    "parse_directive",
]
