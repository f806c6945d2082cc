"""Types for the DZSA launcher query API.

Response shape of https://dayzsalauncher.com/api/v1/query/<ip>:<port>.
Keys are camelCase on the wire; missing keys take zero values.
"""

from dataclasses import dataclass, field
from typing import Any


def format_host_port(ip: str, port: int) -> str:
    """Join host and port, bracketing IPv6 literals."""
    if ":" in ip:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


@dataclass
class Endpoint:
    """Endpoint of a DayZ server."""

    ip: str = ""
    port: int = 0

    def __str__(self) -> str:
        return format_host_port(self.ip, self.port)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Endpoint":
        data = data or {}
        return cls(ip=data.get("ip", ""), port=data.get("port", 0))

    def to_dict(self) -> dict[str, Any]:
        return {"ip": self.ip, "port": self.port}


@dataclass
class Mod:
    """A workshop mod loaded by a DayZ server."""

    name: str = ""
    steam_workshop_id: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Mod":
        return cls(
            name=data.get("name", ""),
            steam_workshop_id=data.get("steamWorkshopId", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "steamWorkshopId": self.steam_workshop_id}


# (attribute, wire key, default) for the scalar fields of ServerResult
_RESULT_FIELDS: list[tuple[str, str, Any]] = [
    ("battleye", "battlEye", False),
    ("environment", "environment", ""),
    ("first_person_only", "firstPersonOnly", False),
    ("folder", "folder", ""),
    ("game", "game", ""),
    ("game_port", "gamePort", 0),
    ("map", "map", ""),
    ("max_players", "maxPlayers", 0),
    ("mission", "mission", ""),
    ("name", "name", ""),
    ("name_override", "nameOverride", False),
    ("password", "password", False),
    ("players", "players", 0),
    ("profile", "profile", False),
    ("shard", "shard", ""),
    ("sponsor", "sponsor", False),
    ("time", "time", ""),
    ("time_acceleration", "timeAcceleration", 0),
    ("vac", "vac", False),
    ("version", "version", ""),
]


@dataclass
class ServerResult:
    """Result of a DayZ server query."""

    battleye: bool = False
    endpoint: Endpoint = field(default_factory=Endpoint)
    environment: str = ""
    first_person_only: bool = False
    folder: str = ""
    game: str = ""
    game_port: int = 0
    map: str = ""
    max_players: int = 0
    mission: str = ""
    mods: list[Mod] = field(default_factory=list)
    name: str = ""
    name_override: bool = False
    password: bool = False
    players: int = 0
    profile: bool = False
    shard: str = ""
    sponsor: bool = False
    time: str = ""
    time_acceleration: int = 0
    vac: bool = False
    version: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ServerResult":
        data = data or {}
        kwargs = {attr: data.get(key, default) for attr, key, default in _RESULT_FIELDS}
        return cls(
            endpoint=Endpoint.from_dict(data.get("endpoint")),
            mods=[Mod.from_dict(m) for m in data.get("mods") or []],
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {key: getattr(self, attr) for attr, key, _ in _RESULT_FIELDS}
        out["endpoint"] = self.endpoint.to_dict()
        out["mods"] = [m.to_dict() for m in self.mods]
        return dict(sorted(out.items()))


@dataclass
class QueryResponse:
    """Response from the DZSA query API."""

    result: ServerResult = field(default_factory=ServerResult)
    status: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryResponse":
        return cls(
            result=ServerResult.from_dict(data.get("result")),
            status=data.get("status", 0),
        )


@dataclass
class ServerEntry:
    """A single server in the list response (port + result)."""

    port: int
    result: ServerResult

    def to_dict(self) -> dict[str, Any]:
        return {"port": self.port, "result": self.result.to_dict()}
