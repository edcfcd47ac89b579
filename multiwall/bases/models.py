from __future__ import annotations

import json
import time
from enum import Enum
from typing import Any, Awaitable, Callable, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from multiwall.constants import WALL_TIMER_DEFAULT_INTERVAL_MS
from multiwall.logger import get_logger

log = get_logger(__name__)


class EnvelopeType(str, Enum):
    INIT = "init"
    TICK = "tick"
    STOP = "stop"
    CONFIG_UPDATE = "config-update"
    CONTROLLER_SYNC = "controller-sync"


class LayoutMode(str, Enum):
    CARD = "card"
    IMAGE = "image"


class GroupKind(str, Enum):
    CAROUSEL = "carousel"
    STATIC = "static"


class WallBaseModel(BaseModel):
    """camelCase on the wire, snake_case in Python, unknown fields ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        use_enum_values=False,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WallEnvelope(WallBaseModel):
    """A sequenced, typed message carrying rotation or configuration state."""

    type: EnvelopeType
    ts: float = Field(default_factory=lambda: time.time() * 1000)
    session_id: str
    sequence: int
    start_index: int = 0
    interval_ms: int = WALL_TIMER_DEFAULT_INTERVAL_MS
    products: list[str] = Field(default_factory=list)
    layout_mode: LayoutMode = LayoutMode.CARD
    group_id: str | None = None
    instance_id: str | None = None
    production_mode: bool = False
    start_time: float | None = None

    @field_validator("session_id")
    @classmethod
    def _validate_session_id(cls, value: str) -> str:
        if not value or len(value) > 100:
            raise ValueError("sessionId must be 1-100 characters")
        return value

    @field_validator("sequence")
    @classmethod
    def _validate_sequence(cls, value: int) -> int:
        if value < 0:
            raise ValueError("sequence cannot be negative")
        return value

    @field_validator("interval_ms", mode="before")
    @classmethod
    def _default_interval(cls, value: Any) -> Any:
        # null on the wire means "use the default"
        return WALL_TIMER_DEFAULT_INTERVAL_MS if value is None else value

    @field_validator("layout_mode", mode="before")
    @classmethod
    def _default_layout(cls, value: Any) -> Any:
        return LayoutMode.CARD if value in (None, "") else value


class ContentGroup(WallBaseModel):
    """A content group: carousel groups rotate, static groups show products[0]."""

    id: str
    name: str = ""
    kind: GroupKind = GroupKind.CAROUSEL
    products: list[str] = Field(default_factory=list)
    layout_mode: LayoutMode = LayoutMode.CARD
    production_mode: bool = False
    interval_seconds: int | None = None

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        if not value:
            raise ValueError("group id cannot be empty")
        return value

    @property
    def interval_ms(self) -> int:
        """Interval in ms; static groups and missing values fall back to the default."""
        if self.kind is GroupKind.STATIC or not self.interval_seconds:
            return WALL_TIMER_DEFAULT_INTERVAL_MS
        return self.interval_seconds * 1000


class ScreenIdentity(WallBaseModel):
    instance_id: str
    group_id: str
    position: int = 0

    @field_validator("position")
    @classmethod
    def _validate_position(cls, value: int) -> int:
        if value < 0:
            raise ValueError("position must be a non-negative integer")
        return value


class ConfigSnapshot(WallBaseModel):
    """Read-only group configuration fetched once by a screen at startup."""

    ad_groups: list[ContentGroup] = Field(default_factory=list)
    screen_assignments: dict[int, str] = Field(default_factory=dict)

    def group(self, group_id: str) -> ContentGroup | None:
        return next((g for g in self.ad_groups if g.id == group_id), None)


class ControllerState(WallBaseModel):
    """Persisted controller edit state."""

    interval_seconds: int = WALL_TIMER_DEFAULT_INTERVAL_MS // 1000
    products: str = ""
    layout_mode: LayoutMode = LayoutMode.CARD
    is_running: bool = False
    production_mode: bool = False


class WallInstance(WallBaseModel):
    """Tenant record."""

    id: str
    name: str
    created_at: float = Field(default_factory=lambda: time.time() * 1000)
    updated_at: float | None = None


class RelayFrame(WallBaseModel):
    """What the hosted relay puts on the wire for each triggered message."""

    channel: str
    event: str
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    ts: float = Field(default_factory=lambda: time.time() * 1000)


def parse_envelope(raw: str | bytes | dict[str, Any] | None) -> WallEnvelope | None:
    """
    Validate an inbound envelope.

    Malformed input never raises: it is logged and returned as None so the
    receiver can drop it and keep listening.
    """
    if raw is None:
        return None
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if not isinstance(data, dict):
            log.warning(f"Dropping non-object envelope: {data!r}")
            return None
        return WallEnvelope.model_validate(data)
    except (ValidationError, ValueError) as e:
        log.warning(f"Dropping malformed envelope: {e}")
        return None


EnvelopeHandler: TypeAlias = Callable[[dict[str, Any]], Awaitable[Any] | Any]
