"""ADLENS: GAQL Query Builder.

Resolves caller-supplied time ranges into windows and builds queries as an
immutable tree (``Query`` plus condition nodes). ``render_query`` is the only
place GAQL text is produced: string literals are escaped and identifiers are
validated there, so report definitions never concatenate filter strings.
"""

import re
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple, Union

from pydantic import BaseModel

from app.core.logging import get_logger

logger = get_logger("query.builder")

# ── Time Windows ──

PRESETS = frozenset(
    {
        "TODAY",
        "YESTERDAY",
        "LAST_7_DAYS",
        "LAST_14_DAYS",
        "LAST_30_DAYS",
        "THIS_WEEK_SUN_TODAY",
        "THIS_WEEK_MON_TODAY",
        "THIS_MONTH",
        "LAST_MONTH",
        "THIS_QUARTER",
        "LAST_QUARTER",
        "THIS_YEAR",
        "LAST_YEAR",
    }
)

# Legacy front-end tokens
PRESET_ALIASES = {
    "7days": "LAST_7_DAYS",
    "30days": "LAST_30_DAYS",
    "yesterday": "YESTERDAY",
    "today": "TODAY",
    "CURRENT_MONTH": "THIS_MONTH",
}
TRAILING_ALIASES = {"180days": 180, "LAST_400_DAYS": 400}

ALL_TIME_SENTINELS = frozenset({"ALL_TIME", "alltime"})
DEFAULT_TRAILING_DAYS = 180
EXPLICIT_RANGE = re.compile(r"^\d{4}-\d{2}-\d{2},\d{4}-\d{2}-\d{2}$")

# change_event rejects long or open-ended ranges (START_DATE_TOO_OLD)
EVENT_SAFE_PRESETS = frozenset(
    {"TODAY", "YESTERDAY", "LAST_14_DAYS", "THIS_WEEK_SUN_TODAY", "THIS_WEEK_MON_TODAY"}
)
EVENT_DEFAULT_PRESET = "LAST_14_DAYS"


class WindowKind(str, Enum):
    NONE = "none"
    PRESET = "preset"
    RANGE = "range"


class Window(BaseModel):
    """A resolved date window: a named preset, an explicit range, or none."""

    model_config = {"frozen": True}

    kind: WindowKind
    preset: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None

    @classmethod
    def unbounded(cls) -> "Window":
        return cls(kind=WindowKind.NONE)

    @classmethod
    def of_preset(cls, name: str) -> "Window":
        if name not in PRESETS:
            raise QueryBuildError(f"Unknown date preset: {name}")
        return cls(kind=WindowKind.PRESET, preset=name)

    @classmethod
    def between(cls, start: date, end: date) -> "Window":
        return cls(kind=WindowKind.RANGE, start=start, end=end)

    @classmethod
    def trailing(
        cls, days: int, today: Optional[date] = None, end_offset: int = 0
    ) -> "Window":
        """``days`` back from today through ``today - end_offset``."""
        today = today or utc_today()
        return cls.between(today - timedelta(days=days), today - timedelta(days=end_offset))

    @property
    def is_bounded(self) -> bool:
        return self.kind != WindowKind.NONE

    @property
    def label(self) -> str:
        if self.kind == WindowKind.PRESET:
            return self.preset
        if self.kind == WindowKind.RANGE:
            return f"{self.start.isoformat()},{self.end.isoformat()}"
        return "ALL_TIME"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _parse_explicit_range(value: str) -> Optional[Window]:
    if not EXPLICIT_RANGE.match(value):
        return None
    start_str, end_str = value.split(",")
    try:
        return Window.between(date.fromisoformat(start_str), date.fromisoformat(end_str))
    except ValueError:
        return None


def resolve_time_window(value: Optional[str] = None, today: Optional[date] = None) -> Window:
    """Resolve a caller time range into a ``Window``.

    Never raises. Empty or unrecognized input resolves to the trailing
    180-day range; the all-time sentinels resolve to an unbounded window.
    """
    if not value:
        return Window.trailing(DEFAULT_TRAILING_DAYS, today)

    if value in ALL_TIME_SENTINELS:
        return Window.unbounded()

    if value in PRESETS:
        return Window.of_preset(value)

    if value in PRESET_ALIASES:
        return Window.of_preset(PRESET_ALIASES[value])

    if value in TRAILING_ALIASES:
        return Window.trailing(TRAILING_ALIASES[value], today)

    explicit = _parse_explicit_range(value)
    if explicit is not None:
        return explicit

    logger.warning(
        f'Invalid timeRange format: "{value}". Using {DEFAULT_TRAILING_DAYS} days instead.'
    )
    return Window.trailing(DEFAULT_TRAILING_DAYS, today)


def clamp_event_window(value: Optional[str] = None, today: Optional[date] = None) -> Window:
    """Window for change-event queries, clamped to a short preset.

    Anything other than a short preset (all time, 7/30 days, quarters,
    explicit or default ranges) becomes LAST_14_DAYS.
    """
    resolved = resolve_time_window(value, today)
    if resolved.kind == WindowKind.PRESET and resolved.preset in EVENT_SAFE_PRESETS:
        return resolved
    logger.info(f"{value!r} not supported for change events, using {EVENT_DEFAULT_PRESET}")
    return Window.of_preset(EVENT_DEFAULT_PRESET)


# ── Query Tree ──


class QueryBuildError(ValueError):
    """Raised when a query node cannot be rendered as valid GAQL."""


class Enumerated(BaseModel):
    """A bare GAQL enum literal such as ``AREA_OF_INTEREST``."""

    model_config = {"frozen": True}

    name: str


Scalar = Union[Enumerated, bool, int, float, str]


class Compare(BaseModel):
    model_config = {"frozen": True}

    field: str
    op: str
    value: Scalar


class InList(BaseModel):
    model_config = {"frozen": True}

    field: str
    values: Tuple[Scalar, ...]


class DateWindow(BaseModel):
    model_config = {"frozen": True}

    window: Window
    field: str = "segments.date"


Condition = Union[Compare, InList, DateWindow]


class OrderBy(BaseModel):
    model_config = {"frozen": True}

    field: str
    descending: bool = True


class Query(BaseModel):
    """Immutable GAQL query. Builder methods return new instances."""

    model_config = {"frozen": True}

    resource: str
    fields: Tuple[str, ...]
    conditions: Tuple[Condition, ...] = ()
    order_by: Tuple[OrderBy, ...] = ()
    limit: Optional[int] = None

    def where(self, *conditions: Optional[Condition]) -> "Query":
        """Add conditions (AND). ``None`` entries are skipped."""
        added = tuple(c for c in conditions if c is not None)
        return self.model_copy(update={"conditions": self.conditions + added})

    def ordered_by(self, field: str, descending: bool = True) -> "Query":
        order = OrderBy(field=field, descending=descending)
        return self.model_copy(update={"order_by": self.order_by + (order,)})

    def limited(self, limit: int) -> "Query":
        return self.model_copy(update={"limit": limit})

    def render(self) -> str:
        return render_query(self)


def select(resource: str, *fields: str) -> Query:
    return Query(resource=resource, fields=tuple(fields))


# ── Condition Helpers ──

ACTIVE_STATUSES = ("ENABLED", "PAUSED")


def eq(field: str, value: Scalar) -> Compare:
    return Compare(field=field, op="=", value=value)


def gt(field: str, value: Scalar) -> Compare:
    return Compare(field=field, op=">", value=value)


def ne(field: str, value: Scalar) -> Compare:
    return Compare(field=field, op="!=", value=value)


def is_in(field: str, *values: Scalar) -> InList:
    return InList(field=field, values=tuple(values))


def enum_in(field: str, *names: str) -> InList:
    return InList(field=field, values=tuple(Enumerated(name=n) for n in names))


def active(field: str) -> InList:
    """``<field> IN ('ENABLED', 'PAUSED')``."""
    return is_in(field, *ACTIVE_STATUSES)


def during(window: Window, field: str = "segments.date") -> Optional[DateWindow]:
    """Date condition for a window; ``None`` when the window is unbounded."""
    if not window.is_bounded:
        return None
    return DateWindow(window=window, field=field)


def campaign_filter(campaign_id: Optional[str]) -> Optional[Compare]:
    if not campaign_id:
        return None
    return eq("campaign.id", str(campaign_id))


# ── Serializer ──

_FIELD = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")
_ENUM = re.compile(r"^[A-Z][A-Z0-9_]*$")
_OPERATORS = frozenset({"=", "!=", ">", ">=", "<", "<=", "LIKE", "NOT LIKE"})


def quote(value: str) -> str:
    """Single-quote a GAQL string literal, escaping backslashes and quotes."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _identifier(name: str) -> str:
    if not _FIELD.match(name):
        raise QueryBuildError(f"Invalid GAQL field name: {name!r}")
    return name


def _literal(value: Scalar) -> str:
    if isinstance(value, Enumerated):
        if not _ENUM.match(value.name):
            raise QueryBuildError(f"Invalid GAQL enum literal: {value.name!r}")
        return value.name
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    return quote(str(value))


def render_condition(condition: Condition) -> str:
    if isinstance(condition, DateWindow):
        field = _identifier(condition.field)
        window = condition.window
        if window.kind == WindowKind.PRESET:
            return f"{field} DURING {window.preset}"
        if window.kind == WindowKind.RANGE:
            return (
                f"{field} BETWEEN {quote(window.start.isoformat())} "
                f"AND {quote(window.end.isoformat())}"
            )
        raise QueryBuildError("Unbounded window cannot be rendered as a condition")

    if isinstance(condition, InList):
        if not condition.values:
            raise QueryBuildError(f"Empty IN list for {condition.field}")
        values = ", ".join(_literal(v) for v in condition.values)
        return f"{_identifier(condition.field)} IN ({values})"

    if condition.op not in _OPERATORS:
        raise QueryBuildError(f"Unsupported operator: {condition.op!r}")
    return f"{_identifier(condition.field)} {condition.op} {_literal(condition.value)}"


def render_query(query: Query) -> str:
    """Serialize a ``Query`` into GAQL text."""
    if not query.fields:
        raise QueryBuildError("Query must select at least one field")
    lines = [
        "SELECT " + ", ".join(_identifier(f) for f in query.fields),
        f"FROM {_identifier(query.resource)}",
    ]
    if query.conditions:
        lines.append("WHERE " + " AND ".join(render_condition(c) for c in query.conditions))
    if query.order_by:
        lines.append(
            "ORDER BY "
            + ", ".join(
                f"{_identifier(o.field)} {'DESC' if o.descending else 'ASC'}"
                for o in query.order_by
            )
        )
    if query.limit is not None:
        lines.append(f"LIMIT {int(query.limit)}")
    return "\n".join(lines)


# ── String Fragments ──


def build_date_filter(value: Optional[str] = None, today: Optional[date] = None) -> str:
    """GAQL date fragment for a caller time range; ``""`` for all time."""
    condition = during(resolve_time_window(value, today))
    return render_condition(condition) if condition else ""


def build_entity_filter(campaign_id: Optional[str] = None) -> str:
    """GAQL campaign equality fragment; ``""`` when no campaign is given."""
    condition = campaign_filter(campaign_id)
    return render_condition(condition) if condition else ""
