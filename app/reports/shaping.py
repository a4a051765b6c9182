"""ADLENS: Row Shaping Helpers.

Google Ads returns numbers as strings and money in micros. These helpers
turn raw result rows into display values for the report payloads.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence


def pick(row: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted camelCase path (``"campaign.name"``) from a result row."""
    current: Any = row
    for part in path.split("."):
        if not isinstance(current, dict):
            return default
        current = current.get(part)
        if current is None:
            return default
    return current


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def to_int(value: Any, default: int = 0) -> int:
    return int(to_float(value, default))


def micros(value: Any) -> float:
    """Convert a micros amount (string or number) to currency units."""
    return to_float(value) / 1_000_000


def ratio(numerator: float, denominator: float) -> float:
    """``numerator / denominator``, or 0 when the denominator is not positive."""
    return numerator / denominator if denominator > 0 else 0.0


def display_round(value: float, decimals: int = 2) -> float:
    """Values with magnitude >= 10 round to integers, smaller ones to ``decimals``."""
    if abs(value) >= 10:
        return int(round(value))
    return round(value, decimals)


def round_roas(value: float) -> float:
    return display_round(value, 1)


def round2(value: float) -> float:
    return round(value, 2)


def round_numeric(data: Any, decimals: int = 2) -> Any:
    """Recursively round every float inside a JSON-like structure."""
    if isinstance(data, bool):
        return data
    if isinstance(data, float):
        return round(data, decimals)
    if isinstance(data, dict):
        return {k: round_numeric(v, decimals) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [round_numeric(v, decimals) for v in data]
    return data


def normalized_key(*parts: Any) -> str:
    """Case- and whitespace-insensitive composite key for cross-referencing."""
    return "|".join(str(p or "").strip().lower() for p in parts)


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def table(
    headers: Iterable[str], rows: Optional[List[list]] = None, comment: Optional[str] = None
) -> Dict[str, Any]:
    """Build a ``{headers, rows}`` table, with a leading ``comment`` when given."""
    out: Dict[str, Any] = {}
    if comment is not None:
        out["comment"] = comment
    out["headers"] = list(headers)
    out["rows"] = rows if rows is not None else []
    return out


def percent(part: float, whole: float, decimals: int = 1) -> float:
    return round(part / whole * 100, decimals) if whole > 0 else 0.0
