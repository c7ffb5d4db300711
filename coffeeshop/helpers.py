import time
from datetime import datetime, timezone
import hmac
from typing import Optional, Tuple


# ----------------------------
# Helpers
# ----------------------------
def now_ts() -> float:
    return time.time()


def to_iso(ts: float | None) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def ct_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


def format_rupiah(amount: int | float | None) -> str:
    # Indonesian grouping: 45000 -> "Rp 45.000"
    value = int(round(amount or 0))
    return "Rp " + f"{value:,}".replace(",", ".")


def format_datetime(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime(
        "%Y-%m-%d %H:%M"
    )


def parse_int(value, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def start_of_day(ts: float) -> float:
    d = datetime.fromtimestamp(ts, tz=timezone.utc)
    return d.replace(hour=0, minute=0, second=0, microsecond=0).timestamp()


def start_of_month(ts: float) -> float:
    d = datetime.fromtimestamp(ts, tz=timezone.utc)
    return d.replace(
        day=1, hour=0, minute=0, second=0, microsecond=0
    ).timestamp()


def month_bounds(year: int, month: int) -> Tuple[float, float]:
    """[first instant of month, first instant of next month) in UTC."""
    if not 1 <= month <= 12:
        raise ValueError("month must be within 1..12")
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start.timestamp(), end.timestamp()
