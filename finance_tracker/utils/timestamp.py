"""Timestamp parsing and timezone utilities."""
from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo

from dateutil import parser


def parse_timestamp(s: str) -> datetime:
    """
    Parse a timestamp string into a timezone-aware datetime.
    
    Supports multiple formats:
    - ISO format with "Z" suffix: "2024-01-02T09:10:00Z"
    - ISO format with timezone: "2024-01-02T09:10:00+00:00"
    - ISO format without timezone: "2024-01-02T09:10:00"
    - Plain dates: "2024-01-02"
    - Space-separated: "2024-01-02 09:10:00"
    - Anything else dateutil understands, e.g. "02 Jan 2024"
    
    Naive values are taken to be UTC.
    
    Args:
        s: Timestamp string
        
    Returns:
        datetime object
        
    Raises:
        ValueError: If timestamp cannot be parsed
    """
    if not s:
        raise ValueError("Empty timestamp string")
    
    s = s.strip()
    
    # Convert trailing "Z" to "+00:00" for ISO format compatibility
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    
    try:
        return ensure_utc(datetime.fromisoformat(s))
    except ValueError:
        pass
    
    if " " in s and "T" not in s:
        try:
            return ensure_utc(datetime.fromisoformat(s.replace(" ", "T")))
        except ValueError:
            pass
    
    try:
        return ensure_utc(parser.parse(s))
    except (ValueError, OverflowError) as e:
        raise ValueError(
            f"Unable to parse timestamp: {s}. Expected ISO format "
            "(e.g., '2024-01-02T09:10:00Z' or '2024-01-02')"
        ) from e


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes; leave aware ones untouched."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def resolve_timezone(name: str) -> tzinfo:
    """Map a configured zone name to a tzinfo. "UTC" avoids a tzdata lookup."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def local_date(dt: datetime, tz: tzinfo) -> date:
    """Calendar date of `dt` as seen in `tz`."""
    return ensure_utc(dt).astimezone(tz).date()


def month_key(dt: datetime, tz: tzinfo) -> tuple[int, int]:
    """(year, month) of `dt` as seen in `tz`."""
    d = local_date(dt, tz)
    return d.year, d.month



def day_start(d: date, tz: tzinfo) -> datetime:
    """First instant of calendar day `d` in `tz`, expressed in UTC."""
    return datetime.combine(d, time.min, tzinfo=tz).astimezone(timezone.utc)
