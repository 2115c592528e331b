from .timestamp import parse_timestamp, ensure_utc, resolve_timezone, local_date, month_key, day_start

__all__ = ["parse_timestamp", "ensure_utc", "resolve_timezone", "local_date", "month_key", "day_start"]
