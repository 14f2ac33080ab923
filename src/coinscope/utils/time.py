from datetime import datetime, timezone

from loguru import logger

# Spans shorter than this are labelled with times of day, longer ones with dates.
INTRADAY_SPAN_MS = 2 * 24 * 60 * 60 * 1000
# Spans longer than this also carry the year.
MULTI_MONTH_SPAN_MS = 30 * 24 * 60 * 60 * 1000


def epoch_ms_to_datetime(timestamp_ms: int | float) -> datetime:
    """Converts epoch milliseconds to an aware UTC datetime.

    Raises:
        ValueError: If the timestamp is outside the platform's supported range.
    """
    try:
        return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        err_msg = f"Timestamp '{timestamp_ms}' ms is out of range."
        raise ValueError(err_msg) from e


def parse_iso_timestamp(value: str) -> datetime:
    """Parses an ISO 8601 string into an aware UTC datetime.

    The API emits strings such as ``2024-03-01T12:00:00.123Z``. Naive values
    are assumed to be UTC.

    Raises:
        ValueError: If the string is not a recognisable ISO 8601 timestamp.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt_obj = datetime.fromisoformat(text)
    except ValueError as e:
        logger.debug(f"Could not parse timestamp string '{value}': {e}")
        err_msg = f"Invalid or unrecognized timestamp string format: {value}"
        raise ValueError(err_msg) from e

    if dt_obj.tzinfo is None:
        return dt_obj.replace(tzinfo=timezone.utc)
    return dt_obj.astimezone(timezone.utc)


def describe_window(start_ms: int, end_ms: int) -> str:
    """Returns a short human label for the time range ``[start_ms, end_ms]``."""
    span = end_ms - start_ms
    if span < INTRADAY_SPAN_MS:
        string_format = "%b %d %H:%M"
    elif span < MULTI_MONTH_SPAN_MS:
        string_format = "%b %d"
    else:
        string_format = "%Y-%m-%d"

    start = epoch_ms_to_datetime(start_ms).strftime(string_format)
    end = epoch_ms_to_datetime(end_ms).strftime(string_format)
    return f"{start} - {end} UTC"
