"""Date and time tool."""

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tools import tool, tool_error


@tool
def get_current_datetime(timezone: str = "") -> dict:
    """Get the current date and time.

    Args:
        timezone: Optional IANA time zone, e.g. "America/Chicago". Defaults to the server's zone.
    """
    if timezone:
        try:
            now = datetime.now(ZoneInfo(timezone))
        except (ZoneInfoNotFoundError, ValueError):
            return tool_error(f"Unknown time zone: {timezone}", fix="Use an IANA name like America/Chicago")
    else:
        now = datetime.now().astimezone()

    return {
        "datetime": now.isoformat(timespec="seconds"),
        "weekday": now.strftime("%A"),
        "timezone": timezone or now.tzname(),
    }
