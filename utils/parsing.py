from datetime import date, time


def parse_date(value: str, field: str) -> date:
    # Expect YYYY-MM-DD
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {field}. Use YYYY-MM-DD")


def parse_time(value: str, field: str) -> time:
    # Expect HH:MM
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {field}. Use HH:MM")
