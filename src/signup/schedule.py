"""
Call schedule options and summaries.
"""

WEEKDAYS = [
    {"id": "monday", "label": "Monday", "short": "Mon"},
    {"id": "tuesday", "label": "Tuesday", "short": "Tue"},
    {"id": "wednesday", "label": "Wednesday", "short": "Wed"},
    {"id": "thursday", "label": "Thursday", "short": "Thu"},
    {"id": "friday", "label": "Friday", "short": "Fri"},
    {"id": "saturday", "label": "Saturday", "short": "Sat"},
    {"id": "sunday", "label": "Sunday", "short": "Sun"},
]
VALID_DAY_IDS = [d["id"] for d in WEEKDAYS]

FIRST_CALL_HOUR = 8
LAST_CALL_HOUR = 20


def generate_time_slots() -> list[dict]:
    """30-minute slots from 08:00 through 20:30 as {"value": "HH:MM", "label": "h:MM AM"}."""
    slots = []
    for hour in range(FIRST_CALL_HOUR, LAST_CALL_HOUR + 1):
        for minute in (0, 30):
            hour12 = hour - 12 if hour > 12 else (12 if hour == 0 else hour)
            ampm = "PM" if hour >= 12 else "AM"
            slots.append({
                "value": f"{hour:02d}:{minute:02d}",
                "label": f"{hour12}:{minute:02d} {ampm}",
            })
    return slots


TIME_SLOTS = generate_time_slots()
VALID_TIMES = {slot["value"] for slot in TIME_SLOTS}


def format_time(value: str) -> str:
    """12-hour label for a slot value; unknown values are returned as-is."""
    for slot in TIME_SLOTS:
        if slot["value"] == value:
            return slot["label"]
    return value


def time_of_day(value: str) -> str:
    """Bucket an HH:MM time: morning (<12), afternoon (<17), evening."""
    hour = int(value.split(":")[0])
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    return "evening"


def call_frequency(days: list[str]) -> str:
    """Frequency stored on the patient record."""
    if len(days) == 7:
        return "daily"
    if len(days) == 1:
        return "weekly"
    return "custom"


def call_frequency_label(day_count: int) -> str:
    if day_count == 1:
        return "1 call per week"
    if day_count == 7:
        return "Daily calls"
    return f"{day_count} calls per week"


def call_schedule_summary(day_count: int, tod: str | None) -> str:
    """Checkout summary line, e.g. "3 calls per week in the afternoon"."""
    return f"{call_frequency_label(day_count)} in the {tod or 'afternoon'}"
