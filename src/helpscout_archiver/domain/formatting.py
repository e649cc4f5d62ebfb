from __future__ import annotations

from datetime import UTC, datetime, tzinfo

from helpscout_archiver.adapters.helpscout.models import Person

_SIZE_UNITS = ("B", "KB", "MB", "GB")

_THREAD_TYPE_ICONS: dict[str, str] = {
    "customer": "💬",
    "message": "📧",
    "reply": "↩️",
    "forward": "➡️",
    "note": "📝",
    "phone": "📞",
    "chat": "💭",
}
_DEFAULT_ICON = "•"


def format_file_size(size_bytes: int | float) -> str:
    size = float(size_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.1f} {_SIZE_UNITS[unit_index]}"


def format_person(person: Person | None) -> str:
    """Display name as `First Last (email)`, falling back to name, then email, then "Unknown"."""
    if person is None:
        return "Unknown"

    name = " ".join(part for part in (person.first_name, person.last_name) if part)
    if name and person.email:
        return f"{name} ({person.email})"
    return name or person.email or "Unknown"


def format_date(value: datetime | None, tz: tzinfo = UTC) -> str:
    """Human-readable timestamp, e.g. "January 5, 2024, 10:30 AM UTC"."""
    if value is None:
        return "Unknown"
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    local = value.astimezone(tz)
    zone = local.tzname() or ""
    return f"{local:%B} {local.day}, {local.year}, {local:%I:%M %p} {zone}".rstrip()


def thread_type_icon(thread_type: str | None) -> str:
    return _THREAD_TYPE_ICONS.get((thread_type or "").lower(), _DEFAULT_ICON)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_duration(total_minutes: int) -> str:
    """Coarsest non-zero unit pair: days+hours, hours+minutes, or minutes."""
    minutes = max(0, int(total_minutes))
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{_plural(days, 'day')} {_plural(hours % 24, 'hour')}"
    if hours > 0:
        return f"{_plural(hours, 'hour')} {_plural(minutes % 60, 'minute')}"
    return _plural(minutes, "minute")
