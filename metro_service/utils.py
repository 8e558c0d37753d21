import re
from datetime import date, datetime
from typing import Optional

from dateutil import parser as date_parser

_DESCRIPTIVE_DATE = re.compile(r"daily|weekly|monthly|weekend|tbd|various|today|tomorrow|soon| - ", re.IGNORECASE)


def is_descriptive_date(value: str) -> bool:
  """True for free-text dates such as "Daily" or "This Weekend"."""
  return bool(_DESCRIPTIVE_DATE.search(value or ""))


def parse_event_date(value: Optional[str]) -> Optional[datetime]:
  """Parse an event date leniently; descriptive or garbled values give None."""
  if not value or is_descriptive_date(value):
    return None
  # weekday-only strings like "Wed-Sun" are not dates
  if not any(ch.isdigit() for ch in value):
    return None
  try:
    return date_parser.parse(value)
  except (ValueError, OverflowError):
    return None


def format_local_time(date_str: Optional[str], today: Optional[date] = None) -> str:
  if not date_str:
    return ""
  parsed = parse_event_date(date_str)
  if parsed is None:
    return date_str
  today = today or date.today()
  hour = parsed.hour % 12 or 12
  suffix = "AM" if parsed.hour < 12 else "PM"
  label = f"{parsed:%a}, {parsed:%b} {parsed.day}, {hour}:{parsed:%M} {suffix}"
  # only show the year when it is not the current one
  if parsed.year != today.year:
    label = f"{parsed:%a}, {parsed:%b} {parsed.day}, {parsed.year}, {hour}:{parsed:%M} {suffix}"
  return label
