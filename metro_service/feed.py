"""Home feed aggregation.

The feed is the union of three sources, in this priority order:

1. sponsored events for the city (static catalog),
2. organizer-submitted events an admin approved,
3. AI-generated recommendations (cached, paged with "load more").

Duplicates are removed by (name, address) keeping the first occurrence, so a
sponsored listing always wins over an AI suggestion for the same venue.
Sponsored events are pinned to the top; everything else keeps source order
or, when the user shared a location, is ordered by distance.
"""

import logging
import math
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time as dt_time
from typing import Callable, Dict, List, Optional, Tuple

from metro_service.catalog import category_display_name
from metro_service.models import (
  City,
  EventRecommendation,
  FeedItem,
  FeedResponse,
  SearchFilters,
  SearchSuggestion,
  UserLocation,
)
from metro_service.utils import parse_event_date

logger = logging.getLogger("metro_service")

AD_SLOT_INDEX = 3
MIN_FIRST_PAGE = 4
EARTH_RADIUS_KM = 6371
KM_TO_MILES = 0.621371
_PRICE_PLACEHOLDERS = {"varies", "unknown", "n/a", "tbd", ""}


def event_identity(event: EventRecommendation) -> Tuple[str, Optional[str]]:
  return (event.name, event.location.address if event.location else None)


def _matches_category(event: EventRecommendation, filters: SearchFilters) -> bool:
  if not filters.category:
    return True
  return event.category == category_display_name(filters.category)


def relevant_sponsored(
  sponsored: List[EventRecommendation], city: City, filters: SearchFilters
) -> List[EventRecommendation]:
  results: List[EventRecommendation] = []
  city_lower = city.name.lower()
  for event in sponsored:
    if not event:
      continue
    if event.cityId and event.cityId != city.id:
      continue
    address = event.location.address if event.location else ""
    if not event.cityId and address and city_lower not in address.lower():
      continue
    if not _matches_category(event, filters):
      continue
    if filters.query:
      q = filters.query.lower()
      haystacks = [event.name, event.description, event.category]
      if not any(q in (text or "").lower() for text in haystacks):
        continue
    results.append(event)
  return results


def relevant_approved(
  approved: List[EventRecommendation], city: City, filters: SearchFilters
) -> List[EventRecommendation]:
  results: List[EventRecommendation] = []
  city_lower = city.name.lower()
  for event in approved:
    if not event or not event.location or not event.location.address:
      continue
    if city_lower not in event.location.address.lower():
      continue
    if not _matches_category(event, filters):
      continue
    if filters.query:
      q = filters.query.lower()
      if q not in (event.name or "").lower() and q not in (event.description or "").lower():
        continue
    results.append(event)
  return results


def merge_events(
  sponsored: List[EventRecommendation],
  approved: List[EventRecommendation],
  generated: List[EventRecommendation],
) -> List[EventRecommendation]:
  seen = set()
  merged: List[EventRecommendation] = []
  for event in [*sponsored, *approved, *generated]:
    if not event or not event.name or not event.location:
      continue
    key = event_identity(event)
    if key in seen:
      continue
    seen.add(key)
    merged.append(event)
  return merged


def distance_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
  """Haversine distance in miles."""
  d_lat = math.radians(lat2 - lat1)
  d_lon = math.radians(lon2 - lon1)
  a = (
    math.sin(d_lat / 2) ** 2
    + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
  )
  c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
  return EARTH_RADIUS_KM * c * KM_TO_MILES


def _distance_to(event: EventRecommendation, origin: UserLocation) -> float:
  if not event.location:
    return math.inf
  return distance_miles(origin.lat, origin.lng, event.location.latitude, event.location.longitude)


def sort_events(
  events: List[EventRecommendation],
  sort_by: str = "recommended",
  user_location: Optional[UserLocation] = None,
) -> List[EventRecommendation]:
  # sorted() is stable, so the source order survives inside each group
  if sort_by == "distance" and user_location:
    return sorted(events, key=lambda e: (not e.isSponsored, _distance_to(e, user_location)))
  return sorted(events, key=lambda e: not e.isSponsored)


def price_display(event: EventRecommendation) -> str:
  price = (event.price or "").strip()
  lower = price.lower()
  if lower not in _PRICE_PLACEHOLDERS:
    if lower in ("0", "$0", "free"):
      return "Free"
    return price
  if event.priceLevel:
    if event.priceLevel in ("Free", "0", "$0"):
      return "Free"
    return event.priceLevel
  return "See details"


def apply_price_filter(events: List[EventRecommendation], price: str) -> List[EventRecommendation]:
  if price == "free":
    return [e for e in events if price_display(e).lower() == "free"]
  if price == "paid":
    return [e for e in events if price_display(e).lower() != "free"]
  return list(events)


def distance_label(event: EventRecommendation, user_location: Optional[UserLocation]) -> Optional[str]:
  if not user_location or not event.location:
    return None
  return f"{_distance_to(event, user_location):.1f} mi"


def results_title(filters: SearchFilters) -> str:
  if filters.startDate and filters.endDate:
    return f"Activities from {filters.startDate} to {filters.endDate}"
  if filters.startDate:
    return f"Activities starting {filters.startDate}"
  if filters.endDate:
    return f"Activities before {filters.endDate}"
  return "This Week Activities"


def related_events(
  event: EventRecommendation,
  all_events: List[EventRecommendation],
  category: str = "All",
  start_date: str = "",
  end_date: str = "",
  limit: int = 3,
) -> List[EventRecommendation]:
  """Up to `limit` other events ranked by category, venue and sponsorship."""
  others: List[EventRecommendation] = []
  for other in all_events:
    if not other:
      continue
    if other.id and event.id:
      if other.id == event.id:
        continue
    elif other.name == event.name:
      if not other.location and not event.location:
        continue
      if other.location and event.location and other.location.address == event.location.address:
        continue
    others.append(other)

  if category != "All":
    others = [e for e in others if e.category == category]

  start = parse_event_date(start_date) if start_date else None
  end = parse_event_date(end_date) if end_date else None
  if end is not None:
    end = datetime.combine(end.date(), dt_time(23, 59, 59))
  if start_date or end_date:
    windowed = []
    for other in others:
      when = parse_event_date(other.date)
      if when is None:
        continue
      when = when.replace(tzinfo=None)
      if start_date and (start is None or when < start.replace(tzinfo=None)):
        continue
      if end_date and (end is None or when > end):
        continue
      windowed.append(other)
    others = windowed

  def score(other: EventRecommendation) -> float:
    value = 0.0
    if other.category and event.category and other.category.lower() == event.category.lower():
      value += 2
    if other.location and event.location and other.location.address == event.location.address:
      value += 1
    if other.isSponsored:
      value += 0.5
    return value

  return sorted(others, key=score, reverse=True)[:limit]


def search_suggestions(
  query: str,
  categories: list,
  events: List[EventRecommendation],
  limit: int = 5,
) -> List[SearchSuggestion]:
  """Typeahead: categories by name, then events by name or category."""
  if not query or len(query) < 2:
    return []
  lower = query.lower()
  suggestions = [
    SearchSuggestion(type="Category", label=c.name, value=c.id, subLabel="Browse Category")
    for c in categories
    if c.name and lower in c.name.lower()
  ]
  unique: Dict[str, EventRecommendation] = {}
  for event in events:
    if event and event.name:
      # later entries win, same as building a Map keyed on name
      unique[event.name] = event
  matches = [
    e for e in unique.values() if lower in e.name.lower() or (e.category and lower in e.category.lower())
  ]
  for event in matches[:limit]:
    suggestions.append(
      SearchSuggestion(
        type="Event",
        label=event.name,
        value=event.name,
        subLabel=event.category or "Event",
        isSponsored=event.isSponsored,
      )
    )
  return suggestions


@dataclass
class FeedSession:
  """Paging state for one (city, filters) search."""

  city: City
  filters: SearchFilters
  id: str = field(default_factory=lambda: uuid.uuid4().hex)
  created_at: float = field(default_factory=time.time)
  recommendations: List[EventRecommendation] = field(default_factory=list)
  initial_ai_count: Optional[int] = None
  has_more: bool = True
  fetching_more: bool = False

  def start(self, first_page: List[EventRecommendation]) -> None:
    self.recommendations = list(first_page)
    self.initial_ai_count = len(first_page)
    self.has_more = len(first_page) >= MIN_FIRST_PAGE

  def extend(self, page: List[EventRecommendation]) -> None:
    """Append a "load more" page; a page with nothing new ends paging."""
    known = {event_identity(event) for event in self.recommendations}
    fresh = [event for event in page if event_identity(event) not in known]
    if not fresh:
      self.has_more = False
      return
    self.recommendations.extend(fresh)

  def exclude_names(self) -> List[str]:
    return [event.name for event in self.recommendations]

  def upcoming_start(self) -> Optional[EventRecommendation]:
    """First recommendation that arrived through "load more", if any."""
    if self.initial_ai_count is None or len(self.recommendations) <= self.initial_ai_count:
      return None
    return self.recommendations[self.initial_ai_count]


def build_feed(
  session: FeedSession,
  sponsored: List[EventRecommendation],
  approved: List[EventRecommendation],
  sort_by: str = "recommended",
  user_location: Optional[UserLocation] = None,
  ads=None,
) -> FeedResponse:
  filters = session.filters
  merged = merge_events(
    relevant_sponsored(sponsored, session.city, filters),
    relevant_approved(approved, session.city, filters),
    session.recommendations,
  )
  merged = apply_price_filter(merged, filters.price)
  ordered = sort_events(merged, sort_by, user_location)

  upcoming_index = None
  upcoming = session.upcoming_start()
  show_upcoming = upcoming is not None and not filters.startDate and not filters.endDate and sort_by == "recommended"
  if show_upcoming:
    # same object, not same identity: a deduplicated copy gets no header
    for index, event in enumerate(ordered):
      if event is upcoming:
        upcoming_index = index
        break

  items = [
    FeedItem(event=event, priceDisplay=price_display(event), distanceLabel=distance_label(event, user_location))
    for event in ordered
  ]
  return FeedResponse(
    sessionId=session.id,
    title=results_title(filters),
    items=items,
    hasMore=session.has_more,
    upcomingStartIndex=upcoming_index,
    adSlotIndex=AD_SLOT_INDEX,
    ads=ads,
  )


class FeedSessionStore:
  """In-memory registry of live feed sessions; stale ones are dropped lazily."""

  def __init__(self, max_age_seconds: float = 60 * 60 * 24, clock: Callable[[], float] = time.time) -> None:
    self.max_age_seconds = max_age_seconds
    self.clock = clock
    self._sessions: Dict[str, FeedSession] = {}
    self._lock = threading.Lock()

  def create(self, city: City, filters: SearchFilters) -> FeedSession:
    session = FeedSession(city=city, filters=filters, created_at=self.clock())
    with self._lock:
      self._drop_stale()
      self._sessions[session.id] = session
    logger.info("Started feed session %s for %s", session.id, city.id)
    return session

  def get(self, session_id: str) -> Optional[FeedSession]:
    with self._lock:
      self._drop_stale()
      return self._sessions.get(session_id)

  def _drop_stale(self) -> None:
    now = self.clock()
    stale = [sid for sid, s in self._sessions.items() if now - s.created_at >= self.max_age_seconds]
    for sid in stale:
      del self._sessions[sid]
