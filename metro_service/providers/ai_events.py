import json
import logging
import random
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from metro_service.cache import TimedCache
from metro_service.catalog import find_category
from metro_service.llm import LlmClient, LlmError, parse_events
from metro_service.models import (
  EventLocation,
  EventRecommendation,
  GeocodeResponse,
  PlannerChatResponse,
  SearchFilters,
)
from metro_service.providers.fallback import city_coordinates, get_fallback_events
from metro_service.throttle import RateLimiter

logger = logging.getLogger("metro_service")

ITEMS_PER_PAGE = 6
CHAT_FAILURE_TEXT = "I'm having a little trouble connecting. Try again in a moment!"

JSON_STRUCTURE_PROMPT = """
Return JSON Array only.
Format:
[{
  "name": "string",
  "description": "string",
  "category": "string",
  "tags": ["string"],
  "priceLevel": "Free, $, $$, $$$",
  "price": "string",
  "date": "string",
  "website": "string",
  "imageUrl": "string",
  "location": { "address": "string", "latitude": number, "longitude": number },
  "organizer": { "name": "string" }
}]"""


def recommendations_cache_key(city: str, state: str, filters: SearchFilters, exclude_count: int) -> str:
  filters_json = json.dumps(filters.model_dump(), separators=(",", ":"))
  return f"{city}_{state}_{filters_json}_{exclude_count}"


def uses_search_tool(filters: SearchFilters) -> bool:
  return filters.category in ("trending", "sports") or bool(filters.query)


def build_events_prompt(
  city: str,
  state: str,
  filters: SearchFilters,
  exclude_names: List[str],
  today: Optional[datetime] = None,
) -> str:
  prompt = f"Find real events in {city}, {state}. Provide {ITEMS_PER_PAGE} items."

  if filters.category:
    category = find_category(filters.category)
    if filters.category == "trending":
      prompt += f" Use Google Search to find current breakout events for this exact week in {city}."
    elif filters.category == "sports":
      prompt += (
        " Search for professional game schedules, college athletics (NCAA), High School varsity sports, "
        f"recreational league nights, stadium tours, and community run clubs in {city}."
      )
    else:
      term = category.promptTerm if category else filters.category
      prompt += f" Focus on category: {term}."

  if filters.query:
    prompt += f' Must relate to: "{filters.query}".'
  if filters.startDate or filters.endDate:
    prompt += f" Only include events between {filters.startDate or 'now'} and {filters.endDate or 'any later date'}."
  if filters.price == "free":
    prompt += " Only include free events."
  elif filters.price == "paid":
    prompt += " Only include ticketed or paid events."

  if exclude_names:
    now = today or datetime.now()
    prompt += f" Find events starting after {now:%m/%d/%Y}."
    prompt += " Do not repeat any of these: " + "; ".join(exclude_names) + "."
  else:
    prompt += " Focus on this week specifically."

  return prompt + "\n" + JSON_STRUCTURE_PROMPT


class AiEventProvider:
  """AI-sourced events behind the time-boxed cache and the request throttle.

  Every public method degrades instead of raising: events fall back to the
  static samples, geocoding to None, chat to a retry message.
  """

  def __init__(
    self,
    llm: Optional[LlmClient],
    cache: TimedCache,
    limiter: RateLimiter,
    clock: Callable[[], float] = time.time,
    rng: Optional[random.Random] = None,
  ) -> None:
    self.llm = llm
    self.cache = cache
    self.limiter = limiter
    self.clock = clock
    self.rng = rng or random.Random()

  def _client(self) -> LlmClient:
    if self.llm is None:
      raise LlmError("no AI backend configured")
    return self.llm

  def _cached(self, key: str) -> Optional[List[EventRecommendation]]:
    cached = self.cache.get(key)
    if not cached or not isinstance(cached, list):
      return None
    try:
      return [EventRecommendation(**item) for item in cached]
    except (TypeError, ValidationError):
      logger.warning("Discarding unreadable cache entry %s", key)
      return None

  def _sanitize(self, events: List[EventRecommendation], city: str) -> List[EventRecommendation]:
    default_lat, default_lng = city_coordinates(city)
    stamp = int(self.clock() * 1000)
    validated: List[EventRecommendation] = []
    for index, event in enumerate(events):
      updates: Dict[str, Any] = {}
      if not event.id:
        updates["id"] = f"ai-{stamp}-{index}"
      location = event.location
      if location is None:
        location = EventLocation(address=city, latitude=default_lat, longitude=default_lng)
      if not location.latitude or not location.longitude:
        location = location.model_copy(
          update={
            "latitude": default_lat + (self.rng.random() * 0.02 - 0.01),
            "longitude": default_lng + (self.rng.random() * 0.02 - 0.01),
          }
        )
      updates["location"] = location
      validated.append(event.model_copy(update=updates))
    return validated

  async def get_city_recommendations(
    self,
    city: str,
    state: str,
    filters: SearchFilters,
    exclude_names: Optional[List[str]] = None,
  ) -> List[EventRecommendation]:
    exclude_names = exclude_names or []
    try:
      cache_key = recommendations_cache_key(city, state, filters, len(exclude_names))
      cached = self._cached(cache_key)
      if cached:
        logger.info("Cache hit for %s, %s (%s events)", city, state, len(cached))
        return cached

      await self.limiter.wait()
      prompt = build_events_prompt(city, state, filters, exclude_names)
      try:
        text = await self._client().generate_text(prompt, use_search=uses_search_tool(filters))
      except LlmError as exc:
        logger.warning("Event generation failed for %s: %s", city, exc)
        return get_fallback_events(city, state, filters.category)

      try:
        events = parse_events(text)
      except ValueError as exc:
        logger.warning("Could not parse generated events for %s: %s", city, exc)
        return get_fallback_events(city, state, filters.category)
      if not events:
        logger.info("Generator returned no events for %s; using fallback data", city)
        return get_fallback_events(city, state, filters.category)

      validated = self._sanitize(events, city)
      self.cache.set(cache_key, [event.model_dump() for event in validated])
      return validated
    except Exception:
      logger.exception("Unexpected failure building recommendations for %s", city)
      return get_fallback_events(city, state, filters.category)

  async def geocode_address(self, address: str) -> Optional[GeocodeResponse]:
    prompt = f'Return JSON {{ "latitude": number, "longitude": number }} for address: "{address}".'
    try:
      data = await self._client().generate_json(prompt)
      return GeocodeResponse(**data)
    except (LlmError, TypeError, ValidationError) as exc:
      logger.warning("Geocoding failed for %s: %s", address, exc)
      return None

  async def chat_with_city_planner(
    self,
    city: str,
    state: str,
    message: str,
    history: List[Dict[str, Any]],
  ) -> PlannerChatResponse:
    try:
      await self.limiter.wait()
      reply = await self._client().chat(
        f"You are a local expert for {city}, {state}. Recommend specific places and activities.",
        history,
        message,
      )
    except LlmError as exc:
      logger.warning("Planner chat failed for %s: %s", city, exc)
      return PlannerChatResponse(text=CHAT_FAILURE_TEXT, groundingChunks=[], newHistory=history)

    text = reply.text or "I'm checking that for you..."
    new_history = history + [
      {"role": "user", "parts": [{"text": message}]},
      {"role": "model", "parts": [{"text": text}]},
    ]
    return PlannerChatResponse(text=text, groundingChunks=reply.grounding_chunks, newHistory=new_history)
