from metro_service.providers.ai_events import (
  AiEventProvider,
  build_events_prompt,
  recommendations_cache_key,
  uses_search_tool,
)
from metro_service.providers.fallback import city_coordinates, get_fallback_events

__all__ = [
  "AiEventProvider",
  "build_events_prompt",
  "recommendations_cache_key",
  "uses_search_tool",
  "city_coordinates",
  "get_fallback_events",
]
