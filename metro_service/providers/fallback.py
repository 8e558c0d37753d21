from typing import List, Optional

from metro_service.catalog import find_city_by_name
from metro_service.models import EventLocation, EventRecommendation, Organizer

# Houston doubles as the anchor for cities we do not know
DEFAULT_COORDINATES = (29.7604, -95.3698)


def city_coordinates(city: str) -> tuple:
  known = find_city_by_name(city)
  return known.coordinates if known else DEFAULT_COORDINATES


def get_fallback_events(city: str, state: str, category: Optional[str] = None) -> List[EventRecommendation]:
  """Static sample events shown when generation fails or while it is in flight."""
  lat, lng = city_coordinates(city)

  def at(address: str) -> EventLocation:
    return EventLocation(address=f"{address}, {city}, {state}", latitude=lat, longitude=lng)

  general_events = [
    EventRecommendation(
      id=f"fb-{city}-1",
      name=f"{city} Museum District Tour",
      description="Discover the cultural heart of the city. World-class art and historical exhibitions.",
      location=at("Museum District"),
      price="$15 - $25",
      priceLevel="$$",
      category="Arts & Culture",
      date="Daily",
      imageUrl="https://images.unsplash.com/photo-1545989253-02cc26577f88?auto=format&fit=crop&w=800&q=80",
      tags=["Art", "Culture"],
      organizer=Organizer(name="City Arts Council"),
    ),
    EventRecommendation(
      id=f"fb-{city}-2",
      name="Local Food Truck Festival",
      description="The city's favorite street food gathering. Music, family activities, and gourmet bites.",
      location=at("Main Plaza"),
      price="$10 - $20",
      priceLevel="$",
      category="Food & Drink",
      date="Every Saturday",
      imageUrl="https://images.unsplash.com/photo-1488459716781-31db52582fe9?auto=format&fit=crop&w=800&q=80",
      tags=["Food", "Festival"],
      organizer=Organizer(name="City Events"),
    ),
  ]

  sports_events = [
    EventRecommendation(
      id=f"fb-{city}-sp-1",
      name=f"{city} Stadium Behind-the-Scenes",
      description="Tour the city's legendary sports arena. Visit locker rooms and walk onto the field.",
      location=at("Sports Complex"),
      price="$20",
      priceLevel="$$",
      category="Sports",
      date="Tue-Sun",
      imageUrl="https://images.unsplash.com/photo-1521537634581-0dced2fee2ef?auto=format&fit=crop&w=800&q=80",
      tags=["Sports", "Behind the Scenes"],
      organizer=Organizer(name="Stadium Authority"),
    ),
    EventRecommendation(
      id=f"fb-{city}-sp-2",
      name="Community Park Fun Run",
      description="Join hundreds of locals for a weekly 5k run through the city's most beautiful park.",
      location=at("City Park"),
      price="Free",
      priceLevel="Free",
      category="Sports",
      date="Saturday Mornings",
      imageUrl="https://images.unsplash.com/photo-1552674605-469523f54050?auto=format&fit=crop&w=800&q=80",
      tags=["Fitness", "Social"],
      organizer=Organizer(name="Run Club"),
    ),
  ]

  if category == "sports":
    return sports_events
  return general_events + sports_events[:1]
