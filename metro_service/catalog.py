from typing import Dict, List, Optional

from metro_service.models import (
  AdContent,
  Category,
  City,
  CityAdSet,
  EventLocation,
  EventRecommendation,
  Organizer,
)

DEFAULT_CITY_ID = "houston"

CITIES: List[City] = [
  City(
    id="houston",
    name="Houston",
    state="TX",
    image="https://images.unsplash.com/photo-1530089711124-9ca31fb9e863?auto=format&fit=crop&w=2000&q=80",
    coordinates=(29.7604, -95.3698),
  ),
  City(
    id="dallas",
    name="Dallas",
    state="TX",
    image="https://images.unsplash.com/photo-1572979245136-2bf4b50c0c7d?auto=format&fit=crop&w=2000&q=80",
    coordinates=(32.7767, -96.7970),
  ),
  City(
    id="okc",
    name="Oklahoma City",
    state="OK",
    image="https://images.unsplash.com/photo-1623943632888-290940562dc6?auto=format&fit=crop&w=2000&q=80",
    coordinates=(35.4676, -97.5164),
  ),
  City(
    id="tulsa",
    name="Tulsa",
    state="OK",
    image="https://images.unsplash.com/photo-1575031676648-5c4e10787473?auto=format&fit=crop&w=2000&q=80",
    coordinates=(36.1540, -95.9928),
  ),
]

CATEGORIES: List[Category] = [
  Category(id="trending", name="Trending", promptTerm="Google Trends breakout topics, viral events, high search volume activities"),
  Category(
    id="sports",
    name="Sports",
    promptTerm="professional sports, college sports, high school varsity sports, recreational leagues, stadium tours, "
    "football, basketball, baseball, soccer matches, school rivalries, athletic events, training camps",
  ),
  Category(id="family", name="Family Activities", promptTerm="family friendly events, kids activities, workshops for children, family fun"),
  Category(
    id="entertainment",
    name="Entertainment",
    promptTerm="live music concerts, comedy shows, magic shows, circus, performances, movies, entertainment events",
  ),
  Category(
    id="attractions",
    name="Visitor Attractions",
    promptTerm="tourist attractions, landmarks, sightseeing, tours, must-see places, golf courses, amusement parks, "
    "water parks, museums, festivals and fairs, music halls, national parks, historical landmarks, zoos, aquariums, "
    "theme parks, concert halls, theatres",
  ),
  Category(id="food", name="Food & Drink", promptTerm="food festivals, dining events, culinary experiences"),
  Category(id="nightlife", name="Night Life", promptTerm="night clubs, bars, evening entertainment"),
  Category(id="arts", name="Arts & Culture", promptTerm="art exhibitions, museums, theater, cultural events, art shows"),
  Category(
    id="outdoors",
    name="Outdoors",
    promptTerm="kayaking, trails, trail runs, walking trails, rafting, caves and lakes, waterfalls, national parks, "
    "beaches, zip lining, rock climbing, forests, wildlife attractions, outdoor activities, parks, nature",
  ),
  Category(
    id="community",
    name="Community",
    promptTerm="community gatherings, networking, local meetups, entrepreneurship, business mixers, startup events",
  ),
]

PRICE_FILTERS = [
  {"id": "any", "label": "Any Price"},
  {"id": "free", "label": "Free"},
  {"id": "paid", "label": "Paid"},
]

CITY_ADS: Dict[str, CityAdSet] = {
  "houston": CityAdSet(
    small=AdContent(
      title="Houston's Finest Roasts",
      advertiserName="Bayou Coffee Co.",
      description="Start your morning with local small-batch coffee in the heart of Downtown Houston.",
      imageUrl="https://images.unsplash.com/photo-1495474472287-4d71bcdd2085?auto=format&fit=crop&w=800&q=80",
    ),
    medium=AdContent(
      title="H-Town Premium Rides",
      advertiserName="Bayou Transit",
      description="Arrive at your next event in comfort. 20% off for new Houston users.",
      imageUrl="https://images.unsplash.com/photo-1449965408869-eaa3f722e40d?auto=format&fit=crop&w=1200&q=80",
    ),
    large=AdContent(
      title="The Heart of Houston Art",
      advertiserName="Museum District Partners",
      description="Discover hidden galleries and world-class exhibitions throughout the Bayou City.",
      imageUrl="https://images.unsplash.com/photo-1545989253-02cc26577f88?auto=format&fit=crop&w=1200&q=80",
    ),
  ),
  "dallas": CityAdSet(
    small=AdContent(
      title="The Dallas Skyline View",
      advertiserName="Reunion Lounge",
      description="Experience the best views in DFW. Cocktails and skyline dining atop the tower.",
      imageUrl="https://images.unsplash.com/photo-1572979245136-2bf4b50c0c7d?auto=format&fit=crop&w=800&q=80",
    ),
    medium=AdContent(
      title="Big D Luxury Valet",
      advertiserName="Dallas Elite",
      description="Premium valet services for events at the AT&T Discovery District and beyond.",
      imageUrl="https://images.unsplash.com/photo-1486406146926-c627a92ad1ab?auto=format&fit=crop&w=1200&q=80",
    ),
    large=AdContent(
      title="Dallas Music Heritage",
      advertiserName="Deep Ellum Live",
      description="From jazz to indie, explore the sound of the city's most historic entertainment district.",
      imageUrl="https://images.unsplash.com/photo-1511671782779-c97d3d27a1d4?auto=format&fit=crop&w=1200&q=80",
    ),
  ),
  "okc": CityAdSet(
    small=AdContent(
      title="Thunder City Steaks",
      advertiserName="OKC Prime",
      description="Voted #1 steakhouse in Oklahoma City. Experience authentic Western hospitality.",
      imageUrl="https://images.unsplash.com/photo-1544025162-d76694265947?auto=format&fit=crop&w=800&q=80",
    ),
    medium=AdContent(
      title="OKC Bricktown Shuttles",
      advertiserName="Downtown Transit",
      description="Easy navigation between Bricktown and the canal. Ride free this weekend.",
      imageUrl="https://images.unsplash.com/photo-1623943632888-290940562dc6?auto=format&fit=crop&w=1200&q=80",
    ),
    large=AdContent(
      title="Discover OKC's Wild Side",
      advertiserName="Oklahoma Zoo",
      description="Family fun and exotic wildlife waiting for you in the heart of the capital.",
      imageUrl="https://images.unsplash.com/photo-1534567153574-2b12153a87f0?auto=format&fit=crop&w=1200&q=80",
    ),
  ),
  "tulsa": CityAdSet(
    small=AdContent(
      title="Tulsa Sound Sessions",
      advertiserName="Cain's Ballroom",
      description="The historic home of the Tulsa sound. Check our calendar for upcoming live shows.",
      imageUrl="https://images.unsplash.com/photo-1511671782779-c97d3d27a1d4?auto=format&fit=crop&w=800&q=80",
    ),
    medium=AdContent(
      title="Tulsa Riverside Transit",
      advertiserName="River Link",
      description="The best way to get to Gathering Place. Reliable, fast, and local.",
      imageUrl="https://images.unsplash.com/photo-1575031676648-5c4e10787473?auto=format&fit=crop&w=1200&q=80",
    ),
    large=AdContent(
      title="The Art of Tulsa",
      advertiserName="Philbrook Museum",
      description="Where art, architecture, and gardens meet in an Italian-style villa.",
      imageUrl="https://images.unsplash.com/photo-1518998053901-5348d3969105?auto=format&fit=crop&w=1200&q=80",
    ),
  ),
}

SPONSORED_EVENTS: List[EventRecommendation] = [
  EventRecommendation(
    id="spon_1",
    cityId="houston",
    name="Pour Behavior",
    description="Large, vibrant venue for sports, dining & nightlife with a huge patio & video wall.",
    location=EventLocation(address="2211 Travis St, Houston, TX 77002", latitude=29.7483, longitude=-95.3734),
    priceLevel="$$",
    price="Free Entry",
    date="Daily",
    category="Night Life",
    tags=["Sports Bar", "Patio", "Nightclub"],
    website="https://pourbehavior.com",
    imageUrl="https://images.unsplash.com/photo-1572116469696-31de0f17cc34?auto=format&fit=crop&w=800&q=80",
    isSponsored=True,
    organizer=Organizer(
      name="Pour Behavior",
      website="https://pourbehavior.com",
      logoUrl="https://logo.clearbit.com/pourbehavior.com",
    ),
  ),
  EventRecommendation(
    id="spon_2",
    cityId="houston",
    name="Playground Houston",
    description="A fun outdoor patio bar in Midtown featuring swings, colorful lights, oversized yard games, and a vibrant atmosphere.",
    location=EventLocation(address="2415 Main St, Houston, TX 77002", latitude=29.7485, longitude=-95.3710),
    priceLevel="$",
    price="Free Entry",
    date="Wed-Sun",
    category="Night Life",
    tags=["Bar", "Outdoor", "Games", "Midtown"],
    website="https://playgroundhtx.com",
    imageUrl="https://images.unsplash.com/photo-1533174072545-e8d4aa97edf9?auto=format&fit=crop&w=800&q=80",
    isSponsored=True,
    organizer=Organizer(name="Playground", website="https://playgroundhtx.com", logoUrl=""),
  ),
]


def find_city(city_id: str) -> Optional[City]:
  for city in CITIES:
    if city.id == city_id:
      return city
  return None


def find_city_by_name(name: str) -> Optional[City]:
  name_lower = (name or "").strip().lower()
  for city in CITIES:
    if city.name.lower() == name_lower:
      return city
  return None


def find_category(category_id: Optional[str]) -> Optional[Category]:
  if not category_id:
    return None
  for category in CATEGORIES:
    if category.id == category_id:
      return category
  return None


def category_display_name(category_id: Optional[str]) -> Optional[str]:
  """Events carry the display name ("Night Life"), filters carry the id ("nightlife")."""
  category = find_category(category_id)
  return category.name if category else None


def ad_set_for(city_id: str) -> CityAdSet:
  return CITY_ADS.get(city_id) or CITY_ADS[DEFAULT_CITY_ID]
