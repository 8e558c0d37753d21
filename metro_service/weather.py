import logging
from typing import Optional

import httpx

from metro_service.models import City, WeatherReport

logger = logging.getLogger("metro_service")

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"


def describe_weather_code(code: int) -> str:
  """Collapse a WMO weather code into the three labels the header shows."""
  if code == 0:
    return "Clear"
  if code in (1, 2, 3):
    return "Partly Cloudy"
  if code >= 51:
    return "Rainy"
  return "Clear"


async def current_weather(
  city: City,
  transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[WeatherReport]:
  lat, lng = city.coordinates
  params = {
    "latitude": lat,
    "longitude": lng,
    "current_weather": "true",
    "temperature_unit": "fahrenheit",
  }
  try:
    async with httpx.AsyncClient(timeout=8.0, transport=transport) as client:
      resp = await client.get(OPEN_METEO_URL, params=params)
      resp.raise_for_status()
      data = resp.json()
  except (httpx.HTTPError, ValueError) as exc:
    logger.warning("Failed to fetch weather for %s: %s", city.id, exc)
    return None

  current = data.get("current_weather") if isinstance(data, dict) else None
  if not current:
    return None
  try:
    code = int(current.get("weathercode", 0))
    return WeatherReport(temp=round(float(current["temperature"])), code=code, description=describe_weather_code(code))
  except (KeyError, TypeError, ValueError) as exc:
    logger.warning("Unexpected weather payload for %s: %s", city.id, exc)
    return None
