import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from metro_service.accounts import AccountService
from metro_service.cache import TimedCache
from metro_service.feed import FeedSessionStore
from metro_service.llm import ChatReply, LlmClient, LlmError
from metro_service.main import Services, app, get_services
from metro_service.models import EventLocation, EventRecommendation
from metro_service.providers import AiEventProvider
from metro_service.storage import MemoryStore
from metro_service.throttle import RateLimiter

FIXED_NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_event(name: str, address: str = "100 Main St, Houston, TX", **extra: Any) -> EventRecommendation:
  location = extra.pop("location", None) or EventLocation(address=address, latitude=29.76, longitude=-95.37)
  return EventRecommendation(name=name, description=extra.pop("description", f"{name} description"), location=location, **extra)


def events_json(names: List[str], **fields: Any) -> str:
  items = []
  for name in names:
    item = {
      "name": name,
      "description": f"{name} in town",
      "category": fields.get("category", "Entertainment"),
      "priceLevel": "$",
      "price": "$10",
      "date": "2025-06-20",
      "location": {"address": f"{name} Hall, Houston, TX", "latitude": 29.75, "longitude": -95.36},
    }
    items.append(item)
  return "Here you go:\n" + json.dumps(items) + "\nEnjoy!"


class FakeLlm(LlmClient):
  """Scripted LLM: pops one canned answer per generate_text call."""

  def __init__(
    self,
    pages: Optional[List[str]] = None,
    error: Optional[Exception] = None,
    json_reply: Any = None,
    chat_reply: Optional[ChatReply] = None,
  ) -> None:
    self.pages = list(pages or [])
    self.error = error
    self.json_reply = json_reply
    self.chat_reply = chat_reply or ChatReply(text="Try the Museum District.")
    self.prompts: List[str] = []
    self.search_flags: List[bool] = []
    self.chats: List[Dict[str, Any]] = []

  async def generate_text(self, prompt: str, use_search: bool = False) -> str:
    self.prompts.append(prompt)
    self.search_flags.append(use_search)
    if self.error:
      raise self.error
    return self.pages.pop(0) if self.pages else "[]"

  async def generate_json(self, prompt: str) -> Any:
    self.prompts.append(prompt)
    if self.error:
      raise self.error
    return self.json_reply

  async def chat(self, system_instruction: str, history: List[Dict[str, Any]], message: str) -> ChatReply:
    self.chats.append({"system": system_instruction, "history": history, "message": message})
    if self.error:
      raise self.error
    return self.chat_reply


class FakeClock:
  def __init__(self, start_ms: int = 1_750_000_000_000) -> None:
    self.now_ms = start_ms

  def __call__(self) -> int:
    return self.now_ms

  def advance(self, ms: int) -> None:
    self.now_ms += ms


@pytest.fixture
def store() -> MemoryStore:
  return MemoryStore()


@pytest.fixture
def fake_llm() -> FakeLlm:
  return FakeLlm()


@pytest.fixture
def cache_clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def cache(store: MemoryStore, cache_clock: FakeClock) -> TimedCache:
  return TimedCache(store, clock=cache_clock)


@pytest.fixture
def provider(fake_llm: FakeLlm, cache: TimedCache) -> AiEventProvider:
  return AiEventProvider(fake_llm, cache, RateLimiter(min_interval_ms=0), clock=lambda: 1_750_000_000.0)


@pytest.fixture
def accounts(store: MemoryStore) -> AccountService:
  return AccountService(store, clock=lambda: FIXED_NOW, admin_email="admin@inmycity.com", admin_password="admin123")


@pytest.fixture
def services(store: MemoryStore, provider: AiEventProvider, accounts: AccountService) -> Services:
  return Services(store=store, ai=provider, accounts=accounts, sessions=FeedSessionStore())


@pytest.fixture
def client(services: Services):
  app.dependency_overrides[get_services] = lambda: services
  try:
    yield TestClient(app)
  finally:
    app.dependency_overrides.clear()


@pytest.fixture
def llm_error() -> LlmError:
  return LlmError("backend down")
