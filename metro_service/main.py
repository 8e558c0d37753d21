import logging
import os
import threading
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from metro_service.accounts import AccountError, AccountService, NotFoundError, validate_password
from metro_service.cache import CACHE_DURATION_MS, TimedCache
from metro_service.catalog import CATEGORIES, CITIES, SPONSORED_EVENTS, ad_set_for, find_city
from metro_service.feed import (
  FeedSession,
  FeedSessionStore,
  build_feed,
  related_events,
  search_suggestions,
)
from metro_service.llm import get_llm_client
from metro_service.models import (
  Category,
  City,
  CityAdSet,
  EventRecommendation,
  EventSubmission,
  Feedback,
  FeedbackRequest,
  FeedPageRequest,
  FeedRequest,
  FeedResponse,
  GeocodeRequest,
  GeocodeResponse,
  LoginRequest,
  LoginResult,
  PasswordChangeRequest,
  PasswordValidation,
  PlannerChatRequest,
  PlannerChatResponse,
  ProfileUpdate,
  RatingRequest,
  RelatedEventsRequest,
  SearchSuggestion,
  SignupRequest,
  Task,
  TaskCreate,
  TaskUpdate,
  User,
  WeatherReport,
)
from metro_service.providers import AiEventProvider
from metro_service.storage import MemoryStore, StorageError, build_store
from metro_service.throttle import MIN_REQUEST_INTERVAL_MS, RateLimiter
from metro_service.weather import current_weather
from dotenv import load_dotenv

# Load .env file when running locally so the AI keys are picked up.
load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("metro_service")

app = FastAPI(
  title="Inside The Metro Event Service",
  version="0.1.0",
  description="Merges AI-generated, sponsored and organizer-submitted events into one city feed.",
)

app.add_middleware(
  CORSMiddleware,
  allow_origins=["*"],
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)


class Services:
  """Everything a request needs, built once per process."""

  def __init__(self, store: MemoryStore, ai: AiEventProvider, accounts: AccountService, sessions: FeedSessionStore) -> None:
    self.store = store
    self.ai = ai
    self.accounts = accounts
    self.sessions = sessions


def build_services() -> Services:
  store = build_store()
  cache_hours = float(os.getenv("FEED_CACHE_HOURS", "24"))
  cache = TimedCache(store, duration_ms=int(cache_hours * 60 * 60 * 1000) if cache_hours else CACHE_DURATION_MS)
  cache.purge_expired()
  limiter = RateLimiter(min_interval_ms=int(os.getenv("AI_MIN_INTERVAL_MS", str(MIN_REQUEST_INTERVAL_MS))))
  try:
    llm = get_llm_client()
  except RuntimeError as exc:
    logger.warning("AI backend unavailable, serving fallback events only: %s", exc)
    llm = None
  ai = AiEventProvider(llm, cache, limiter)
  accounts = AccountService(store)
  sessions = FeedSessionStore(max_age_seconds=cache.duration_ms / 1000)
  return Services(store=store, ai=ai, accounts=accounts, sessions=sessions)


_services_lock = threading.Lock()


def get_services(request: Request) -> Services:
  services = getattr(request.app.state, "services", None)
  if services is None:
    with _services_lock:
      services = getattr(request.app.state, "services", None)
      if services is None:
        services = build_services()
        request.app.state.services = services
  return services


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
  return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
  logger.error("Storage failure: %s", exc)
  return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})


def _city_or_404(city_id: str) -> City:
  city = find_city(city_id)
  if city is None:
    raise HTTPException(status_code=404, detail=f"Unknown city {city_id}")
  return city


def _session_or_404(services: Services, session_id: str) -> FeedSession:
  session = services.sessions.get(session_id)
  if session is None:
    raise HTTPException(status_code=404, detail="Feed session expired or unknown")
  return session


def _render(services: Services, session: FeedSession, page: FeedPageRequest) -> FeedResponse:
  return build_feed(
    session,
    SPONSORED_EVENTS,
    services.accounts.approved_events(),
    sort_by=page.sortBy,
    user_location=page.userLocation,
    ads=ad_set_for(session.city.id),
  )


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/cities", response_model=List[City])
async def list_cities() -> List[City]:
  return CITIES


@app.get("/categories", response_model=List[Category])
async def list_categories() -> List[Category]:
  return CATEGORIES


@app.get("/cities/{city_id}/ads", response_model=CityAdSet)
async def city_ads(city_id: str) -> CityAdSet:
  return ad_set_for(_city_or_404(city_id).id)


@app.get("/cities/{city_id}/weather", response_model=WeatherReport)
async def city_weather(city_id: str) -> WeatherReport:
  report = await current_weather(_city_or_404(city_id))
  if report is None:
    raise HTTPException(status_code=502, detail="Weather lookup failed")
  return report


@app.post("/feed", response_model=FeedResponse)
async def start_feed(payload: FeedRequest, services: Services = Depends(get_services)) -> FeedResponse:
  city = _city_or_404(payload.cityId)
  session = services.sessions.create(city, payload.filters)
  results = await services.ai.get_city_recommendations(city.name, city.state, payload.filters)
  session.start(results)
  return _render(services, session, FeedPageRequest(sortBy=payload.sortBy, userLocation=payload.userLocation))


@app.post("/feed/{session_id}", response_model=FeedResponse)
async def render_feed(
  session_id: str, payload: FeedPageRequest, services: Services = Depends(get_services)
) -> FeedResponse:
  """Re-render an existing feed, e.g. after switching the sort order."""
  return _render(services, _session_or_404(services, session_id), payload)


@app.post("/feed/{session_id}/more", response_model=FeedResponse)
async def load_more(
  session_id: str, payload: FeedPageRequest, services: Services = Depends(get_services)
) -> FeedResponse:
  session = _session_or_404(services, session_id)
  if session.fetching_more or not session.has_more:
    return _render(services, session, payload)

  session.fetching_more = True
  try:
    more = await services.ai.get_city_recommendations(
      session.city.name,
      session.city.state,
      session.filters,
      session.exclude_names(),
    )
    session.extend(more)
  finally:
    session.fetching_more = False
  return _render(services, session, payload)


@app.post("/events/related", response_model=List[EventRecommendation])
async def related(payload: RelatedEventsRequest) -> List[EventRecommendation]:
  return related_events(payload.event, payload.allEvents, payload.category, payload.startDate, payload.endDate)


@app.get("/search/suggestions", response_model=List[SearchSuggestion])
def suggestions(q: str = "", services: Services = Depends(get_services)) -> List[SearchSuggestion]:
  return search_suggestions(q, CATEGORIES, SPONSORED_EVENTS + services.accounts.approved_events())


@app.post("/planner/chat", response_model=PlannerChatResponse)
async def planner_chat(payload: PlannerChatRequest, services: Services = Depends(get_services)) -> PlannerChatResponse:
  city = _city_or_404(payload.cityId)
  return await services.ai.chat_with_city_planner(city.name, city.state, payload.message, payload.history)


@app.post("/geocode", response_model=GeocodeResponse)
async def geocode(payload: GeocodeRequest, services: Services = Depends(get_services)) -> GeocodeResponse:
  result = await services.ai.geocode_address(payload.address)
  if result is None:
    raise HTTPException(status_code=502, detail=f"Could not geocode {payload.address}")
  return result


@app.post("/auth/login", response_model=LoginResult)
def login(payload: LoginRequest, services: Services = Depends(get_services)) -> LoginResult:
  return services.accounts.login(payload.email, payload.password)


@app.post("/auth/signup", response_model=User, status_code=201)
def signup(payload: SignupRequest, services: Services = Depends(get_services)) -> User:
  return services.accounts.signup(payload)


@app.post("/auth/logout/{user_id}", status_code=204)
def logout(user_id: str, services: Services = Depends(get_services)) -> None:
  services.accounts.logout(user_id)


@app.post("/auth/validate-password", response_model=PasswordValidation)
async def check_password(payload: PasswordChangeRequest) -> PasswordValidation:
  return validate_password(payload.newPassword)


@app.patch("/users/{user_id}", response_model=User)
def update_profile(user_id: str, payload: ProfileUpdate, services: Services = Depends(get_services)) -> User:
  return services.accounts.update_profile(user_id, payload)


@app.post("/users/{user_id}/password", response_model=User)
def change_password(user_id: str, payload: PasswordChangeRequest, services: Services = Depends(get_services)) -> User:
  return services.accounts.change_password(user_id, payload.newPassword)


@app.get("/users/{user_id}/saved", response_model=List[EventRecommendation])
def saved_events(user_id: str, services: Services = Depends(get_services)) -> List[EventRecommendation]:
  return services.accounts.saved_events(user_id)


@app.post("/users/{user_id}/saved/toggle", response_model=List[EventRecommendation])
def toggle_saved(
  user_id: str, event: EventRecommendation, services: Services = Depends(get_services)
) -> List[EventRecommendation]:
  return services.accounts.toggle_saved(user_id, event)


@app.get("/users/{user_id}/interested", response_model=List[EventRecommendation])
def interested_events(user_id: str, services: Services = Depends(get_services)) -> List[EventRecommendation]:
  return services.accounts.interested_events(user_id)


@app.post("/users/{user_id}/interested/toggle", response_model=List[EventRecommendation])
def toggle_interested(
  user_id: str, event: EventRecommendation, services: Services = Depends(get_services)
) -> List[EventRecommendation]:
  return services.accounts.toggle_interested(user_id, event)


@app.get("/recent", response_model=List[EventRecommendation])
def recently_viewed(services: Services = Depends(get_services)) -> List[EventRecommendation]:
  return services.accounts.recently_viewed()


@app.post("/recent", response_model=List[EventRecommendation])
def add_recent(event: EventRecommendation, services: Services = Depends(get_services)) -> List[EventRecommendation]:
  return services.accounts.add_recently_viewed(event)


@app.put("/users/{user_id}/ratings")
def rate_event(user_id: str, payload: RatingRequest, services: Services = Depends(get_services)) -> dict:
  rating = services.accounts.rate_event(user_id, payload.event, payload.rating)
  return {"key": AccountService.rating_key(payload.event), "rating": rating}


@app.get("/users/{user_id}/ratings/{event_key}")
def get_rating(user_id: str, event_key: str, services: Services = Depends(get_services)) -> dict:
  return {"key": event_key, "rating": services.accounts.get_rating(user_id, event_key)}


@app.post("/feedback", response_model=Feedback, status_code=201)
def submit_feedback(payload: FeedbackRequest, services: Services = Depends(get_services)) -> Feedback:
  return services.accounts.submit_feedback(payload.type, payload.message, payload.userId)


@app.post("/users/{user_id}/events", response_model=EventRecommendation, status_code=201)
def submit_event(
  user_id: str, payload: EventSubmission, services: Services = Depends(get_services)
) -> EventRecommendation:
  return services.accounts.create_event(user_id, payload)


@app.get("/users/{user_id}/events", response_model=List[EventRecommendation])
def organizer_events(user_id: str, services: Services = Depends(get_services)) -> List[EventRecommendation]:
  return services.accounts.organizer_events(user_id)


@app.get("/admin/users", response_model=List[User])
def admin_users(services: Services = Depends(get_services)) -> List[User]:
  return services.accounts.all_users()


@app.get("/admin/feedback", response_model=List[Feedback])
def admin_feedback(services: Services = Depends(get_services)) -> List[Feedback]:
  return services.accounts.all_feedback()


@app.get("/admin/events/{status}", response_model=List[EventRecommendation])
def admin_events(status: str, services: Services = Depends(get_services)) -> List[EventRecommendation]:
  return services.accounts.events_by_status(status)


@app.post("/admin/events/{event_id}/approve", response_model=EventRecommendation)
def approve_event(event_id: str, services: Services = Depends(get_services)) -> EventRecommendation:
  return services.accounts.approve_event(event_id)


@app.post("/admin/events/{event_id}/reject", response_model=EventRecommendation)
def reject_event(event_id: str, services: Services = Depends(get_services)) -> EventRecommendation:
  return services.accounts.reject_event(event_id)


@app.get("/users/{user_id}/tasks", response_model=List[Task])
def list_tasks(
  user_id: str,
  sortBy: str = "created",
  priority: Optional[str] = None,
  services: Services = Depends(get_services),
) -> List[Task]:
  return services.accounts.list_tasks(user_id, sort_by=sortBy, priority=priority)


@app.post("/users/{user_id}/tasks", response_model=Task, status_code=201)
def add_task(user_id: str, payload: TaskCreate, services: Services = Depends(get_services)) -> Task:
  return services.accounts.add_task(user_id, payload)


@app.patch("/users/{user_id}/tasks/{task_id}", response_model=Task)
def update_task(user_id: str, task_id: str, payload: TaskUpdate, services: Services = Depends(get_services)) -> Task:
  return services.accounts.update_task(user_id, task_id, payload)


@app.delete("/users/{user_id}/tasks/{task_id}", status_code=204)
def delete_task(user_id: str, task_id: str, services: Services = Depends(get_services)) -> None:
  services.accounts.delete_task(user_id, task_id)


@app.post("/users/{user_id}/tasks/reminders", response_model=List[Task])
def task_reminders(user_id: str, services: Services = Depends(get_services)) -> List[Task]:
  return services.accounts.due_reminders(user_id)


if __name__ == "__main__":
  import uvicorn

  host = os.getenv("HOST", "0.0.0.0")
  port = int(os.getenv("PORT", "8000"))
  uvicorn.run("metro_service.main:app", host=host, port=port, reload=True)
