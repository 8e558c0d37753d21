"""Accounts, personal lists, organizer submissions and the admin CRM.

State lives in the key-value store under the same `in_my_city_*` keys the
browser client used, so an exported localStorage dump can be loaded as-is.
Credentials are plaintext records: only the admin login checks a password.
"""

import logging
import math
import os
import re
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from dateutil import parser as date_parser

from metro_service.feed import event_identity
from metro_service.models import (
  EventLocation,
  EventRecommendation,
  EventSubmission,
  Feedback,
  LoginResult,
  Organizer,
  PasswordValidation,
  ProfileUpdate,
  SignupRequest,
  Task,
  TaskCreate,
  TaskUpdate,
  User,
)
from metro_service.storage import MemoryStore
from metro_service.utils import parse_event_date

logger = logging.getLogger("metro_service")

PASSWORD_EXPIRY_DAYS = 90
RECENTLY_VIEWED_LIMIT = 10
REMINDER_WINDOW = timedelta(hours=24)
REMINDER_GRACE = timedelta(hours=1)
PRIORITY_RANK = {"High": 3, "Medium": 2, "Low": 1}

USERS_KEY = "in_my_city_users"
ACTIVE_USERS_KEY = "in_my_city_active_users"
RECENT_KEY = "in_my_city_recent"
FEEDBACK_KEY = "in_my_city_feedback"
PENDING_KEY = "in_my_city_pending_events"
APPROVED_KEY = "in_my_city_approved_events"
REJECTED_KEY = "in_my_city_rejected_events"


class AccountError(Exception):
  pass


class NotFoundError(AccountError):
  pass


class PasswordPolicyError(AccountError):
  pass


def _utcnow() -> datetime:
  return datetime.now(timezone.utc)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
  if not value:
    return None
  try:
    parsed = date_parser.isoparse(value)
  except ValueError:
    return None
  if parsed.tzinfo is None:
    parsed = parsed.replace(tzinfo=timezone.utc)
  return parsed


def validate_password(password: str) -> PasswordValidation:
  errors: List[str] = []
  if len(password) < 8:
    errors.append("At least 8 characters")
  if not re.search(r"[A-Z]", password):
    errors.append("One uppercase letter")
  if not re.search(r"[a-z]", password):
    errors.append("One lowercase letter")
  if not re.search(r"[0-9]", password):
    errors.append("One number")
  if not re.search(r"[\W_]", password):
    errors.append("One special character (!@#$%)")
  return PasswordValidation(isValid=not errors, errors=errors)


def _seed_users(now: datetime) -> List[User]:
  return [
    User(
      id="u1",
      firstName="John",
      lastName="Doe",
      email="john@example.com",
      phone="555-0101",
      birthday="1990-01-01",
      ethnicity="Hispanic",
      address="Houston, TX",
      accountType="Member",
      lastPasswordChange=now.isoformat(),
    ),
    User(
      id="u2",
      firstName="Sarah",
      lastName="Smith",
      businessName="Sarah Events LLC",
      email="sarah@events.com",
      phone="555-0102",
      birthday="1985-05-05",
      ethnicity="Caucasian",
      address="Katy, TX",
      accountType="Organizer",
      logoUrl="https://ui-avatars.com/api/?name=Sarah+Events&background=ea580c&color=fff&size=200",
      profileVideoUrl="",
      bio="Creating memorable experiences in Houston for over 10 years.",
      website="https://sarahevents.com",
      # expired on purpose so the password rotation flow can be exercised
      lastPasswordChange=(now - timedelta(days=100)).isoformat(),
    ),
  ]


class AccountService:
  def __init__(
    self,
    store: MemoryStore,
    clock: Callable[[], datetime] = _utcnow,
    admin_email: Optional[str] = None,
    admin_password: Optional[str] = None,
  ) -> None:
    self.store = store
    self.clock = clock
    self.admin_email = (admin_email or os.getenv("ADMIN_EMAIL", "admin@inmycity.com")).lower()
    self.admin_password = admin_password or os.getenv("ADMIN_PASSWORD", "admin123")
    self._lock = threading.RLock()
    self._last_id = 0
    if self.store.get(USERS_KEY) is None:
      self._save_users(_seed_users(self.clock()))

  # --- helpers -----------------------------------------------------------

  def _next_id(self) -> str:
    """Millisecond timestamp ids, bumped so two calls never collide."""
    with self._lock:
      candidate = int(self.clock().timestamp() * 1000)
      self._last_id = max(candidate, self._last_id + 1)
      return str(self._last_id)

  def _events(self, key: str) -> List[EventRecommendation]:
    raw = self.store.get(key, [])
    events: List[EventRecommendation] = []
    for item in raw if isinstance(raw, list) else []:
      try:
        events.append(EventRecommendation(**item))
      except (TypeError, ValueError):
        logger.warning("Skipping unreadable event under %s", key)
    return events

  def _save_events(self, key: str, events: List[EventRecommendation]) -> None:
    self.store.set(key, [event.model_dump() for event in events])

  def _users(self) -> List[User]:
    raw = self.store.get(USERS_KEY, [])
    return [User(**item) for item in raw if isinstance(item, dict)]

  def _save_users(self, users: List[User]) -> None:
    self.store.set(USERS_KEY, [user.model_dump() for user in users])

  def _admin_user(self) -> User:
    return User(
      id="admin_001",
      firstName="Super",
      lastName="Admin",
      email=self.admin_email,
      phone="000-000-0000",
      birthday="2000-01-01",
      ethnicity="N/A",
      address="HQ",
      accountType="Admin",
      lastPasswordChange=self.clock().isoformat(),
    )

  def get_user(self, user_id: str) -> User:
    if user_id == "admin_001":
      return self._admin_user()
    for user in self._users():
      if user.id == user_id:
        return user
    raise NotFoundError(f"Unknown user {user_id}")

  def _replace_user(self, updated: User) -> User:
    with self._lock:
      users = [updated if u.id == updated.id else u for u in self._users()]
      self._save_users(users)
    return updated

  def _mark_active(self, user_id: str, active: bool) -> None:
    with self._lock:
      current = set(self.store.get(ACTIVE_USERS_KEY, []))
      if active:
        current.add(user_id)
      else:
        current.discard(user_id)
      self.store.set(ACTIVE_USERS_KEY, sorted(current))

  # --- authentication ------------------------------------------------------

  def password_expired(self, user: User) -> bool:
    last_change = _parse_timestamp(user.lastPasswordChange)
    if last_change is None:
      return True
    diff = abs((self.clock() - last_change).total_seconds())
    return math.ceil(diff / 86400) > PASSWORD_EXPIRY_DAYS

  def login(self, email: str, password: Optional[str] = None) -> LoginResult:
    email_lower = (email or "").strip().lower()
    if email_lower == self.admin_email:
      if password != self.admin_password:
        return LoginResult(success=False, status="invalid_credentials")
      admin = self._admin_user()
      self._mark_active(admin.id, True)
      return LoginResult(success=True, status="success", user=admin)

    found = next((u for u in self._users() if u.email.lower() == email_lower), None)
    if found is None:
      return LoginResult(success=False, status="invalid_credentials")
    if self.password_expired(found):
      logger.info("Login refused for %s: password expired", found.id)
      return LoginResult(success=False, status="password_expired")
    self._mark_active(found.id, True)
    return LoginResult(success=True, status="success", user=found)

  def signup(self, data: SignupRequest) -> User:
    user = User(
      **data.model_dump(),
      id=re.sub(r"[^a-zA-Z0-9]", "", data.email),
      lastPasswordChange=self.clock().isoformat(),
    )
    with self._lock:
      users = self._users()
      if any(u.email.lower() == user.email.lower() or u.id == user.id for u in users):
        raise AccountError(f"An account for {data.email} already exists")
      users.append(user)
      self._save_users(users)
    self._mark_active(user.id, True)
    return user

  def logout(self, user_id: str) -> None:
    self._mark_active(user_id, False)

  def update_profile(self, user_id: str, changes: ProfileUpdate) -> User:
    user = self.get_user(user_id)
    updated = user.model_copy(update=changes.model_dump(exclude_unset=True))
    return self._replace_user(updated)

  def change_password(self, user_id: str, new_password: str) -> User:
    user = self.get_user(user_id)
    validation = validate_password(new_password)
    if not validation.isValid:
      raise PasswordPolicyError(validation.errors[0])
    return self._replace_user(user.model_copy(update={"lastPasswordChange": self.clock().isoformat()}))

  # --- saved / interested / recent / ratings -------------------------------

  def _toggle(self, key: str, event: EventRecommendation) -> List[EventRecommendation]:
    with self._lock:
      events = self._events(key)
      identity = event_identity(event)
      if any(event_identity(e) == identity for e in events):
        events = [e for e in events if event_identity(e) != identity]
      else:
        events.append(event)
      self._save_events(key, events)
    return events

  def toggle_saved(self, user_id: str, event: EventRecommendation) -> List[EventRecommendation]:
    self.get_user(user_id)
    return self._toggle(f"in_my_city_saved_{user_id}", event)

  def saved_events(self, user_id: str) -> List[EventRecommendation]:
    """Saved events minus those whose date has passed; descriptive dates stay."""
    self.get_user(user_id)
    key = f"in_my_city_saved_{user_id}"
    today = self.clock().date()
    with self._lock:
      stored = self._events(key)
      valid = []
      for event in stored:
        when = parse_event_date(event.date)
        if when is not None and when.date() < today:
          continue
        valid.append(event)
      if len(valid) != len(stored):
        logger.info("Expired %s saved events for %s", len(stored) - len(valid), user_id)
        self._save_events(key, valid)
    return valid

  def is_saved(self, user_id: str, event: EventRecommendation) -> bool:
    identity = event_identity(event)
    return any(event_identity(e) == identity for e in self._events(f"in_my_city_saved_{user_id}"))

  def toggle_interested(self, user_id: str, event: EventRecommendation) -> List[EventRecommendation]:
    self.get_user(user_id)
    return self._toggle(f"in_my_city_interested_{user_id}", event)

  def interested_events(self, user_id: str) -> List[EventRecommendation]:
    self.get_user(user_id)
    return self._events(f"in_my_city_interested_{user_id}")

  def add_recently_viewed(self, event: EventRecommendation) -> List[EventRecommendation]:
    with self._lock:
      identity = event_identity(event)
      recent = [e for e in self._events(RECENT_KEY) if event_identity(e) != identity]
      updated = [event, *recent][:RECENTLY_VIEWED_LIMIT]
      self._save_events(RECENT_KEY, updated)
    return updated

  def recently_viewed(self) -> List[EventRecommendation]:
    return self._events(RECENT_KEY)

  @staticmethod
  def rating_key(event: EventRecommendation) -> str:
    return event.id or event.name

  def rate_event(self, user_id: str, event: EventRecommendation, rating: int) -> int:
    if rating < 1 or rating > 5:
      raise AccountError("Rating must be between 1 and 5")
    self.get_user(user_id)
    key = f"in_my_city_user_ratings_{user_id}"
    with self._lock:
      ratings = self.store.get(key, {})
      if not isinstance(ratings, dict):
        ratings = {}
      ratings[self.rating_key(event)] = rating
      self.store.set(key, ratings)
    return rating

  def get_rating(self, user_id: str, event_key: str) -> int:
    ratings = self.store.get(f"in_my_city_user_ratings_{user_id}", {})
    if not isinstance(ratings, dict):
      return 0
    return int(ratings.get(event_key) or 0)

  # --- feedback ----------------------------------------------------------

  def submit_feedback(self, feedback_type: str, message: str, user_id: Optional[str] = None) -> Feedback:
    user = self.get_user(user_id) if user_id else None
    entry = Feedback(
      id=self._next_id(),
      userId=user.id if user else None,
      userEmail=user.email if user else "Anonymous",
      type=feedback_type,
      message=message,
      timestamp=self.clock().isoformat(),
    )
    with self._lock:
      existing = self.store.get(FEEDBACK_KEY, [])
      self.store.set(FEEDBACK_KEY, [entry.model_dump(), *existing])
    return entry

  def all_feedback(self) -> List[Feedback]:
    return [Feedback(**item) for item in self.store.get(FEEDBACK_KEY, [])]

  def all_users(self) -> List[User]:
    return self._users()

  # --- organizer submissions and moderation ----------------------------------

  def create_event(self, user_id: str, data: EventSubmission) -> EventRecommendation:
    """Queue an organizer's event for moderation; it is never published directly."""
    user = self.get_user(user_id)
    organizer_name = user.businessName or f"{user.firstName} {user.lastName}"
    event = EventRecommendation(
      id=self._next_id(),
      name=data.name or "Untitled Event",
      description=data.description or "",
      category=data.category or "Community",
      date=data.date or "TBD",
      price=data.price or "Free",
      priceLevel=data.priceLevel or "Free",
      location=data.location or EventLocation(address="TBD", latitude=0, longitude=0),
      imageUrl=data.imageUrl or user.logoUrl,
      videoUrl=data.videoUrl or user.profileVideoUrl,
      website=data.website,
      status="pending",
      eventStatus=data.eventStatus or "Scheduled",
      visibility=data.visibility or "Public",
      createdBy=user.id,
      isSponsored=False,
      organizer=Organizer(
        name=organizer_name,
        contact=user.email,
        website=user.website,
        logoUrl=user.logoUrl,
        videoUrl=user.profileVideoUrl,
      ),
    )
    with self._lock:
      pending = self._events(PENDING_KEY)
      pending.append(event)
      self._save_events(PENDING_KEY, pending)
    logger.info("Event %s submitted by %s is pending approval", event.id, user.id)
    return event

  def _moderate(self, event_id: str, target_key: str, status: str) -> EventRecommendation:
    with self._lock:
      pending = self._events(PENDING_KEY)
      match = next((e for e in pending if e.id == event_id), None)
      if match is None:
        raise NotFoundError(f"No pending event {event_id}")
      self._save_events(PENDING_KEY, [e for e in pending if e.id != event_id])
      moved = match.model_copy(update={"status": status})
      target = self._events(target_key)
      target.append(moved)
      self._save_events(target_key, target)
    logger.info("Event %s %s", event_id, status)
    return moved

  def approve_event(self, event_id: str) -> EventRecommendation:
    return self._moderate(event_id, APPROVED_KEY, "approved")

  def reject_event(self, event_id: str) -> EventRecommendation:
    return self._moderate(event_id, REJECTED_KEY, "rejected")

  def pending_events(self) -> List[EventRecommendation]:
    return self._events(PENDING_KEY)

  def approved_events(self) -> List[EventRecommendation]:
    return self._events(APPROVED_KEY)

  def rejected_events(self) -> List[EventRecommendation]:
    return self._events(REJECTED_KEY)

  def events_by_status(self, status: str) -> List[EventRecommendation]:
    keys: Dict[str, str] = {"pending": PENDING_KEY, "approved": APPROVED_KEY, "rejected": REJECTED_KEY}
    if status not in keys:
      raise NotFoundError(f"Unknown event status {status}")
    return self._events(keys[status])

  def organizer_events(self, user_id: str) -> List[EventRecommendation]:
    self.get_user(user_id)
    everything = self.pending_events() + self.approved_events() + self.rejected_events()
    mine = [e for e in everything if e.createdBy == user_id]

    def numeric_id(event: EventRecommendation) -> int:
      try:
        return int(event.id or 0)
      except ValueError:
        return 0

    return sorted(mine, key=numeric_id, reverse=True)

  # --- tasks -------------------------------------------------------------

  def _tasks_key(self, user_id: str) -> str:
    return f"in_my_city_tasks_{user_id}"

  def _tasks(self, user_id: str) -> List[Task]:
    return [Task(**item) for item in self.store.get(self._tasks_key(user_id), [])]

  def _save_tasks(self, user_id: str, tasks: List[Task]) -> None:
    self.store.set(self._tasks_key(user_id), [task.model_dump() for task in tasks])

  def add_task(self, user_id: str, data: TaskCreate) -> Task:
    self.get_user(user_id)
    task = Task(
      id=self._next_id(),
      userId=user_id,
      completed=False,
      createdAt=self.clock().isoformat(),
      **data.model_dump(),
    )
    with self._lock:
      tasks = self._tasks(user_id)
      tasks.append(task)
      self._save_tasks(user_id, tasks)
    return task

  def update_task(self, user_id: str, task_id: str, changes: TaskUpdate) -> Task:
    with self._lock:
      tasks = self._tasks(user_id)
      for idx, task in enumerate(tasks):
        if task.id == task_id:
          tasks[idx] = task.model_copy(update=changes.model_dump(exclude_unset=True))
          self._save_tasks(user_id, tasks)
          return tasks[idx]
    raise NotFoundError(f"No task {task_id} for {user_id}")

  def delete_task(self, user_id: str, task_id: str) -> None:
    with self._lock:
      tasks = self._tasks(user_id)
      remaining = [t for t in tasks if t.id != task_id]
      if len(remaining) == len(tasks):
        raise NotFoundError(f"No task {task_id} for {user_id}")
      self._save_tasks(user_id, remaining)

  def list_tasks(self, user_id: str, sort_by: str = "created", priority: Optional[str] = None) -> List[Task]:
    self.get_user(user_id)
    tasks = self._tasks(user_id)
    if priority and priority != "All":
      tasks = [t for t in tasks if t.priority == priority]

    epoch = datetime.min.replace(tzinfo=timezone.utc)

    def when(value: str) -> datetime:
      return _parse_timestamp(value) or epoch

    # completed tasks always sink to the bottom
    def sort_key(task: Task) -> tuple:
      if sort_by == "dueDate":
        return (task.completed, when(task.dueDate))
      if sort_by == "priority":
        return (task.completed, -PRIORITY_RANK.get(task.priority, 0))
      return (task.completed, -when(task.createdAt).timestamp())

    return sorted(tasks, key=sort_key)

  def due_reminders(self, user_id: str, now: Optional[datetime] = None) -> List[Task]:
    """Flag and return tasks due within a day (or missed by under an hour)."""
    now = now or self.clock()
    due: List[Task] = []
    with self._lock:
      tasks = self._tasks(user_id)
      changed = False
      for idx, task in enumerate(tasks):
        if task.completed or task.reminderSent or not task.dueDate:
          continue
        due_at = _parse_timestamp(task.dueDate)
        if due_at is None:
          continue
        delta = due_at - now
        if -REMINDER_GRACE < delta < REMINDER_WINDOW:
          tasks[idx] = task.model_copy(update={"reminderSent": True})
          due.append(tasks[idx])
          changed = True
      if changed:
        self._save_tasks(user_id, tasks)
    return due
