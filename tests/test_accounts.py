from datetime import timedelta

import pytest

from metro_service.accounts import (
  APPROVED_KEY,
  RECENTLY_VIEWED_LIMIT,
  AccountError,
  AccountService,
  NotFoundError,
  PasswordPolicyError,
  validate_password,
)
from metro_service.models import (
  EventLocation,
  EventSubmission,
  ProfileUpdate,
  SignupRequest,
  TaskCreate,
  TaskUpdate,
  User,
)

from tests.conftest import FIXED_NOW, make_event


def signup_request(**overrides):
  data = {"firstName": "Ana", "lastName": "Lopez", "email": "ana.lopez@example.com"}
  data.update(overrides)
  return SignupRequest(**data)


def test_seeds_demo_users_once(accounts, store):
  users = accounts.all_users()
  assert [u.id for u in users] == ["u1", "u2"]
  AccountService(store, clock=lambda: FIXED_NOW)
  assert len(AccountService(store).all_users()) == 2


def test_member_login_and_expired_password(accounts):
  result = accounts.login("JOHN@example.com ")
  assert result.success and result.status == "success" and result.user.id == "u1"

  expired = accounts.login("sarah@events.com")
  assert not expired.success and expired.status == "password_expired"

  unknown = accounts.login("nobody@example.com")
  assert unknown.status == "invalid_credentials"


def test_admin_login_checks_password(accounts):
  assert accounts.login("admin@inmycity.com", "wrong").status == "invalid_credentials"
  result = accounts.login("Admin@InMyCity.com", "admin123")
  assert result.success and result.user.id == "admin_001" and result.user.accountType == "Admin"


def test_password_expiry_boundary(accounts):
  user = accounts.get_user("u1")
  ninety = user.model_copy(update={"lastPasswordChange": (FIXED_NOW - timedelta(days=90)).isoformat()})
  just_over = user.model_copy(
    update={"lastPasswordChange": (FIXED_NOW - timedelta(days=90, seconds=1)).isoformat()}
  )
  assert not accounts.password_expired(ninety)
  assert accounts.password_expired(just_over)
  assert accounts.password_expired(user.model_copy(update={"lastPasswordChange": None}))


def test_signup_derives_id_and_rejects_duplicates(accounts):
  user = accounts.signup(signup_request())
  assert user.id == "analopezexamplecom"
  assert user.lastPasswordChange == FIXED_NOW.isoformat()
  assert accounts.login("ana.lopez@example.com").success

  with pytest.raises(AccountError):
    accounts.signup(signup_request(email="ANA.LOPEZ@example.com"))


def test_update_profile_only_touches_sent_fields(accounts):
  updated = accounts.update_profile("u1", ProfileUpdate(bio="Concert junkie"))
  assert updated.bio == "Concert junkie"
  assert updated.firstName == "John"
  assert accounts.get_user("u1").bio == "Concert junkie"

  with pytest.raises(NotFoundError):
    accounts.update_profile("ghost", ProfileUpdate(bio="x"))


def test_validate_password_lists_every_rule():
  result = validate_password("abc")
  assert not result.isValid
  assert result.errors == [
    "At least 8 characters",
    "One uppercase letter",
    "One number",
    "One special character (!@#$%)",
  ]
  assert validate_password("Str0ng!Pass").isValid


def test_change_password_resets_expiry(accounts):
  with pytest.raises(PasswordPolicyError, match="At least 8 characters"):
    accounts.change_password("u2", "short")

  accounts.change_password("u2", "N3w!Password")
  assert accounts.login("sarah@events.com").success


def test_saved_events_toggle_and_expire(accounts, store):
  past = make_event("Old Show", date="2025-06-01")
  future = make_event("New Show", date="2025-07-01")
  recurring = make_event("Trivia", date="Every Tuesday")

  for event in (past, future, recurring):
    accounts.toggle_saved("u1", event)
  assert accounts.is_saved("u1", past)

  assert [e.name for e in accounts.saved_events("u1")] == ["New Show", "Trivia"]
  assert len(store.get("in_my_city_saved_u1")) == 2

  accounts.toggle_saved("u1", future)
  assert [e.name for e in accounts.saved_events("u1")] == ["Trivia"]

  with pytest.raises(NotFoundError):
    accounts.toggle_saved("ghost", future)


def test_interested_toggle(accounts):
  event = make_event("Food Fest")
  assert len(accounts.toggle_interested("u1", event)) == 1
  assert accounts.interested_events("u1")[0].name == "Food Fest"
  assert accounts.toggle_interested("u1", event) == []


def test_recently_viewed_is_mru_and_capped(accounts):
  for i in range(RECENTLY_VIEWED_LIMIT + 2):
    accounts.add_recently_viewed(make_event(f"Event {i}"))
  accounts.add_recently_viewed(make_event("Event 5"))

  recent = [e.name for e in accounts.recently_viewed()]
  assert len(recent) == RECENTLY_VIEWED_LIMIT
  assert recent[0] == "Event 5"
  assert recent.count("Event 5") == 1
  assert "Event 0" not in recent


def test_ratings_are_per_user(accounts):
  accounts.signup(signup_request())
  with_id = make_event("Gala", id="ev-9")
  no_id = make_event("Street Fair")

  accounts.rate_event("u1", with_id, 4)
  accounts.rate_event("u1", no_id, 2)

  assert accounts.get_rating("u1", "ev-9") == 4
  assert accounts.get_rating("u1", "Street Fair") == 2
  assert accounts.get_rating("analopezexamplecom", "ev-9") == 0
  with pytest.raises(AccountError):
    accounts.rate_event("u1", with_id, 6)


def test_feedback_newest_first_and_anonymous(accounts):
  accounts.submit_feedback("Bug", "Map does not load")
  accounts.submit_feedback("Idea", "Add Austin", user_id="u1")

  feedback = accounts.all_feedback()
  assert [f.type for f in feedback] == ["Idea", "Bug"]
  assert feedback[0].userEmail == "john@example.com"
  assert feedback[1].userEmail == "Anonymous" and feedback[1].userId is None
  assert feedback[0].id != feedback[1].id


def test_create_event_lands_pending_with_defaults(accounts):
  event = accounts.create_event("u2", EventSubmission(name="Summer Gala"))

  assert event.status == "pending"
  assert event.category == "Community"
  assert event.date == "TBD"
  assert event.price == "Free" and event.priceLevel == "Free"
  assert event.location.address == "TBD"
  assert event.eventStatus == "Scheduled" and event.visibility == "Public"
  assert event.organizer.name == "Sarah Events LLC"
  assert event.organizer.contact == "sarah@events.com"
  assert event.imageUrl == accounts.get_user("u2").logoUrl
  assert not event.isSponsored
  assert accounts.pending_events() == [event]
  assert accounts.approved_events() == []


def test_moderation_moves_between_lists(accounts, store):
  first = accounts.create_event("u2", EventSubmission(name="One"))
  second = accounts.create_event("u2", EventSubmission(name="Two"))

  approved = accounts.approve_event(first.id)
  rejected = accounts.reject_event(second.id)

  assert approved.status == "approved"
  assert rejected.status == "rejected"
  assert accounts.pending_events() == []
  assert [e.name for e in accounts.events_by_status("approved")] == ["One"]
  assert [e.name for e in accounts.events_by_status("rejected")] == ["Two"]
  assert store.get(APPROVED_KEY)[0]["status"] == "approved"

  with pytest.raises(NotFoundError):
    accounts.approve_event(first.id)
  with pytest.raises(NotFoundError):
    accounts.events_by_status("archived")


def test_organizer_events_newest_first(accounts):
  first = accounts.create_event("u2", EventSubmission(name="First"))
  second = accounts.create_event("u2", EventSubmission(name="Second"))
  accounts.create_event("u1", EventSubmission(name="Not mine"))
  accounts.approve_event(first.id)

  assert int(second.id) > int(first.id)
  assert [e.name for e in accounts.organizer_events("u2")] == ["Second", "First"]


def test_task_crud(accounts):
  task = accounts.add_task("u1", TaskCreate(title="Buy tickets", dueDate="2025-06-16T10:00:00Z"))
  assert task.userId == "u1" and not task.completed and task.priority == "Medium"

  done = accounts.update_task("u1", task.id, TaskUpdate(completed=True))
  assert done.completed and done.title == "Buy tickets"

  accounts.delete_task("u1", task.id)
  assert accounts.list_tasks("u1") == []
  with pytest.raises(NotFoundError):
    accounts.delete_task("u1", task.id)
  with pytest.raises(NotFoundError):
    accounts.update_task("u1", "nope", TaskUpdate(title="x"))


def test_task_sorting_and_priority_filter(accounts):
  low = accounts.add_task("u1", TaskCreate(title="Low", priority="Low", dueDate="2025-06-17T00:00:00Z"))
  high = accounts.add_task("u1", TaskCreate(title="High", priority="High", dueDate="2025-06-20T00:00:00Z"))
  soon = accounts.add_task("u1", TaskCreate(title="Soon", priority="Medium", dueDate="2025-06-16T00:00:00Z"))
  accounts.update_task("u1", soon.id, TaskUpdate(completed=True))

  by_due = [t.title for t in accounts.list_tasks("u1", sort_by="dueDate")]
  assert by_due == ["Low", "High", "Soon"]

  by_priority = [t.title for t in accounts.list_tasks("u1", sort_by="priority")]
  assert by_priority == ["High", "Low", "Soon"]

  assert [t.id for t in accounts.list_tasks("u1", priority="High")] == [high.id]
  assert low.id in [t.id for t in accounts.list_tasks("u1", priority="All")]


def test_due_reminders_fire_once(accounts):
  due_soon = accounts.add_task("u1", TaskCreate(title="Soon", dueDate=(FIXED_NOW + timedelta(hours=3)).isoformat()))
  just_missed = accounts.add_task(
    "u1", TaskCreate(title="Missed", dueDate=(FIXED_NOW - timedelta(minutes=30)).isoformat())
  )
  accounts.add_task("u1", TaskCreate(title="Later", dueDate=(FIXED_NOW + timedelta(days=3)).isoformat()))
  accounts.add_task("u1", TaskCreate(title="Long gone", dueDate=(FIXED_NOW - timedelta(hours=2)).isoformat()))

  reminders = accounts.due_reminders("u1")

  assert sorted(t.id for t in reminders) == sorted([due_soon.id, just_missed.id])
  assert all(t.reminderSent for t in reminders)
  assert accounts.due_reminders("u1") == []


def test_get_user_unknown(accounts):
  with pytest.raises(NotFoundError):
    accounts.get_user("ghost")
  assert isinstance(accounts.get_user("admin_001"), User)


def test_create_event_keeps_given_location(accounts):
  location = EventLocation(address="1 Plaza, Houston, TX", latitude=29.7, longitude=-95.3)
  event = accounts.create_event("u1", EventSubmission(name="Block Party", location=location, price="$5"))
  assert event.location == location
  assert event.organizer.name == "John Doe"
  assert event.price == "$5"
