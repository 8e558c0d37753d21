from typing import Any, Dict, List, Optional, Literal, Tuple
from pydantic import BaseModel, ConfigDict, Field


AccountType = Literal["Member", "Organizer", "Business", "Admin"]
TaskPriority = Literal["High", "Medium", "Low"]


class EventLocation(BaseModel):
  address: str = ""
  latitude: float = 0.0
  longitude: float = 0.0


class Organizer(BaseModel):
  name: str
  website: Optional[str] = None
  contact: Optional[str] = None
  logoUrl: Optional[str] = None
  videoUrl: Optional[str] = None


class EventRecommendation(BaseModel):
  """One event card, whether it came from the AI, an organizer or a sponsor."""

  # models answer "price": 25 as often as "price": "$25"
  model_config = ConfigDict(coerce_numbers_to_str=True)

  id: Optional[str] = None
  cityId: Optional[str] = None
  name: str
  description: str = ""
  location: Optional[EventLocation] = None
  priceLevel: str = ""
  price: str = ""
  date: Optional[str] = None
  category: str = ""
  tags: List[str] = []
  imageUrl: Optional[str] = None
  videoUrl: Optional[str] = None
  website: Optional[str] = None
  isSponsored: bool = False
  ageRestriction: Optional[str] = None
  organizer: Optional[Organizer] = None
  status: Optional[Literal["pending", "approved", "rejected"]] = None
  eventStatus: Optional[Literal["Scheduled", "Cancelled", "Postponed"]] = None
  visibility: Optional[Literal["Public", "Private"]] = None
  createdBy: Optional[str] = None


class City(BaseModel):
  id: str
  name: str
  state: str
  image: str = ""
  coordinates: Tuple[float, float]


class Category(BaseModel):
  id: str
  name: str
  promptTerm: str


class SearchFilters(BaseModel):
  """Filters supplied by the search bar."""

  query: str = ""
  startDate: str = ""
  endDate: str = ""
  price: Literal["any", "free", "paid"] = "any"
  category: Optional[str] = None


class AdContent(BaseModel):
  title: str
  advertiserName: str
  description: str
  imageUrl: str


class CityAdSet(BaseModel):
  small: AdContent
  medium: AdContent
  large: AdContent


class User(BaseModel):
  id: str
  firstName: str
  lastName: str
  businessName: Optional[str] = None
  email: str
  phone: str = ""
  birthday: str = ""
  ethnicity: str = ""
  address: str = ""
  bio: Optional[str] = None
  website: Optional[str] = None
  accountType: AccountType = "Member"
  logoUrl: Optional[str] = None
  profileVideoUrl: Optional[str] = None
  lastPasswordChange: Optional[str] = None


class SignupRequest(BaseModel):
  firstName: str = Field(..., min_length=1)
  lastName: str = Field(..., min_length=1)
  businessName: Optional[str] = None
  email: str = Field(..., min_length=3)
  phone: str = ""
  birthday: str = ""
  ethnicity: str = ""
  address: str = ""
  bio: Optional[str] = None
  website: Optional[str] = None
  accountType: AccountType = "Member"
  logoUrl: Optional[str] = None
  profileVideoUrl: Optional[str] = None


class ProfileUpdate(BaseModel):
  firstName: Optional[str] = None
  lastName: Optional[str] = None
  businessName: Optional[str] = None
  phone: Optional[str] = None
  birthday: Optional[str] = None
  ethnicity: Optional[str] = None
  address: Optional[str] = None
  bio: Optional[str] = None
  website: Optional[str] = None
  logoUrl: Optional[str] = None
  profileVideoUrl: Optional[str] = None


class LoginRequest(BaseModel):
  email: str
  password: Optional[str] = None


class LoginResult(BaseModel):
  success: bool
  status: Literal["success", "invalid_credentials", "password_expired"]
  user: Optional[User] = None


class PasswordChangeRequest(BaseModel):
  newPassword: str


class PasswordValidation(BaseModel):
  isValid: bool
  errors: List[str] = []


class Feedback(BaseModel):
  id: str
  userId: Optional[str] = None
  userEmail: str = "Anonymous"
  type: str
  message: str
  timestamp: str


class FeedbackRequest(BaseModel):
  type: str = Field(..., min_length=1)
  message: str = Field(..., min_length=1)
  userId: Optional[str] = None


class EventSubmission(BaseModel):
  """Organizer-supplied fields for a new event; everything else is defaulted."""

  name: Optional[str] = None
  description: Optional[str] = None
  category: Optional[str] = None
  date: Optional[str] = None
  price: Optional[str] = None
  priceLevel: Optional[str] = None
  location: Optional[EventLocation] = None
  imageUrl: Optional[str] = None
  videoUrl: Optional[str] = None
  website: Optional[str] = None
  eventStatus: Optional[Literal["Scheduled", "Cancelled", "Postponed"]] = None
  visibility: Optional[Literal["Public", "Private"]] = None


class RatingRequest(BaseModel):
  event: EventRecommendation
  rating: int = Field(..., ge=1, le=5)


class Task(BaseModel):
  id: str
  userId: str
  title: str
  description: Optional[str] = None
  priority: TaskPriority = "Medium"
  dueDate: str
  completed: bool = False
  createdAt: str
  reminderSent: bool = False


class TaskCreate(BaseModel):
  title: str = Field(..., min_length=1)
  description: Optional[str] = None
  priority: TaskPriority = "Medium"
  dueDate: str


class TaskUpdate(BaseModel):
  title: Optional[str] = None
  description: Optional[str] = None
  priority: Optional[TaskPriority] = None
  dueDate: Optional[str] = None
  completed: Optional[bool] = None


class UserLocation(BaseModel):
  lat: float
  lng: float


class FeedRequest(BaseModel):
  """Top level request payload for the home feed."""

  cityId: str
  filters: SearchFilters = SearchFilters()
  sortBy: Literal["recommended", "distance"] = "recommended"
  userLocation: Optional[UserLocation] = None


class FeedPageRequest(BaseModel):
  sortBy: Literal["recommended", "distance"] = "recommended"
  userLocation: Optional[UserLocation] = None


class FeedItem(BaseModel):
  event: EventRecommendation
  priceDisplay: str
  distanceLabel: Optional[str] = None


class FeedResponse(BaseModel):
  sessionId: str
  title: str
  items: List[FeedItem] = []
  hasMore: bool = True
  upcomingStartIndex: Optional[int] = None
  adSlotIndex: int = 3
  ads: Optional[CityAdSet] = None


class RelatedEventsRequest(BaseModel):
  event: EventRecommendation
  allEvents: List[EventRecommendation] = []
  category: str = "All"
  startDate: str = ""
  endDate: str = ""


class SearchSuggestion(BaseModel):
  type: Literal["Category", "Event"]
  label: str
  value: str
  subLabel: str
  isSponsored: bool = False


class GroundingSource(BaseModel):
  uri: str
  title: str = ""


class GroundingChunk(BaseModel):
  web: Optional[GroundingSource] = None
  maps: Optional[Dict[str, Any]] = None


class PlannerChatRequest(BaseModel):
  cityId: str
  message: str = Field(..., min_length=1)
  history: List[Dict[str, Any]] = []


class PlannerChatResponse(BaseModel):
  text: str
  groundingChunks: List[GroundingChunk] = []
  newHistory: List[Dict[str, Any]] = []


class GeocodeRequest(BaseModel):
  address: str = Field(..., min_length=2)


class GeocodeResponse(BaseModel):
  latitude: float
  longitude: float


class WeatherReport(BaseModel):
  temp: int
  code: int
  description: str
