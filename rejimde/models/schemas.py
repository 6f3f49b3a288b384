"""
Pydantic Schemas

Data validation and normalization schemas for payloads exchanged with the
Rejimde backend. All entities are client-side copies of server-owned state;
IDs are always assigned by the backend.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from rejimde.config import settings

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonim Kullanıcı"


def placeholder_avatar(seed: str, base_url: Optional[str] = None) -> str:
    """Deterministic identicon URL for a name or slug."""
    return f"{base_url or settings.avatar_base_url}?seed={quote(seed or 'guest')}"


def decode_string_list(value: Any) -> List[str]:
    """
    Decode a tag field that may arrive in several shapes.

    The backend stores tag arrays as JSON strings but some endpoints return
    them already parsed. Accepted inputs:
        - list/tuple of values
        - JSON-encoded array string ('["kilo", "spor"]')
        - comma separated string ("kilo, spor")
        - None, empty string, malformed JSON (empty list)

    Returns:
        List of non-empty strings
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                logger.debug(f"Malformed tag payload: {text[:50]}")
                return []
            return decode_string_list(parsed) if isinstance(parsed, list) else []
        return [part.strip() for part in text.split(",") if part.strip()]
    return []


def parse_bool(value: Any) -> bool:
    """Interpret backend truthy flags (True, 1, '1', 'true')."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return False


# ==========================================
# APPOINTMENTS
# ==========================================

class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class AppointmentType(str, Enum):
    ONLINE = "online"
    IN_PERSON = "in_person"
    PHONE = "phone"


class AppointmentClient(BaseModel):
    name: str = ""
    avatar: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ServiceInfo(BaseModel):
    id: Optional[int] = None
    name: str = ""
    duration: Optional[int] = None
    price: Optional[float] = None


class Appointment(BaseModel):
    """A booked slot on an expert's calendar."""

    model_config = ConfigDict(use_enum_values=True)

    id: int
    date: str
    start_time: str
    end_time: Optional[str] = None
    duration: int = 60
    status: AppointmentStatus = AppointmentStatus.PENDING
    type: AppointmentType = AppointmentType.ONLINE
    title: Optional[str] = None
    client: Optional[AppointmentClient] = None
    service: Optional[ServiceInfo] = None
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    notes: Optional[str] = None
    is_recurring: bool = False

    @field_validator("duration", mode="before")
    @classmethod
    def default_duration(cls, v: Any) -> int:
        if v in (None, "", 0, "0"):
            return 60
        return int(v)

    @field_validator("is_recurring", mode="before")
    @classmethod
    def coerce_recurring(cls, v: Any) -> bool:
        return parse_bool(v)

    @model_validator(mode="after")
    def fill_end_time(self) -> "Appointment":
        if not self.end_time:
            hours, minutes = (int(part) for part in self.start_time.split(":")[:2])
            total = hours * 60 + minutes + self.duration
            self.end_time = f"{(total // 60) % 24:02d}:{total % 60:02d}"
        return self


class AppointmentRequester(BaseModel):
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    is_member: bool = False


class AppointmentRequest(BaseModel):
    """A booking request waiting for the expert's approval."""

    id: int
    requester: AppointmentRequester = Field(default_factory=AppointmentRequester)
    service: Optional[ServiceInfo] = None
    preferred_date: str
    preferred_time: str
    alternative_date: Optional[str] = None
    alternative_time: Optional[str] = None
    message: Optional[str] = None
    status: str = "pending"
    created_at: Optional[str] = None


# ==========================================
# PROGRESS
# ==========================================

class ContentType(str, Enum):
    DIET = "diet"
    EXERCISE = "exercise"
    BLOG = "blog"


class ProgressRecord(BaseModel):
    """Per-user completion tracking for a diet, exercise or blog post."""

    completed_items: List[str] = Field(default_factory=list)
    is_started: bool = False
    is_completed: bool = False
    reward_claimed: bool = False

    @field_validator("completed_items", mode="before")
    @classmethod
    def decode_items(cls, v: Any) -> List[str]:
        return decode_string_list(v)

    @field_validator("is_started", "is_completed", "reward_claimed", mode="before")
    @classmethod
    def coerce_flags(cls, v: Any) -> bool:
        return parse_bool(v)


class ProgressAction(BaseModel):
    """Body of the progress start and toggle endpoints."""

    item_id: Optional[str] = None
    total_items: int = Field(default=0, ge=0)
    points: int = Field(default=0, ge=0)


# ==========================================
# COMMENTS / REVIEWS
# ==========================================

class CommentAuthor(BaseModel):
    name: str = ANONYMOUS_NAME
    slug: str = "#"
    avatar: str = ""
    rank: int = 1
    role: str = "rejimde_user"
    is_expert: bool = False
    is_verified: bool = False
    score: int = 0


class CommentData(BaseModel):
    """Canonical shape of a comment or expert review."""

    id: int
    author: CommentAuthor = Field(default_factory=CommentAuthor)
    content: str = ""
    date: Optional[str] = None
    time_ago: str = "Az önce"
    rating: Optional[int] = None
    parent: int = 0
    likes_count: int = 0
    is_liked: bool = False
    replies: List["CommentData"] = Field(default_factory=list)
    is_anonymous: bool = False
    goal_tag: Optional[str] = None
    program_type: Optional[str] = None
    process_weeks: Optional[int] = None
    success_story: Optional[str] = None
    would_recommend: Optional[bool] = None
    is_featured: bool = False


class ReviewStats(BaseModel):
    average: float = 0
    total: int = 0
    distribution: Dict[int, Dict[str, float]] = Field(default_factory=dict)
    verified_client_count: int = 0
    average_process_weeks: float = 0
    success_rate: float = 0


class CommentThread(BaseModel):
    comments: List[CommentData] = Field(default_factory=list)
    stats: Optional[ReviewStats] = None


class ReviewFilters(BaseModel):
    goal_tag: Optional[str] = None
    program_type: Optional[str] = None
    rating_min: int = Field(default=0, ge=0, le=5)
    verified_only: bool = False
    with_story: bool = False


class ReviewFormData(BaseModel):
    rating: int = 0
    content: str = ""
    is_anonymous: bool = False
    goal_tag: Optional[str] = None
    program_type: Optional[str] = None
    process_weeks: Optional[int] = None
    would_recommend: bool = True
    has_success_story: bool = False
    success_story: Optional[str] = None


class SuccessStory(BaseModel):
    id: int
    author_name: str
    is_anonymous: bool = False
    goal_tag: Optional[str] = None
    process_weeks: Optional[int] = None
    story: str
    rating: int = 0
    verified_client: bool = False
    created_at: Optional[str] = None


# ==========================================
# EXPERTS
# ==========================================

PLACEHOLDER_IMAGES = ("https://placehold.co/150", "https://placehold.co/300")

UNCLAIMED_FIELDS = ("id", "name", "slug", "type", "title", "image", "location", "is_claimed")


class ExpertSummary(BaseModel):
    id: int
    name: str = ""
    slug: str = ""
    type: str = "dietitian"
    title: str = "Uzman"
    image: Optional[str] = None
    rating: str = "5.0"
    score_impact: str = "+10 P"
    is_verified: bool = False
    is_featured: bool = False
    is_online: bool = False
    location: Optional[str] = None

    @field_validator("is_verified", "is_featured", "is_online", mode="before")
    @classmethod
    def coerce_flags(cls, v: Any) -> bool:
        return parse_bool(v)

    @field_validator("rating", mode="before")
    @classmethod
    def coerce_rating(cls, v: Any) -> str:
        return str(v) if v not in (None, "") else "5.0"


class ExpertProfile(BaseModel):
    """Public expert profile, claimed or unclaimed."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    slug: str = ""
    type: str = "dietitian"
    title: str = "Uzman"
    image: Optional[str] = None
    rating: str = "5.0"
    score_impact: str = "+10 P"
    is_verified: bool = False
    is_featured: bool = False
    is_claimed: bool = False
    location: Optional[str] = None
    brand: Optional[str] = None
    bio: Optional[str] = None
    branches: Optional[str] = None
    services: Optional[str] = None
    client_types: Optional[str] = None
    consultation_types: Optional[str] = None
    address: Optional[str] = None
    expertise_tags: List[str] = Field(default_factory=list)
    goal_tags: List[str] = Field(default_factory=list)
    age_groups: List[str] = Field(default_factory=list)
    client_count: str = "10+"
    experience: str = "1 Yıl"
    response_time: str = "24s"

    @field_validator("expertise_tags", "goal_tags", "age_groups", mode="before")
    @classmethod
    def decode_tags(cls, v: Any) -> List[str]:
        return decode_string_list(v)

    @field_validator("is_claimed", "is_verified", "is_featured", mode="before")
    @classmethod
    def coerce_flags(cls, v: Any) -> bool:
        return parse_bool(v)

    @field_validator("rating", mode="before")
    @classmethod
    def coerce_rating(cls, v: Any) -> str:
        return str(v) if v not in (None, "") else "5.0"

    @model_validator(mode="before")
    @classmethod
    def fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = {key: value for key, value in data.items() if value is not None}
        for key in ("client_count", "experience", "response_time"):
            if data.get(key) == "":
                data.pop(key)
        image = data.get("image")
        if not image or image in PLACEHOLDER_IMAGES:
            data["image"] = placeholder_avatar(data.get("slug") or "")
        return data

    def public_view(self) -> Dict[str, Any]:
        """
        Fields to render for this profile.

        Unclaimed listings only expose the placeholder subset; claimed
        profiles expose everything.
        """
        payload = self.model_dump()
        if self.is_claimed:
            return payload
        return {key: payload[key] for key in UNCLAIMED_FIELDS}


# ==========================================
# GAMIFICATION EVENTS
# ==========================================

class LedgerItem(BaseModel):
    id: int
    points_delta: int = 0
    reason: str = ""
    balance_after: int = 0


class EventResult(BaseModel):
    event_id: int = 0
    event_type: str = ""
    awarded_points_total: int = 0
    awarded_ledger_items: List[LedgerItem] = Field(default_factory=list)
    messages: List[str] = Field(default_factory=list)
    daily_remaining: Optional[Dict[str, int]] = None
    current_balance: int = 0


class EventResponse(BaseModel):
    status: str = "error"
    data: Optional[EventResult] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"
