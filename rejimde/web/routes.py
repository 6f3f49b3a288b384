"""
BFF API Routes

JSON endpoints for the site frontend. Every request builds its session
context once from cookies (or an ``Authorization`` header) and talks to
the Rejimde backend through an ApiClient bound to that session.
"""

import hashlib
import logging
from datetime import date as date_type
from typing import Any, Dict, List, Optional

import requests
from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from rejimde.config import settings
from rejimde.models.schemas import Appointment, ContentType, ProgressAction, ReviewFilters, ReviewFormData
from rejimde.services.api import ApiClient
from rejimde.services.appointments import AppointmentService
from rejimde.services.calendar import (
    appointments_for_date,
    bucket_by_date,
    date_strip,
    format_date,
    format_date_range,
    get_day_hours,
    get_status_label,
    get_type_label,
    get_week_days,
    get_week_end,
    get_week_start,
    layout_appointment,
)
from rejimde.services.comments import CommentService
from rejimde.services.events import EventService
from rejimde.services.progress import InFlightGuard, ProgressTracker
from rejimde.services.reviews import (
    compute_review_stats,
    featured_reviews,
    filter_reviews,
    get_display_name,
    review_payload,
    success_stories,
    validate_review_form,
)
from rejimde.session import SessionContext, SessionStorage
from rejimde.web.access import resolve_redirect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["rejimde"])

LOGIN_REQUIRED = {"success": False, "message": "Giriş yapmalısınız."}


# ==========================================
# DEPENDENCIES
# ==========================================

def get_session(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> SessionContext:
    return SessionContext.from_cookies(request.cookies, authorization)


def get_http_session(request: Request) -> requests.Session:
    http = getattr(request.app.state, "http_session", None)
    if http is None:
        http = request.app.state.http_session = requests.Session()
    return http


def get_progress_guard(request: Request) -> InFlightGuard:
    guard = getattr(request.app.state, "progress_guard", None)
    if guard is None:
        guard = request.app.state.progress_guard = InFlightGuard()
    return guard


def get_api_client(
    session: SessionContext = Depends(get_session),
    http: requests.Session = Depends(get_http_session),
) -> ApiClient:
    return ApiClient(storage=SessionStorage(session.to_storage()), http=http)


def _parse_day(value: Optional[str]) -> date_type:
    if not value:
        return date_type.today()
    return date_type.fromisoformat(value)


def _bad_date(value: Optional[str]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": f"Geçersiz tarih: {value}"},
    )


def _serialize_appointment(appointment: Appointment) -> Dict[str, Any]:
    block = layout_appointment(appointment)
    return {
        **appointment.model_dump(),
        "status_label": get_status_label(appointment.status),
        "type_label": get_type_label(appointment.type),
        "block": block.model_dump(),
    }


# ==========================================
# ACCESS
# ==========================================

@router.get("/access")
async def check_access(
    path: str = Query(..., description="Page path to check"),
    session: SessionContext = Depends(get_session),
) -> Dict[str, Any]:
    """Route gating decision for a page path."""
    target = resolve_redirect(path, session.token, session.user_role)
    return {"path": path, "allowed": target is None, "redirect": target}


# ==========================================
# CALENDAR
# ==========================================

@router.get("/calendar/week")
async def calendar_week(
    date: Optional[str] = Query(default=None),
    session: SessionContext = Depends(get_session),
    client: ApiClient = Depends(get_api_client),
):
    """
    Week view of the expert calendar.

    Returns:
        Monday-first day columns, each carrying its appointments with
        their grid blocks
    """
    if not session.is_authenticated:
        return JSONResponse(status_code=401, content=LOGIN_REQUIRED)
    try:
        day = _parse_day(date)
    except ValueError:
        return _bad_date(date)

    week_start, week_end = get_week_start(day), get_week_end(day)
    appointments = await AppointmentService(client).get_appointments(week_start, week_end)
    buckets = bucket_by_date(appointments)

    days = []
    for column in get_week_days(day):
        days.append({
            **column,
            "appointments": [_serialize_appointment(a) for a in buckets.get(column["date"], [])],
        })

    return {
        "week_start": week_start.isoformat(),
        "week_end": week_end.isoformat(),
        "label": format_date_range(week_start, week_end),
        "hours": get_day_hours(settings.calendar_start_hour, settings.calendar_end_hour),
        "hour_height": settings.calendar_hour_height,
        "days": days,
    }


@router.get("/calendar/day")
async def calendar_day(
    date: Optional[str] = Query(default=None),
    session: SessionContext = Depends(get_session),
    client: ApiClient = Depends(get_api_client),
):
    if not session.is_authenticated:
        return JSONResponse(status_code=401, content=LOGIN_REQUIRED)
    try:
        day = _parse_day(date)
    except ValueError:
        return _bad_date(date)

    appointments = await AppointmentService(client).get_appointments(day, day)
    return {
        "date": day.isoformat(),
        "label": format_date(day),
        "strip": date_strip(day),
        "appointments": [_serialize_appointment(a) for a in appointments_for_date(appointments, day)],
    }


# ==========================================
# EXPERTS
# ==========================================

@router.get("/experts/{slug}")
async def expert_profile(slug: str, client: ApiClient = Depends(get_api_client)):
    profile = await client.get_expert_by_slug(slug)
    if profile is None:
        return JSONResponse(
            status_code=404,
            content={"success": False, "message": "Uzman bulunamadı."},
        )
    return {"claimed": profile.is_claimed, "profile": profile.public_view()}


@router.get("/experts/{expert_id}/reviews")
async def expert_reviews(
    expert_id: int,
    rating_min: int = Query(default=0, ge=0, le=5),
    verified_only: bool = False,
    goal_tag: Optional[str] = None,
    program_type: Optional[str] = None,
    with_story: bool = False,
    client: ApiClient = Depends(get_api_client),
) -> Dict[str, Any]:
    """Normalized reviews of an expert, filtered in memory."""
    thread = await CommentService(client).get_reviews(expert_id)
    filters = ReviewFilters(
        rating_min=rating_min,
        verified_only=verified_only,
        goal_tag=goal_tag,
        program_type=program_type,
        with_story=with_story,
    )

    reviews: List[Dict[str, Any]] = []
    for comment in filter_reviews(thread.comments, filters):
        reviews.append({
            **comment.model_dump(),
            "display_name": get_display_name(comment.author.name, comment.is_anonymous),
        })

    stats = thread.stats or compute_review_stats(thread.comments)
    return {
        "total": len(thread.comments),
        "reviews": reviews,
        "stats": stats.model_dump(),
        "featured": [c.model_dump() for c in featured_reviews(thread.comments)],
        "success_stories": [s.model_dump() for s in success_stories(thread.comments)],
    }


@router.post("/experts/{expert_id}/reviews")
async def submit_review(
    expert_id: int,
    form: ReviewFormData,
    session: SessionContext = Depends(get_session),
    client: ApiClient = Depends(get_api_client),
):
    if not session.is_authenticated:
        return JSONResponse(status_code=401, content=LOGIN_REQUIRED)

    error = validate_review_form(form)
    if error:
        return JSONResponse(status_code=400, content={"success": False, "message": error})

    result = await CommentService(client).post_comment(
        expert_id,
        form.content,
        "expert",
        rating=form.rating,
        review=review_payload(form),
    )
    return JSONResponse(status_code=200 if result["success"] else 400, content=result)


# ==========================================
# PROGRESS
# ==========================================

async def _load_tracker(
    content_type: ContentType,
    content_id: int,
    body: ProgressAction,
    session: SessionContext,
    client: ApiClient,
    guard: InFlightGuard,
) -> ProgressTracker:
    scope = hashlib.sha256(session.token.encode("utf-8")).hexdigest()[:16]
    tracker = ProgressTracker(
        client,
        EventService(client),
        content_type.value,
        content_id,
        total_items=body.total_items,
        points=body.points,
        guard=guard,
        scope=scope,
    )
    await tracker.load()
    return tracker


def _progress_response(result: Dict[str, Any], tracker: ProgressTracker) -> JSONResponse:
    if result.get("success"):
        status_code = 200
    elif result.get("blocked") or result.get("error") == "in_flight":
        status_code = 409
    else:
        status_code = 400
    return JSONResponse(
        status_code=status_code,
        content={**result, "progress": tracker.snapshot()},
    )


@router.post("/progress/{content_type}/{content_id}/start")
async def start_progress(
    content_type: ContentType,
    content_id: int,
    body: Optional[ProgressAction] = None,
    session: SessionContext = Depends(get_session),
    client: ApiClient = Depends(get_api_client),
    guard: InFlightGuard = Depends(get_progress_guard),
):
    if not session.is_authenticated:
        return JSONResponse(status_code=401, content=LOGIN_REQUIRED)

    tracker = await _load_tracker(content_type, content_id, body or ProgressAction(), session, client, guard)
    result = await tracker.start()
    return _progress_response(result, tracker)


@router.post("/progress/{content_type}/{content_id}/toggle")
async def toggle_progress_item(
    content_type: ContentType,
    content_id: int,
    body: ProgressAction,
    session: SessionContext = Depends(get_session),
    client: ApiClient = Depends(get_api_client),
    guard: InFlightGuard = Depends(get_progress_guard),
):
    if not session.is_authenticated:
        return JSONResponse(status_code=401, content=LOGIN_REQUIRED)
    if not body.item_id:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "item_id gereklidir."},
        )

    tracker = await _load_tracker(content_type, content_id, body, session, client, guard)
    result = await tracker.toggle_item(body.item_id)
    return _progress_response(result, tracker)
