import asyncio

import pytest
import requests

from rejimde.models.schemas import ProgressRecord
from rejimde.services.progress import (
    MUST_START_FIRST,
    SAVE_FAILED,
    InFlightGuard,
    ProgressState,
    ProgressTracker,
    localize_progress_message,
)

PROGRESS = "/rejimde/v1/progress/diet/5"
EVENTS = "/rejimde/v1/events"


def make_tracker(client, events, total=3, record=None, content_type="diet", guard=None):
    return ProgressTracker(
        client,
        events,
        content_type,
        5,
        total_items=total,
        points=40,
        record=record,
        guard=guard,
    )


def started(*items, **flags):
    return ProgressRecord(completed_items=list(items), is_started=True, **flags)


@pytest.mark.asyncio
async def test_toggle_before_start_is_blocked(client, events, http):
    tracker = make_tracker(client, events)

    result = await tracker.toggle_item("a")

    assert result["success"] is False
    assert result["blocked"] is True
    assert result["message"] == MUST_START_FIRST
    assert tracker.completed_items == []
    assert http.calls == []


@pytest.mark.asyncio
async def test_start_is_idempotent(client, events, http):
    http.add("POST", f"{PROGRESS}/start", body={"status": "success", "data": {}})
    http.add("POST", EVENTS, body={"status": "success"})
    tracker = make_tracker(client, events)

    first = await tracker.start()
    second = await tracker.start()

    assert first["success"] is True
    assert second["already_started"] is True
    assert tracker.state == ProgressState.STARTED
    assert len(http.calls_to(f"{PROGRESS}/start")) == 1
    assert http.calls_to(EVENTS)[0]["json"]["event_type"] == "diet_started"


@pytest.mark.asyncio
async def test_backend_already_started_counts_as_started(client, events, http):
    http.add("POST", f"{PROGRESS}/start", status=400, body={"status": "error", "message": "Already started"})
    tracker = make_tracker(client, events)

    result = await tracker.start()

    assert result["success"] is True
    assert result["already_started"] is True
    assert tracker.record.is_started is True
    assert http.calls_to(EVENTS) == []


@pytest.mark.asyncio
async def test_toggle_applies_after_confirmation(client, events, http):
    http.add("POST", PROGRESS, body={"status": "success", "data": {}})
    tracker = make_tracker(client, events, record=started("a"))

    result = await tracker.toggle_item("b")

    assert result["success"] is True
    assert tracker.completed_items == ["a", "b"]
    assert tracker.percent_complete == 67
    assert http.calls_to(PROGRESS)[0]["json"] == {"completed_items": ["a", "b"]}

    await tracker.toggle_item("a")
    assert tracker.completed_items == ["b"]


@pytest.mark.asyncio
async def test_network_failure_leaves_state_unchanged(client, events, http):
    http.add("POST", PROGRESS, exc=requests.ConnectionError("down"))
    tracker = make_tracker(client, events, record=started("a"))

    result = await tracker.toggle_item("b")

    assert result["success"] is False
    assert result["message"] == SAVE_FAILED
    assert tracker.completed_items == ["a"]
    assert not tracker.guard.is_in_flight(tracker.key)


@pytest.mark.asyncio
async def test_backend_not_started_rejection_is_localized(client, events, http):
    http.add("POST", PROGRESS, status=400, body={"status": "error", "message": "Content must be started first"})
    tracker = make_tracker(client, events, record=started())

    result = await tracker.toggle_item("a")

    assert result["blocked"] is True
    assert result["message"] == MUST_START_FIRST
    assert tracker.completed_items == []


@pytest.mark.asyncio
async def test_completion_dispatched_once(client, events, http):
    http.add("POST", PROGRESS, body={"status": "success"})
    http.add("POST", EVENTS, body={"status": "success", "data": {"awarded_points_total": 40}})
    tracker = make_tracker(client, events, total=2, record=started("a"))

    result = await tracker.toggle_item("b")

    assert tracker.state == ProgressState.REWARD_CLAIMED
    assert result["completion"]["status"] == "success"
    sent = http.calls_to(EVENTS)
    assert len(sent) == 1
    assert sent[0]["json"]["event_type"] == "diet_completed"
    assert sent[0]["json"]["metadata"] == {"diet_points": 40}

    await tracker.toggle_item("b")
    await tracker.toggle_item("b")
    assert len(http.calls_to(EVENTS)) == 1


@pytest.mark.asyncio
async def test_racing_last_toggles_dispatch_once(client, events, http):
    http.add("POST", PROGRESS, body={"status": "success"})
    http.add("POST", EVENTS, body={"status": "success"})
    tracker = make_tracker(client, events, total=2, record=started("a"))

    results = await asyncio.gather(tracker.toggle_item("b"), tracker.toggle_item("b"))

    assert sorted(r["success"] for r in results) == [False, True]
    rejected = next(r for r in results if not r["success"])
    assert rejected["error"] == "in_flight"
    assert tracker.completed_items == ["a", "b"]
    assert len(http.calls_to(EVENTS)) == 1


def test_shared_guard_scoped_per_owner(client, events):
    guard = InFlightGuard()
    mine = ProgressTracker(client, events, "diet", 5, 2, guard=guard, scope="u1")
    theirs = ProgressTracker(client, events, "diet", 5, 2, guard=guard, scope="u2")

    assert guard.acquire(mine.key)
    assert not guard.is_in_flight(theirs.key)


@pytest.mark.asyncio
async def test_blog_claim_already_claimed_marks_record(client, events, http):
    http.add("POST", "/rejimde/v1/progress/blog/5/claim", status=400,
             body={"status": "error", "message": "Bu yazının puanını zaten aldın"})
    tracker = make_tracker(client, events, content_type="blog")

    result = await tracker.claim_reward()

    assert result["already_claimed"] is True
    assert tracker.record.reward_claimed is True

    again = await tracker.claim_reward()
    assert again["already_claimed"] is True
    assert len(http.calls) == 1


@pytest.mark.asyncio
async def test_load_never_unclaims(client, events, http):
    http.add("GET", PROGRESS, body={"completed_items": ["a"], "is_started": True, "reward_claimed": False})
    tracker = make_tracker(client, events, record=started("a", reward_claimed=True))

    await tracker.load()

    assert tracker.record.reward_claimed is True


def test_percent_complete_edges(client, events):
    assert make_tracker(client, events, total=0).percent_complete == 0
    assert make_tracker(client, events, total=2, record=started("a", "b", "c")).percent_complete == 100


def test_localize_progress_message():
    assert localize_progress_message(None) == SAVE_FAILED
    assert localize_progress_message("You must start this plan") == MUST_START_FIRST
    assert localize_progress_message("Önce başlamalısın") == MUST_START_FIRST
    assert localize_progress_message("Limit aşıldı") == "Limit aşıldı"


@pytest.mark.asyncio
async def test_racing_blog_claims_send_one_request(client, events, http):
    http.add("POST", "/rejimde/v1/progress/blog/5/claim", body={"status": "success", "data": {"points": 10}})
    tracker = make_tracker(client, events, content_type="blog")

    results = await asyncio.gather(tracker.claim_reward(), tracker.claim_reward())

    assert sorted(r["success"] for r in results) == [False, True]
    assert next(r for r in results if not r["success"])["error"] == "in_flight"
    assert len(http.calls_to("/rejimde/v1/progress/blog/5/claim")) == 1
    assert tracker.record.reward_claimed is True
    assert not tracker.guard.is_in_flight(tracker.key)


@pytest.mark.asyncio
async def test_failed_claim_releases_guard(client, events, http):
    http.add("POST", "/rejimde/v1/progress/blog/5/claim", exc=requests.ConnectionError("down"))
    tracker = make_tracker(client, events, content_type="blog")

    result = await tracker.claim_reward()

    assert result["success"] is False
    assert tracker.record.reward_claimed is False
    assert not tracker.guard.is_in_flight(tracker.key)


def test_unrelated_start_messages_are_kept():
    assert localize_progress_message("Başlangıç tarihi geçersiz") == "Başlangıç tarihi geçersiz"
    assert localize_progress_message("Start date is invalid") == "Start date is invalid"
    assert localize_progress_message("Bu içerik henüz başlatılmamış") == MUST_START_FIRST
