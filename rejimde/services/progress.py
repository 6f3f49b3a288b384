"""
Progress Tracking

Client-side state machine for a user's progress through a diet, exercise
or blog post:

    NOT_STARTED -> STARTED -> ALL_ITEMS_COMPLETE -> REWARD_CLAIMED

All-complete is derived from the completed item count. Item toggles are
applied locally only after the backend confirms them, and at most one
request per content item is in flight at any time.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from rejimde.models.schemas import ContentType, ProgressRecord
from rejimde.services.api import SERVER_ERROR, ApiClient
from rejimde.services.events import EventService

logger = logging.getLogger(__name__)

MUST_START_FIRST = "Önce plana başlamalısın."
ALREADY_STARTED = "Bu plana zaten başladın."
ALREADY_CLAIMED = "Bu içeriğin puanını zaten aldın."
SAVE_FAILED = "İlerleme kaydedilemedi."
IN_FLIGHT = "Önceki işlem henüz tamamlanmadı."

# Backend rejections for content the user has not started yet
NOT_STARTED_PHRASES = (
    "must start",
    "must be started",
    "not started",
    "start first",
    "started first",
    "başlamalı",
    "başlamadın",
    "başlanmamış",
    "başlatılmamış",
)


class ProgressState(str, Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    ALL_ITEMS_COMPLETE = "all_items_complete"
    REWARD_CLAIMED = "reward_claimed"


class InFlightGuard:
    """Registry of content keys that have a progress request running."""

    def __init__(self):
        self._keys: Set[str] = set()

    def acquire(self, key: str) -> bool:
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: str) -> None:
        self._keys.discard(key)

    def is_in_flight(self, key: str) -> bool:
        return key in self._keys


def localize_progress_message(message: Optional[str]) -> str:
    """
    Map backend progress errors to user-facing Turkish messages.

    Rejections for content that has not been started are rewritten to the
    "start first" prompt; transport failures become a generic save error.
    """
    if not message or message == SERVER_ERROR:
        return SAVE_FAILED
    lowered = message.lower()
    if any(phrase in lowered for phrase in NOT_STARTED_PHRASES):
        return MUST_START_FIRST
    return message


def _is_already(result: Dict[str, Any]) -> bool:
    data = result.get("data")
    if isinstance(data, dict) and (data.get("already_claimed") or data.get("already_started")):
        return True
    message = (result.get("message") or "").lower()
    return "already" in message or "zaten" in message


class ProgressTracker:
    """
    Progress of the current user on one content item.

    Args:
        client: API client for the progress endpoints
        events: Event client used to report completion
        content_type: "diet", "exercise" or "blog"
        content_id: Content item ID
        total_items: Number of checkable items in the content
        points: Points reported with the completion event
        record: Initial progress record (an empty one if omitted)
        guard: Shared in-flight registry (a private one is created if omitted)
        scope: Owner prefix of the in-flight key when the guard is shared
    """

    def __init__(
        self,
        client: ApiClient,
        events: EventService,
        content_type: str,
        content_id: int,
        total_items: int,
        points: int = 0,
        record: Optional[ProgressRecord] = None,
        guard: Optional[InFlightGuard] = None,
        scope: Optional[str] = None,
    ):
        self.client = client
        self.events = events
        self.content_type = ContentType(content_type).value
        self.content_id = content_id
        self.total_items = max(int(total_items), 0)
        self.points = points
        self.record = record or ProgressRecord()
        self.guard = guard or InFlightGuard()
        self.scope = scope

    @property
    def key(self) -> str:
        key = f"{self.content_type}:{self.content_id}"
        return f"{self.scope}:{key}" if self.scope else key

    @property
    def completed_items(self) -> List[str]:
        return list(self.record.completed_items)

    @property
    def all_items_complete(self) -> bool:
        return self.total_items > 0 and len(self.record.completed_items) >= self.total_items

    @property
    def state(self) -> ProgressState:
        if self.record.reward_claimed:
            return ProgressState.REWARD_CLAIMED
        if self.record.is_started and self.all_items_complete:
            return ProgressState.ALL_ITEMS_COMPLETE
        if self.record.is_started:
            return ProgressState.STARTED
        return ProgressState.NOT_STARTED

    @property
    def percent_complete(self) -> int:
        if self.total_items <= 0:
            return 0
        percent = round(len(self.record.completed_items) / self.total_items * 100)
        return min(percent, 100)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "content_type": self.content_type,
            "content_id": self.content_id,
            "state": self.state.value,
            "completed_items": self.completed_items,
            "total_items": self.total_items,
            "percent_complete": self.percent_complete,
            "reward_claimed": self.record.reward_claimed,
        }

    async def load(self) -> ProgressRecord:
        """Refresh the record from the backend; keeps the local one on failure."""
        record = await self.client.get_progress(self.content_type, self.content_id)
        if record is not None:
            # a claimed reward never goes back to unclaimed locally
            record.reward_claimed = record.reward_claimed or self.record.reward_claimed
            self.record = record
        return self.record

    async def start(self) -> Dict[str, Any]:
        """
        Start the content item.

        Idempotent: when already started, succeeds without contacting the
        backend.
        """
        if self.record.is_started:
            return {"success": True, "already_started": True, "message": ALREADY_STARTED}

        if not self.guard.acquire(self.key):
            return {"success": False, "error": "in_flight", "message": IN_FLIGHT}
        try:
            result = await self.client.start_progress(self.content_type, self.content_id)
            already = not result["success"] and _is_already(result)
            if not result["success"] and not already:
                return {"success": False, "message": localize_progress_message(result.get("message"))}

            self.record.is_started = True
            logger.info(f"Progress started for {self.key}")

            if not already and self.content_type != ContentType.BLOG.value:
                await self.events.send_event(
                    f"{self.content_type}_started", self.content_type, self.content_id
                )
            return {"success": True, "already_started": already, "state": self.state.value}
        finally:
            self.guard.release(self.key)

    async def toggle_item(self, item_id: str) -> Dict[str, Any]:
        """
        Check or uncheck an item.

        Returns:
            Result dict. ``blocked`` is set when the content is not started,
            ``error == "in_flight"`` when another request for the same item
            is still running.
        """
        if not self.record.is_started:
            return {"success": False, "blocked": True, "message": MUST_START_FIRST}

        if not self.guard.acquire(self.key):
            return {"success": False, "error": "in_flight", "message": IN_FLIGHT}

        try:
            current = self.completed_items
            if item_id in current:
                items = [item for item in current if item != item_id]
            else:
                items = current + [item_id]

            result = await self.client.update_progress(self.content_type, self.content_id, items)
            if not result["success"]:
                message = localize_progress_message(result.get("message"))
                logger.warning(f"Toggle of {item_id} on {self.key} rejected: {message}")
                return {
                    "success": False,
                    "blocked": message == MUST_START_FIRST,
                    "message": message,
                }

            self.record.completed_items = items
            completion = await self._dispatch_completion()
            return {
                "success": True,
                "completed_items": self.completed_items,
                "state": self.state.value,
                "percent_complete": self.percent_complete,
                "completion": completion,
            }
        finally:
            self.guard.release(self.key)

    async def _dispatch_completion(self) -> Optional[Dict[str, Any]]:
        if not self.all_items_complete or self.record.reward_claimed:
            return None

        # set before awaiting so a concurrent toggle cannot dispatch again
        self.record.reward_claimed = True
        self.record.is_completed = True
        logger.info(f"All items complete for {self.key}, dispatching completion")

        if self.content_type == ContentType.BLOG.value:
            return await self.client.claim_reward(self.content_type, self.content_id)

        response = await self.events.send_event(
            f"{self.content_type}_completed",
            self.content_type,
            self.content_id,
            {f"{self.content_type}_points": self.points},
        )
        if not response.ok:
            logger.error(f"Completion event for {self.key} failed: {response.message}")
        return response.model_dump()

    async def claim_reward(self) -> Dict[str, Any]:
        """
        Claim the reward of the content item (blog reading points).

        Only one claim per key is sent at a time; an "already claimed"
        answer marks the reward as claimed as well.
        """
        if self.record.reward_claimed:
            return {"success": False, "already_claimed": True, "message": ALREADY_CLAIMED}

        if not self.guard.acquire(self.key):
            return {"success": False, "error": "in_flight", "message": IN_FLIGHT}
        try:
            result = await self.client.claim_reward(self.content_type, self.content_id)
        finally:
            self.guard.release(self.key)

        if result["success"]:
            self.record.reward_claimed = True
            logger.info(f"Reward claimed for {self.key}")
            return {"success": True, "data": result.get("data")}

        if _is_already(result):
            self.record.reward_claimed = True
            return {"success": False, "already_claimed": True, "message": ALREADY_CLAIMED}

        return {"success": False, "message": result.get("message") or "Bir hata oluştu."}
