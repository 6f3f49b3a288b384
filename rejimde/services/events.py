"""
Gamification Event Client

Every point-earning action on the site is reported through a single
``/rejimde/v1/events`` endpoint. The backend decides what (if anything)
is awarded; this module only sends the event and parses the answer.
"""

import logging
import time
from typing import Any, Dict, Optional

from pydantic import ValidationError

from rejimde.models.schemas import EventResponse
from rejimde.services.api import ApiClient, ApiClientError

logger = logging.getLogger(__name__)

LOGIN_REQUIRED = "Giriş yapmalısınız."
CONNECTION_FAILED = "Bağlantı hatası."


class EventService:
    """Sends gamification events on behalf of the logged-in user."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def send_event(
        self,
        event_type: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        source: str = "web",
    ) -> EventResponse:
        """
        Send a gamification event.

        Args:
            event_type: Event name (e.g. "diet_completed")
            entity_type: Kind of entity the event refers to
            entity_id: ID of that entity
            metadata: Extra event data
            source: Originating surface

        Returns:
            EventResponse; anonymous callers get an error response without
            any request being made

        Example:
            >>> result = await events.start_diet(42)
            >>> result.ok
            True
        """
        if not self.client.storage.load().is_authenticated:
            return EventResponse(status="error", message=LOGIN_REQUIRED)

        payload = {
            "event_type": event_type,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "metadata": metadata or {},
            "source": source or "web",
        }

        try:
            response = await self.client.request("POST", "/rejimde/v1/events", json=payload)
        except ApiClientError as e:
            logger.error(f"sendEvent failed for {event_type}: {e}")
            return EventResponse(status="error", message=CONNECTION_FAILED)

        body = response.data if isinstance(response.data, dict) else {}
        try:
            result = EventResponse(**body)
        except ValidationError as e:
            logger.error(f"Unexpected event response for {event_type}: {e}")
            return EventResponse(status="error", message=CONNECTION_FAILED)

        if result.ok and result.data:
            logger.info(
                f"Event {event_type} accepted: +{result.data.awarded_points_total} "
                f"(balance {result.data.current_balance})"
            )
        return result

    async def login(self) -> EventResponse:
        return await self.send_event("login_success")

    async def claim_blog_points(self, blog_id: int, is_sticky: bool = False) -> EventResponse:
        return await self.send_event(
            "blog_points_claimed", "blog", blog_id, {"is_sticky": is_sticky}
        )

    async def start_diet(self, diet_id: int) -> EventResponse:
        return await self.send_event("diet_started", "diet", diet_id)

    async def complete_diet(self, diet_id: int, diet_points: int) -> EventResponse:
        return await self.send_event(
            "diet_completed", "diet", diet_id, {"diet_points": diet_points}
        )

    async def start_exercise(self, exercise_id: int) -> EventResponse:
        return await self.send_event("exercise_started", "exercise", exercise_id)

    async def complete_exercise(self, exercise_id: int, exercise_points: int) -> EventResponse:
        return await self.send_event(
            "exercise_completed", "exercise", exercise_id, {"exercise_points": exercise_points}
        )

    async def save_calculator(self, calculator_type: str, result: Any) -> EventResponse:
        return await self.send_event(
            "calculator_saved",
            "calculator",
            metadata={"calculator_type": calculator_type, "result": result},
        )

    async def submit_rating(self, target_type: str, target_id: int, score: int) -> EventResponse:
        return await self.send_event(
            "rating_submitted",
            target_type,
            target_id,
            {"target_type": target_type, "target_id": target_id, "score": score},
        )

    async def comment_created(self, comment_id: int, target_type: str, target_id: int) -> EventResponse:
        return await self.send_event(
            "comment_created",
            "comment",
            comment_id,
            {"target_type": target_type, "target_id": target_id},
        )

    async def like_comment(self, comment_id: int) -> EventResponse:
        return await self.send_event("comment_liked", "comment", comment_id)

    async def follow_accepted(self, follower_id: int, following_id: int) -> EventResponse:
        return await self.send_event(
            "follow_accepted",
            "user",
            metadata={"follower_id": follower_id, "following_id": following_id},
        )

    async def send_highfive(self, receiver_id: int) -> EventResponse:
        return await self.send_event(
            "highfive_sent", "user", receiver_id, {"receiver_id": receiver_id}
        )

    async def add_water(self, amount_ml: int) -> EventResponse:
        # bucket id keeps repeated glasses distinct on the backend
        return await self.send_event(
            "water_added",
            "water",
            metadata={"amount_ml": amount_ml, "bucket_id": int(time.time() * 1000)},
        )

    async def log_steps(self, steps_delta: int) -> EventResponse:
        return await self.send_event("steps_logged", "steps", metadata={"steps_delta": steps_delta})

    async def upload_meal_photo(self, meal_id: str) -> EventResponse:
        return await self.send_event("meal_photo_uploaded", "meal", metadata={"meal_id": meal_id})

    async def joined_circle(self, circle_id: int) -> EventResponse:
        return await self.send_event("circle_joined", "circle", circle_id)

    async def created_circle(self, circle_id: int) -> EventResponse:
        return await self.send_event("circle_created", "circle", circle_id)
