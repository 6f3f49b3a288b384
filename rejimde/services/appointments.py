"""
Appointment Service

Expert calendar operations backed by the Rejimde API: loading appointments
for the visible date range, creating appointments, status transitions and
the booking request workflow. Validation happens client-side before any
request is sent.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from rejimde.config import settings
from rejimde.models.schemas import Appointment, AppointmentRequest, AppointmentType
from rejimde.services.api import ApiClient, ApiClientError
from rejimde.services.calendar import add_minutes_to_time, to_iso_date

logger = logging.getLogger(__name__)

CALENDAR_BASE = "/rejimde/v1/pro/calendar"


class AppointmentServiceError(Exception):
    """Raised when an appointment payload cannot be decoded."""
    pass


class AppointmentService:
    """
    Calendar operations for the logged-in expert.

    Appointment lists are cached per visible date range; any status
    transition or new appointment invalidates the cache. Appointments are
    never deleted, only moved to a terminal status.
    """

    def __init__(self, client: ApiClient):
        """
        Initialize AppointmentService.

        Args:
            client: API client carrying the expert's session
        """
        self.client = client
        self._cache: Dict[Tuple[str, str], List[Appointment]] = {}

        logger.info("AppointmentService initialized")

    def invalidate(self) -> None:
        self._cache.clear()

    @staticmethod
    def _decode_appointment(raw: Dict[str, Any]) -> Appointment:
        try:
            return Appointment(**raw)
        except ValidationError as e:
            raise AppointmentServiceError(f"Invalid appointment payload: {e}") from e

    async def get_appointments(
        self,
        start_date: Any,
        end_date: Any,
        refresh: bool = False,
    ) -> List[Appointment]:
        """
        Appointments between two dates, inclusive.

        Args:
            start_date: First visible day (date or ISO string)
            end_date: Last visible day
            refresh: Bypass the range cache

        Returns:
            List of appointments; empty when the request fails
        """
        key = (to_iso_date(start_date), to_iso_date(end_date))
        if not refresh and key in self._cache:
            logger.debug(f"Appointment cache hit for {key[0]}..{key[1]}")
            return self._cache[key]

        items = await self.client.fetch_list(
            f"{CALENDAR_BASE}/appointments",
            auth=True,
            params={"start_date": key[0], "end_date": key[1]},
        )

        appointments = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                appointments.append(self._decode_appointment(item))
            except AppointmentServiceError as e:
                logger.warning(f"Skipping appointment {item.get('id')}: {e}")

        self._cache[key] = appointments
        return appointments

    async def create_appointment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an appointment for one of the expert's clients.

        Args:
            data: client_id, date, start_time, duration, type and optional
                  service_id, title, location, meeting_link, notes

        Returns:
            {"success": True, "appointment": Appointment} or a failure dict
        """
        if not data.get("client_id"):
            return {"success": False, "message": "Lütfen bir danışan seçin."}
        if not data.get("date") or not data.get("start_time"):
            return {"success": False, "message": "Tarih ve saat gereklidir."}

        duration = int(data.get("duration") or settings.default_appointment_duration)
        payload = {
            key: value
            for key, value in {
                **data,
                "duration": duration,
                "end_time": data.get("end_time") or add_minutes_to_time(data["start_time"], duration),
            }.items()
            if value not in (None, "")
        }

        result = await self.client.post_action(
            f"{CALENDAR_BASE}/appointments",
            payload,
            failure_message="Randevu oluşturulamadı.",
        )
        if not result["success"]:
            return {"success": False, "message": result["message"]}

        self.invalidate()
        raw = result.get("data")
        appointment = None
        if isinstance(raw, dict):
            raw = raw.get("appointment", raw)
            try:
                appointment = self._decode_appointment(raw)
            except AppointmentServiceError as e:
                logger.warning(f"Created appointment could not be decoded: {e}")

        logger.info(f"Appointment created for client {data.get('client_id')} on {data.get('date')}")
        return {"success": True, "appointment": appointment}

    async def _transition(self, appointment_id: int, action: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        result = await self.client.post_action(
            f"{CALENDAR_BASE}/appointments/{appointment_id}/{action}",
            payload,
            failure_message="Bir hata oluştu.",
        )
        if result["success"]:
            self.invalidate()
            logger.info(f"Appointment {appointment_id}: {action}")
            return {"success": True}
        return {"success": False, "message": result["message"]}

    async def complete_appointment(self, appointment_id: int) -> Dict[str, Any]:
        return await self._transition(appointment_id, "complete")

    async def cancel_appointment(self, appointment_id: int, reason: str) -> Dict[str, Any]:
        if not reason or not reason.strip():
            return {"success": False, "message": "Lütfen iptal sebebi giriniz."}
        return await self._transition(appointment_id, "cancel", {"reason": reason.strip()})

    async def mark_no_show(self, appointment_id: int) -> Dict[str, Any]:
        return await self._transition(appointment_id, "no-show")

    # ------------------------------------------------------------------
    # Booking requests
    # ------------------------------------------------------------------

    async def get_appointment_requests(self, status: Optional[str] = None) -> Dict[str, Any]:
        """
        Pending (or filtered) booking requests addressed to the expert.

        Returns:
            {"requests": [AppointmentRequest, ...], "meta": {...}}
        """
        params = {"status": status} if status else None
        try:
            response = await self.client.request(
                "GET", f"{CALENDAR_BASE}/requests", params=params
            )
        except ApiClientError as e:
            logger.error(f"Failed to load appointment requests: {e}")
            return {"requests": [], "meta": {}}

        if not response.ok:
            return {"requests": [], "meta": {}}

        body = response.data
        items = body.get("data") if isinstance(body, dict) else body
        if isinstance(items, dict):
            items = items.get("requests")

        requests_list = []
        for item in items if isinstance(items, list) else []:
            try:
                requests_list.append(AppointmentRequest(**item))
            except (TypeError, ValidationError) as e:
                logger.warning(f"Skipping malformed appointment request: {e}")

        meta = body.get("meta") if isinstance(body, dict) else None
        return {"requests": requests_list, "meta": meta or {"total": len(requests_list)}}

    async def approve_request(
        self,
        request_id: int,
        date: str,
        start_time: str,
        appointment_type: str = AppointmentType.ONLINE.value,
        duration: Optional[int] = None,
        meeting_link: Optional[str] = None,
    ) -> Dict[str, Any]:
        if appointment_type == AppointmentType.ONLINE.value and not (meeting_link or "").strip():
            return {"success": False, "message": "Online randevu için toplantı linki gereklidir."}

        payload = {
            "date": date,
            "start_time": start_time,
            "duration": duration or settings.default_appointment_duration,
            "type": appointment_type,
        }
        if meeting_link:
            payload["meeting_link"] = meeting_link.strip()

        result = await self.client.post_action(
            f"{CALENDAR_BASE}/requests/{request_id}/approve",
            payload,
            failure_message="Talep onaylanamadı.",
        )
        if result["success"]:
            self.invalidate()
            return {"success": True}
        return {"success": False, "message": result["message"]}

    async def reject_request(self, request_id: int, reason: str) -> Dict[str, Any]:
        if not reason or not reason.strip():
            return {"success": False, "message": "Lütfen reddetme sebebi giriniz."}

        result = await self.client.post_action(
            f"{CALENDAR_BASE}/requests/{request_id}/reject",
            {"reason": reason.strip()},
            failure_message="Talep reddedilemedi.",
        )
        if result["success"]:
            return {"success": True}
        return {"success": False, "message": result["message"]}

    # ------------------------------------------------------------------
    # Client side
    # ------------------------------------------------------------------

    async def request_appointment(
        self,
        expert_id: int,
        preferred_date: Optional[str],
        preferred_time: Optional[str] = None,
        alternative_date: Optional[str] = None,
        alternative_time: Optional[str] = None,
        message: Optional[str] = None,
        service_id: Optional[int] = None,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Ask an expert for an appointment.

        A preferred time, or a complete alternative date/time pair, is
        required next to the preferred date.
        """
        if not self.client.storage.load().is_authenticated:
            return {
                "success": False,
                "message": "Randevu talebi oluşturmak için giriş yapmalısınız.",
            }

        has_time = bool(preferred_time) or bool(alternative_date and alternative_time)
        if not preferred_date or not has_time:
            return {
                "success": False,
                "message": (
                    "Lütfen tercih ettiğiniz tarih ve saat veya alternatif "
                    "tarih ve saat bilgilerini giriniz."
                ),
            }

        payload = {
            "expert_id": expert_id,
            "preferred_date": preferred_date,
            "preferred_time": preferred_time,
            "alternative_date": alternative_date,
            "alternative_time": alternative_time,
            "message": message,
            "service_id": service_id,
            "name": name,
            "email": email,
        }
        result = await self.client.post_action(
            "/rejimde/v1/appointments/request",
            {key: value for key, value in payload.items() if value not in (None, "")},
            failure_message="Randevu talebi gönderilemedi. Lütfen tekrar deneyin.",
        )
        if result["success"]:
            logger.info(f"Appointment request sent to expert {expert_id}")
            return {"success": True, "data": result.get("data")}
        return {"success": False, "message": result["message"]}

    async def get_available_slots(self, expert_id: int, date: str) -> List[str]:
        try:
            response = await self.client.request(
                "GET",
                f"/rejimde/v1/experts/{expert_id}/availability",
                params={"date": date},
                auth=False,
            )
        except ApiClientError as e:
            logger.error(f"Failed to load slots for expert {expert_id}: {e}")
            return []

        body = response.data if isinstance(response.data, dict) else {}
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        slots = data.get("available_slots") or []
        return [slot for slot in slots if isinstance(slot, str)] if response.ok else []

