"""
Rejimde API Client

Thin wrapper over the WordPress-based Rejimde REST API.
Injects the bearer token from the session storage, converts non-2xx
responses into soft failures and normalizes list envelopes.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from pydantic import ValidationError

from rejimde.config import settings
from rejimde.models.schemas import (
    ExpertProfile,
    ExpertSummary,
    ProgressRecord,
    placeholder_avatar,
)
from rejimde.session import SessionStorage

logger = logging.getLogger(__name__)

SERVER_ERROR = "Sunucu hatası."
CONNECTION_ERROR = "Sunucu ile bağlantı kurulamadı."
INVALID_RESPONSE = "Sunucudan geçersiz yanıt alındı."

DEFAULT_AVATARS = {
    "female": "https://api.dicebear.com/9.x/personas/svg?seed=Aneka",
    "male": "https://api.dicebear.com/9.x/personas/svg?seed=Felix",
}
NEUTRAL_AVATAR = "https://api.dicebear.com/9.x/personas/svg?seed=Shadow"

_TAG_RE = re.compile(r"<[^>]+>")


class ApiClientError(Exception):
    """Raised for transport failures and unparseable response bodies."""
    pass


class ApiResponse:
    """Status code plus decoded JSON body (None for empty bodies)."""

    __slots__ = ("status_code", "data")

    def __init__(self, status_code: int, data: Any):
        self.status_code = status_code
        self.data = data

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def message(self) -> Optional[str]:
        if isinstance(self.data, dict):
            return self.data.get("message")
        return None


def normalize_list(payload: Any) -> List[Any]:
    """
    Accept any of the list envelopes the backend has used.

    Supported shapes:
        {"status": "success", "data": [...]}
        [...]
        {"data": [...]}

    Returns:
        The list, or an empty list for anything else
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, list):
            return data
    return []


def strip_tags(html: str) -> str:
    return _TAG_RE.sub("", html or "")


def get_default_avatar(gender: Optional[str]) -> str:
    return DEFAULT_AVATARS.get(gender or "", NEUTRAL_AVATAR)


def _success_payload(response: ApiResponse) -> Optional[Any]:
    """Return ``data`` of a ``{status: 'success', data}`` body, else None."""
    body = response.data
    if isinstance(body, dict) and body.get("status") == "success":
        return body.get("data")
    return None


class ApiClient:
    """
    Async client for the Rejimde REST API.

    Blocking ``requests`` calls run in a worker thread so callers can
    ``await`` them from the event loop.
    """

    def __init__(
        self,
        storage: Optional[SessionStorage] = None,
        base_url: Optional[str] = None,
        http: Optional[requests.Session] = None,
        timeout: Optional[int] = None,
    ):
        """
        Initialize ApiClient.

        Args:
            storage: Session storage the auth token is read from on every request
            base_url: Backend base URL (defaults to settings.wp_api_url)
            http: requests session to reuse (one is created if omitted)
            timeout: Per-request timeout in seconds
        """
        self.storage = storage or SessionStorage()
        self.base_url = (base_url or settings.wp_api_url).rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout or settings.request_timeout

        logger.debug(f"ApiClient initialized for {self.base_url}")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, auth: bool, json_body: bool = True) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if json_body:
            headers["Content-Type"] = "application/json"
        if auth:
            headers.update(self.storage.load().auth_headers())
        return headers

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        files: Optional[Dict[str, Any]] = None,
        auth: bool = True,
    ) -> ApiResponse:
        """
        Send a request to the backend.

        Args:
            method: HTTP method
            endpoint: Path below the base URL (e.g. "/rejimde/v1/events")
            params: Query string parameters
            json: JSON body
            files: Multipart files (disables the JSON content type)
            auth: Attach the bearer token when one is stored

        Returns:
            ApiResponse with status code and decoded body

        Raises:
            ApiClientError: On connection errors, timeouts and invalid JSON
        """
        url = f"{self.base_url}{endpoint}"
        headers = self._headers(auth, json_body=files is None)

        logger.debug(f"{method} {endpoint}")

        try:
            response = await asyncio.to_thread(
                self.http.request,
                method,
                url,
                params=params,
                json=json,
                files=files,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Request to {endpoint} timed out: {e}")
            raise ApiClientError(f"Request to {endpoint} timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to reach backend at {url}: {e}")
            raise ApiClientError(f"Cannot connect to backend: {str(e)}") from e

        text = response.text
        if not text or not text.strip():
            data = None
        else:
            try:
                data = response.json()
            except ValueError as e:
                logger.error(f"Invalid JSON from {endpoint} (status {response.status_code})")
                raise ApiClientError(f"Invalid JSON from {endpoint}") from e

        if not 200 <= response.status_code < 300:
            logger.warning(f"{method} {endpoint} returned status {response.status_code}")

        return ApiResponse(response.status_code, data)

    async def fetch_api(self, endpoint: str, auth: bool = False) -> Any:
        """GET an endpoint and return its decoded body (None when empty)."""
        response = await self.request("GET", endpoint, auth=auth)
        return response.data

    async def fetch_list(self, endpoint: str, auth: bool = False, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        """GET a list endpoint; soft failures become an empty list."""
        try:
            response = await self.request("GET", endpoint, params=params, auth=auth)
        except ApiClientError as e:
            logger.error(f"Failed to load list {endpoint}: {e}")
            return []
        if not response.ok:
            return []
        return normalize_list(response.data)

    async def post_action(
        self,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
        failure_message: str = SERVER_ERROR,
        method: str = "POST",
    ) -> Dict[str, Any]:
        """
        POST to a ``{status, data, message}`` endpoint.

        Returns:
            {"success": True, "data": ...} or {"success": False, "message": ...}
        """
        try:
            response = await self.request(method, endpoint, json=payload or {})
        except ApiClientError:
            return {"success": False, "message": SERVER_ERROR}

        body = response.data if isinstance(response.data, dict) else {}
        if response.ok and body.get("status", "success") == "success":
            return {"success": True, "data": body.get("data", body)}
        return {
            "success": False,
            "message": body.get("message") or failure_message,
            "data": body.get("data"),
        }

    async def ping(self) -> bool:
        """Check that the backend answers at all."""
        try:
            response = await self.request("GET", "/", auth=False)
        except ApiClientError:
            return False
        return response.status_code < 500

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def login_user(self, username: str, password: str) -> Dict[str, Any]:
        """
        Exchange credentials for a JWT and persist the session fields.

        Returns:
            {"success": True, "data": token payload} or a failure dict
        """
        try:
            response = await self.request(
                "POST",
                "/jwt-auth/v1/token",
                json={"username": username, "password": password},
                auth=False,
            )
        except ApiClientError as e:
            if "Invalid JSON" in str(e):
                return {"success": False, "message": INVALID_RESPONSE}
            return {"success": False, "message": SERVER_ERROR}

        data = response.data if isinstance(response.data, dict) else {}
        if data.get("token"):
            self.storage.apply_login(data, avatar=placeholder_avatar(username))
            logger.info(f"User {username} logged in")
            return {"success": True, "data": data}

        return {"success": False, "message": data.get("message") or "Giriş başarısız."}

    async def login_with_google(self, credential: str) -> Dict[str, Any]:
        try:
            response = await self.request(
                "POST",
                "/rejimde/v1/auth/google",
                json={"id_token": credential},
                auth=False,
            )
        except ApiClientError as e:
            if "Invalid JSON" in str(e):
                return {"success": False, "message": INVALID_RESPONSE}
            return {"success": False, "message": SERVER_ERROR}

        body = response.data if isinstance(response.data, dict) else {}
        data = body.get("data") or {}
        if body.get("status") == "success" and data.get("token"):
            self.storage.apply_login(data)
            return {"success": True, "data": data}

        return {"success": False, "message": body.get("message") or "Google girişi başarısız."}

    async def register_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Register a user or expert account.

        Args:
            data: Form data; either a prepared ``meta`` dict or flat profile fields

        Returns:
            Result dict; a token in the response logs the user in
        """
        meta = data.get("meta") or {
            key: data.get(key)
            for key in (
                "goal", "gender", "birth_date", "height", "weight",
                "profession", "title", "brand_name", "phone", "city",
                "district", "name",
            )
        }
        payload = {
            "username": data.get("username"),
            "email": data.get("email"),
            "password": data.get("password"),
            "role": data.get("role") or "rejimde_user",
            "meta": meta,
        }

        try:
            response = await self.request(
                "POST", "/rejimde/v1/auth/register", json=payload, auth=False
            )
        except ApiClientError as e:
            logger.error(f"Registration request failed: {e}")
            if "Invalid JSON" in str(e):
                return {"success": False, "message": "Sunucu hatası (JSON)."}
            return {"success": False, "message": CONNECTION_ERROR}

        if response.data is None:
            return {"success": False, "message": "Sunucu boş yanıt döndürdü."}

        body = response.data if isinstance(response.data, dict) else {}
        if response.ok and body.get("status") == "success":
            result = body.get("data") or {}
            if result.get("token"):
                self.storage.apply_login(result)
            return {"success": True, "data": result}

        return {
            "success": False,
            "message": body.get("message")
            or f"Kayıt Başarısız: {body.get('code') or 'Bilinmeyen hata'}",
        }

    def logout(self) -> None:
        self.storage.clear()
        logger.info("Session cleared")

    async def change_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        try:
            response = await self.request(
                "POST",
                "/rejimde/v1/auth/change-password",
                json={"current_password": current_password, "new_password": new_password},
            )
        except ApiClientError:
            return {"success": False, "message": SERVER_ERROR}

        body = response.data if isinstance(response.data, dict) else {}
        if body.get("success"):
            return {"success": True}
        return {"success": False, "message": body.get("message") or "Şifre değiştirilemedi."}

    # ------------------------------------------------------------------
    # Profile & media
    # ------------------------------------------------------------------

    async def get_me(self) -> Optional[Dict[str, Any]]:
        """
        Load the logged-in user's profile.

        Returns:
            Profile dict with decoded meta fields, or None on any failure
        """
        try:
            response = await self.request("GET", "/wp/v2/users/me", params={"context": "edit"})
        except ApiClientError:
            return None
        if not response.ok or not isinstance(response.data, dict):
            return None

        user = response.data
        gender = user.get("gender") or "female"
        avatar = (
            user.get("avatar_url")
            or (user.get("avatar_urls") or {}).get("96")
            or get_default_avatar(gender)
        )

        profile = {
            "id": user.get("id"),
            "name": user.get("name"),
            "username": user.get("username"),
            "email": user.get("email"),
            "description": user.get("description"),
            "avatar_url": avatar,
            "roles": user.get("roles") or [],
            "birth_date": user.get("birth_date") or "",
            "gender": gender,
            "height": user.get("height") or "",
            "current_weight": user.get("current_weight") or "",
            "target_weight": user.get("target_weight") or "",
            "activity_level": user.get("activity_level") or "sedentary",
            "goals": _safe_parse(user.get("goals")),
            "notifications": _safe_parse(user.get("notifications")),
            "certificate_status": user.get("certificate_status") or "none",
        }
        for key in (
            "profession", "title", "bio", "branches", "services", "address",
            "city", "district", "brand_name", "phone", "client_types",
            "consultation_types", "certificate_url",
        ):
            profile[key] = user.get(key) or ""
        return profile

    async def update_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.request("POST", "/wp/v2/users/me", json=data)
        except ApiClientError:
            return {"success": False, "message": SERVER_ERROR}

        body = response.data if isinstance(response.data, dict) else {}
        if not response.ok:
            return {"success": False, "message": body.get("message") or "Güncelleme başarısız."}

        self.storage.set("user_name", data.get("name"))
        self.storage.set("user_avatar", data.get("avatar_url"))
        return {"success": True, "data": body}

    async def upload_media(
        self,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, Any]:
        """
        Upload a file (avatar, certificate) to the media library.

        Returns:
            {"success": True, "id": ..., "url": source_url} or a failure dict
        """
        try:
            response = await self.request(
                "POST",
                "/wp/v2/media",
                files={"file": (filename, content, content_type)},
            )
        except ApiClientError:
            return {"success": False, "message": "Dosya yükleme hatası"}

        body = response.data if isinstance(response.data, dict) else {}
        if response.ok and body.get("id"):
            return {"success": True, "id": body["id"], "url": body.get("source_url")}
        return {"success": False, "message": body.get("message") or "Yükleme başarısız."}

    # ------------------------------------------------------------------
    # Experts
    # ------------------------------------------------------------------

    async def get_experts(self, filter_type: Optional[str] = None) -> List[ExpertSummary]:
        items = await self.fetch_list("/rejimde/v1/professionals")
        experts = []
        for item in items:
            if not isinstance(item, dict) or item.get("id") is None:
                continue
            try:
                experts.append(ExpertSummary(**{k: v for k, v in item.items() if v is not None}))
            except ValidationError as e:
                logger.warning(f"Skipping expert {item.get('id')}: {e}")
        if filter_type:
            experts = [expert for expert in experts if expert.type == filter_type]
        return experts

    async def get_expert_by_slug(self, slug: str) -> Optional[ExpertProfile]:
        try:
            response = await self.request(
                "GET", f"/rejimde/v1/professionals/{quote(slug)}", auth=False
            )
        except ApiClientError as e:
            logger.error(f"Failed to load expert {slug}: {e}")
            return None

        body = response.data
        if isinstance(body, dict) and body.get("status") == "success":
            body = body.get("data")
        if not response.ok or not isinstance(body, dict) or body.get("id") is None:
            return None
        try:
            return ExpertProfile(**body)
        except ValidationError as e:
            logger.warning(f"Invalid expert payload for {slug}: {e}")
            return None

    # ------------------------------------------------------------------
    # Blog
    # ------------------------------------------------------------------

    async def get_blog_posts(self) -> List[Dict[str, Any]]:
        posts = await self.fetch_list("/wp/v2/posts?_embed")
        return [
            {
                "id": post.get("id"),
                "title": (post.get("title") or {}).get("rendered", ""),
                "slug": post.get("slug"),
                "excerpt": strip_tags((post.get("excerpt") or {}).get("rendered", "")),
                "image": _featured_image(post) or "https://placehold.co/600x400",
                "date": post.get("date"),
                "author_name": _embedded_author(post) or "Rejimde Editör",
            }
            for post in posts
            if isinstance(post, dict)
        ]

    async def get_post_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        posts = await self.fetch_list("/wp/v2/posts", params={"slug": slug, "_embed": 1})
        if not posts:
            return None

        post = posts[0]
        content = (post.get("content") or {}).get("rendered", "")
        word_count = len(strip_tags(content).split())
        read_minutes = max(1, -(-word_count // 200))

        return {
            "id": post.get("id"),
            "title": (post.get("title") or {}).get("rendered", ""),
            "slug": post.get("slug"),
            "content": content,
            "excerpt": strip_tags((post.get("excerpt") or {}).get("rendered", "")),
            "image": _featured_image(post) or "https://placehold.co/800x400",
            "date": post.get("date"),
            "author_id": post.get("author"),
            "author_name": _embedded_author(post) or "Rejimde Editör",
            "read_time": f"{read_minutes} dk",
        }

    async def get_post_by_id(self, post_id: int) -> Optional[Dict[str, Any]]:
        """
        Load a post in edit context for the blog editor.

        Returns:
            Raw title/content/excerpt with media, taxonomy and SEO meta, or
            None when the post is missing or the user may not edit it
        """
        try:
            response = await self.request(
                "GET", f"/wp/v2/posts/{post_id}", params={"context": "edit", "_embed": 1}
            )
        except ApiClientError as e:
            logger.error(f"Failed to load post {post_id}: {e}")
            return None

        post = response.data
        if not response.ok or not isinstance(post, dict) or post.get("code") or not post.get("title"):
            logger.warning(f"Post {post_id} unavailable (status {response.status_code})")
            return None

        meta = post.get("meta") if isinstance(post.get("meta"), dict) else {}
        return {
            "id": post.get("id"),
            "title": _raw_field(post, "title"),
            "content": _raw_field(post, "content"),
            "excerpt": _raw_field(post, "excerpt"),
            "slug": post.get("slug"),
            "featured_media_id": post.get("featured_media"),
            "featured_media_url": _featured_image(post) or "",
            "categories": post.get("categories") or [],
            "tags": post.get("tags") or [],
            "status": post.get("status"),
            "meta": {
                "rank_math_title": meta.get("rank_math_title") or "",
                "rank_math_description": meta.get("rank_math_description") or "",
                "rank_math_focus_keyword": meta.get("rank_math_focus_keyword") or "",
            },
        }

    async def create_post(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post_action("/rejimde/v1/blog/create", data)

    async def update_post(self, post_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        # the backend reuses the create controller for updates
        return await self.post_action("/rejimde/v1/blog/create", {**data, "id": post_id})

    async def delete_post(self, post_id: int) -> Dict[str, Any]:
        try:
            response = await self.request("DELETE", f"/wp/v2/posts/{post_id}")
        except ApiClientError:
            return {"success": False}
        return {"success": response.ok}

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    async def get_plan_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        try:
            response = await self.request("GET", f"/rejimde/v1/plans/{quote(slug)}", auth=False)
        except ApiClientError:
            return None
        return _success_payload(response)

    async def get_plan_by_id(self, plan_id: int) -> Optional[Dict[str, Any]]:
        """Load a plan in edit context, with ``plan_data`` decoded."""
        try:
            response = await self.request(
                "GET", f"/wp/v2/rejimde_plan/{plan_id}", params={"context": "edit", "_embed": 1}
            )
        except ApiClientError as e:
            logger.error(f"Failed to load plan {plan_id}: {e}")
            return None

        post = response.data
        if not response.ok or not isinstance(post, dict) or post.get("id") is None:
            return None

        meta = post.get("meta") if isinstance(post.get("meta"), dict) else {}
        plan_data = meta.get("plan_data") or []
        if isinstance(plan_data, str):
            plan_data = _safe_parse(plan_data, [])

        return {
            "id": post.get("id"),
            "title": _raw_field(post, "title"),
            "content": _raw_field(post, "content"),
            "status": post.get("status"),
            "plan_data": plan_data,
            "meta": {
                "difficulty": meta.get("difficulty"),
                "duration": meta.get("duration"),
                "calories": meta.get("calories"),
            },
            "featured_media_id": post.get("featured_media"),
            "featured_media_url": _featured_image(post) or "",
        }

    async def create_plan(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post_action("/rejimde/v1/plans/create", data)

    async def update_plan(self, plan_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post_action(f"/rejimde/v1/plans/update/{plan_id}", data)

    async def get_my_private_plans(self) -> List[Dict[str, Any]]:
        return await self.fetch_list("/rejimde/v1/me/private-plans", auth=True)

    async def update_my_plan_progress(
        self, plan_id: int, completed_items: List[str]
    ) -> Dict[str, Any]:
        return await self.post_action(
            f"/rejimde/v1/me/private-plans/{plan_id}/progress",
            {"completed_items": completed_items},
            failure_message="İlerleme kaydedilemedi.",
        )

    # ------------------------------------------------------------------
    # Gamification
    # ------------------------------------------------------------------

    async def earn_points(self, action: str, ref_id: Optional[Any] = None) -> Dict[str, Any]:
        return await self.post_action(
            "/rejimde/v1/gamification/earn",
            {"action": action, "ref_id": ref_id},
            failure_message="Puan kazanılamadı.",
        )

    async def get_gamification_stats(self) -> Optional[Dict[str, Any]]:
        try:
            response = await self.request("GET", "/rejimde/v1/gamification/me")
        except ApiClientError:
            return None
        if not response.ok or not isinstance(response.data, dict):
            return None
        return response.data.get("data")

    async def get_all_badges(self) -> List[Dict[str, Any]]:
        return await self.fetch_list("/rejimde/v1/gamification/badges")

    async def get_user_history(self) -> List[Dict[str, Any]]:
        return await self.fetch_list("/rejimde/v1/gamification/history", auth=True)

    async def get_user_streak(self) -> Optional[Dict[str, Any]]:
        try:
            response = await self.request("GET", "/rejimde/v1/gamification/streak")
        except ApiClientError:
            return None
        return _success_payload(response) if response.ok else None

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def get_progress(self, content_type: str, content_id: int) -> Optional[ProgressRecord]:
        """
        Load the progress record for a content item.

        Returns:
            ProgressRecord, or None when the request fails
        """
        try:
            response = await self.request(
                "GET", f"/rejimde/v1/progress/{content_type}/{content_id}"
            )
        except ApiClientError:
            return None
        if not response.ok:
            return None

        body = response.data
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        return ProgressRecord(**body) if isinstance(body, dict) else ProgressRecord()

    async def start_progress(self, content_type: str, content_id: int) -> Dict[str, Any]:
        return await self.post_action(
            f"/rejimde/v1/progress/{content_type}/{content_id}/start"
        )

    async def update_progress(
        self, content_type: str, content_id: int, completed_items: List[str]
    ) -> Dict[str, Any]:
        return await self.post_action(
            f"/rejimde/v1/progress/{content_type}/{content_id}",
            {"completed_items": completed_items},
            failure_message="İlerleme kaydedilemedi.",
        )

    async def claim_reward(self, content_type: str, content_id: int) -> Dict[str, Any]:
        return await self.post_action(
            f"/rejimde/v1/progress/{content_type}/{content_id}/claim"
        )


def _safe_parse(value: Any, fallback: Any = None) -> Any:
    """Decode a JSON string meta field; already-decoded values pass through."""
    fallback = {} if fallback is None else fallback
    if isinstance(value, str):
        if not value.strip():
            return fallback
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return fallback
    return value or fallback


def _featured_image(post: Dict[str, Any]) -> Optional[str]:
    media = (post.get("_embedded") or {}).get("wp:featuredmedia") or []
    return media[0].get("source_url") if media and isinstance(media[0], dict) else None


def _raw_field(post: Dict[str, Any], key: str) -> str:
    """``raw`` text of an edit-context field, else ``rendered``."""
    field = post.get(key)
    if not isinstance(field, dict):
        return field or ""
    return field.get("raw") or field.get("rendered") or ""


def _embedded_author(post: Dict[str, Any]) -> Optional[str]:
    authors = (post.get("_embedded") or {}).get("author") or []
    return authors[0].get("name") if authors and isinstance(authors[0], dict) else None
