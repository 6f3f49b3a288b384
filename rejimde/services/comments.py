"""
Comment Service

Loads, posts and likes comments and expert reviews. Backend comment
payloads come in several shapes (nested ``author`` objects, flat
snake_case fields, WordPress ``content.rendered``); ``normalize_comment``
maps all of them onto CommentData.
"""

import logging
from typing import Any, Dict, List, Optional

from rejimde.models.schemas import (
    ANONYMOUS_NAME,
    CommentAuthor,
    CommentData,
    CommentThread,
    ReviewStats,
    parse_bool,
    placeholder_avatar,
)
from rejimde.services.api import ApiClient, ApiClientError

logger = logging.getLogger(__name__)

COMMENTS_ENDPOINT = "/rejimde/v1/comments"


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _is_gravatar(url: str) -> bool:
    return "gravatar" in url


def resolve_author_name(raw: Dict[str, Any]) -> str:
    author = raw.get("author") if isinstance(raw.get("author"), dict) else {}
    name = _first(
        author.get("name"),
        author.get("username"),
        raw.get("author_name"),
        raw.get("user") if isinstance(raw.get("user"), str) else None,
        raw.get("comment_author"),
    )
    return name or ANONYMOUS_NAME


def resolve_avatar(raw: Dict[str, Any], name: str) -> str:
    """First non-Gravatar avatar candidate, else a placeholder seeded by name."""
    author = raw.get("author") if isinstance(raw.get("author"), dict) else {}
    avatar_urls = raw.get("author_avatar_urls") if isinstance(raw.get("author_avatar_urls"), dict) else {}
    for candidate in (
        author.get("avatar"),
        avatar_urls.get("96"),
        raw.get("author_avatar"),
        raw.get("avatar"),
    ):
        if isinstance(candidate, str) and candidate and not _is_gravatar(candidate):
            return candidate
    return placeholder_avatar(name)


def _rank_from(source: Dict[str, Any]) -> Optional[int]:
    rank = _as_int(source.get("rank"))
    if rank is not None:
        return rank
    level = source.get("level")
    if isinstance(level, dict):
        rank = _as_int(level.get("level"))
        if rank is not None:
            return rank
    return _as_int(level)


def resolve_rank(raw: Dict[str, Any]) -> int:
    """
    Author rank.

    ``rank`` is canonical; the nested ``level.level`` object and the legacy
    numeric ``level`` are read when it is missing, on the author object
    first and then on the flat payload.
    """
    author = raw.get("author") if isinstance(raw.get("author"), dict) else {}
    rank = _rank_from(author)
    if rank is None:
        rank = _rank_from(raw)
    return rank if rank is not None else 1


def resolve_content(raw: Dict[str, Any]) -> str:
    content = raw.get("content")
    if isinstance(content, dict):
        content = content.get("rendered")
    return _first(content, raw.get("text")) or ""


def normalize_comment(raw: Dict[str, Any]) -> CommentData:
    """
    Map a backend comment payload onto CommentData.

    Applying it to an already normalized comment (``model_dump()``) yields
    an equal object. Replies are normalized recursively.
    """
    author = raw.get("author") if isinstance(raw.get("author"), dict) else {}
    name = resolve_author_name(raw)

    is_expert = parse_bool(_first(author.get("is_expert"), raw.get("isExpert"), raw.get("is_expert")))
    role = _first(author.get("role"), raw.get("role")) or ("rejimde_pro" if is_expert else "rejimde_user")

    likes = raw.get("likes")
    if isinstance(likes, bool) or not isinstance(likes, int):
        likes = _as_int(raw.get("likes_count")) or 0

    replies = raw.get("replies")
    would_recommend = _first(raw.get("would_recommend"), raw.get("wouldRecommend"))

    return CommentData(
        id=_as_int(raw.get("id")) or 0,
        author=CommentAuthor(
            name=name,
            slug=_first(author.get("slug"), raw.get("author_slug")) or "#",
            avatar=resolve_avatar(raw, name),
            rank=resolve_rank(raw),
            role=role,
            is_expert=is_expert,
            is_verified=parse_bool(_first(author.get("is_verified"), raw.get("is_verified"), raw.get("verified_client"))),
            score=_as_int(_first(author.get("score"), raw.get("score"))) or 0,
        ),
        content=resolve_content(raw),
        date=raw.get("date"),
        time_ago=_first(raw.get("human_date"), raw.get("timeAgo"), raw.get("time_ago")) or "Az önce",
        rating=_as_int(raw.get("rating")),
        parent=_as_int(raw.get("parent")) or 0,
        likes_count=likes,
        is_liked=parse_bool(raw.get("is_liked")),
        replies=[normalize_comment(reply) for reply in replies if isinstance(reply, dict)]
        if isinstance(replies, list)
        else [],
        is_anonymous=parse_bool(_first(raw.get("is_anonymous"), raw.get("isAnonymous"))),
        goal_tag=_first(raw.get("goal_tag"), raw.get("goalTag")),
        program_type=_first(raw.get("program_type"), raw.get("programType")),
        process_weeks=_as_int(_first(raw.get("process_weeks"), raw.get("processWeeks"))),
        success_story=_first(raw.get("success_story"), raw.get("successStory")),
        would_recommend=parse_bool(would_recommend) if would_recommend is not None else None,
        is_featured=parse_bool(_first(raw.get("is_featured"), raw.get("isFeatured"))),
    )


def normalize_comments(items: List[Any]) -> List[CommentData]:
    return [normalize_comment(item) for item in items if isinstance(item, dict)]


def parse_review_stats(raw: Any) -> Optional[ReviewStats]:
    if not isinstance(raw, dict):
        return None

    distribution = {}
    for star, bucket in (raw.get("distribution") or {}).items():
        key = _as_int(star)
        if key is None or not isinstance(bucket, dict):
            continue
        distribution[key] = {
            "count": float(bucket.get("count") or 0),
            "percent": float(bucket.get("percent") or bucket.get("percentage") or 0),
        }

    return ReviewStats(
        average=float(raw.get("average") or 0),
        total=_as_int(raw.get("total")) or 0,
        distribution=distribution,
        verified_client_count=_as_int(raw.get("verified_client_count")) or 0,
        average_process_weeks=float(raw.get("average_process_weeks") or 0),
        success_rate=float(_first(raw.get("recommend_rate"), raw.get("success_rate")) or 0),
    )


def _unwrap_thread(body: Any) -> Dict[str, Any]:
    """Accept [...], {comments, stats}, {data: [...]} and {status, data: {...}}."""
    if isinstance(body, list):
        return {"comments": body, "stats": None}
    if not isinstance(body, dict):
        return {"comments": [], "stats": None}

    data = body.get("data")
    if isinstance(data, list):
        return {"comments": data, "stats": body.get("stats")}
    if isinstance(data, dict):
        return _unwrap_thread(data)

    comments = body.get("comments")
    return {
        "comments": comments if isinstance(comments, list) else [],
        "stats": body.get("stats"),
    }


class CommentService:
    """Comment and review operations for blog posts, plans and experts."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def fetch_comments(self, post_id: int, context: str) -> CommentThread:
        """
        Load the comment thread of a post.

        Args:
            post_id: Post, plan or expert ID
            context: "blog", "diet", "exercise", "expert", ...

        Returns:
            CommentThread with normalized comments and stats when the
            backend provides them; empty on failure
        """
        try:
            response = await self.client.request(
                "GET",
                COMMENTS_ENDPOINT,
                params={"post": post_id, "context": context},
                auth=False,
            )
        except ApiClientError as e:
            logger.error(f"Comment fetch error: {e}")
            return CommentThread()

        if not response.ok:
            logger.error(f"Comment load failed with status {response.status_code}")
            return CommentThread()

        thread = _unwrap_thread(response.data)
        return CommentThread(
            comments=normalize_comments(thread["comments"]),
            stats=parse_review_stats(thread["stats"]),
        )

    async def post_comment(
        self,
        post_id: int,
        content: str,
        context: str,
        parent: int = 0,
        rating: Optional[int] = None,
        review: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Post a comment, reply or expert review.

        Args:
            review: Extra review fields (is_anonymous, goal_tag, program_type,
                    process_weeks, would_recommend, has_success_story,
                    success_story)
        """
        if not self.client.storage.load().is_authenticated:
            return {"success": False, "message": "Yorum yapmak için giriş yapmalısınız."}
        if not content or not content.strip():
            return {"success": False, "message": "Lütfen bir yorum yazın."}

        payload: Dict[str, Any] = {"post": post_id, "content": content, "context": context}
        if parent:
            payload["parent"] = parent
        if rating:
            payload["rating"] = rating
        for key, value in (review or {}).items():
            camel = key.split("_")[0] + "".join(part.title() for part in key.split("_")[1:])
            payload[camel] = value

        try:
            response = await self.client.request("POST", COMMENTS_ENDPOINT, json=payload)
        except ApiClientError:
            return {"success": False, "message": "Yorum gönderilirken bir hata oluştu."}

        body = response.data if isinstance(response.data, dict) else {}
        if not response.ok:
            return {"success": False, "message": body.get("message") or "Yorum gönderilemedi"}

        return {
            "success": body.get("success", True),
            "message": body.get("message") or "Yorumunuz alındı.",
            "data": body.get("data"),
        }

    async def toggle_like(self, comment_id: int) -> Optional[Dict[str, Any]]:
        try:
            response = await self.client.request("POST", f"{COMMENTS_ENDPOINT}/{comment_id}/like")
        except ApiClientError as e:
            logger.error(f"Like error: {e}")
            return None
        if not response.ok:
            return None
        return response.data if isinstance(response.data, dict) else {}

    async def get_reviews(self, expert_id: int) -> CommentThread:
        return await self.fetch_comments(expert_id, "expert")

