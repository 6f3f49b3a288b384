"""
Expert review helpers.

Pure functions over already normalized CommentData lists: display names,
client-side filtering, featured reviews, success stories and the stats
fallback used when the backend sends none.
"""

import re
from typing import Any, Dict, List, Optional

from rejimde.models.schemas import (
    ANONYMOUS_NAME,
    CommentData,
    ReviewFilters,
    ReviewFormData,
    ReviewStats,
    SuccessStory,
)

MAX_FEATURED = 3


def get_display_name(author_name: Optional[str], is_anonymous: bool) -> str:
    """
    Name shown on a review card.

    Anonymous reviews show the author's initials ("Ayşe Kaya" -> "A.K.").
    """
    if not author_name or not author_name.strip():
        return ANONYMOUS_NAME
    if not is_anonymous:
        return author_name

    parts = [part for part in re.split(r"\s+", author_name.strip()) if part]
    initials = ".".join(part[0] for part in parts).upper()
    return f"{initials}." if initials else "A.K."


def filter_reviews(comments: List[CommentData], filters: Optional[ReviewFilters] = None) -> List[CommentData]:
    """Apply the review filter bar to an in-memory list. Never refetches."""
    if filters is None:
        return list(comments)

    result = list(comments)
    if filters.rating_min > 0:
        result = [c for c in result if (c.rating or 0) >= filters.rating_min]
    if filters.verified_only:
        result = [c for c in result if c.author.is_verified]
    if filters.goal_tag:
        result = [c for c in result if c.goal_tag == filters.goal_tag]
    if filters.program_type:
        result = [c for c in result if c.program_type == filters.program_type]
    if filters.with_story:
        result = [c for c in result if c.success_story and c.success_story.strip()]
    return result


def featured_reviews(comments: List[CommentData], limit: int = MAX_FEATURED) -> List[CommentData]:
    return [c for c in comments if c.is_featured][:limit]


def success_stories(comments: List[CommentData]) -> List[SuccessStory]:
    stories = []
    for comment in comments:
        if comment.parent != 0 or not comment.success_story or not comment.success_story.strip():
            continue
        stories.append(SuccessStory(
            id=comment.id,
            author_name=get_display_name(comment.author.name, comment.is_anonymous),
            is_anonymous=comment.is_anonymous,
            goal_tag=comment.goal_tag,
            process_weeks=comment.process_weeks,
            story=comment.success_story.strip(),
            rating=comment.rating or 0,
            verified_client=comment.author.is_verified,
            created_at=comment.date,
        ))
    return stories


def compute_review_stats(comments: List[CommentData]) -> ReviewStats:
    """Stats computed from top-level rated reviews."""
    rated = [c for c in comments if c.parent == 0 and c.rating]
    total = len(rated)

    distribution: Dict[int, Dict[str, float]] = {}
    for star in range(5, 0, -1):
        count = sum(1 for c in rated if c.rating == star)
        distribution[star] = {
            "count": float(count),
            "percent": round(count / total * 100) if total else 0.0,
        }

    weeks = [c.process_weeks for c in rated if c.process_weeks]
    answered = [c for c in rated if c.would_recommend is not None]
    recommended = sum(1 for c in answered if c.would_recommend)

    return ReviewStats(
        average=round(sum(c.rating for c in rated) / total, 1) if total else 0,
        total=total,
        distribution=distribution,
        verified_client_count=sum(1 for c in rated if c.author.is_verified),
        average_process_weeks=round(sum(weeks) / len(weeks), 1) if weeks else 0,
        success_rate=round(recommended / len(answered) * 100) if answered else 0,
    )


def has_reviewed(comments: List[CommentData], user_slug: Optional[str], user_name: Optional[str]) -> bool:
    """Whether the user already left a top-level review."""
    for comment in comments:
        if comment.parent != 0:
            continue
        if user_slug and comment.author.slug == user_slug:
            return True
        if user_name and comment.author.name == user_name:
            return True
    return False


def apply_like_toggle(comments: List[CommentData], comment_id: int) -> List[CommentData]:
    """
    Optimistically flip the like state of a comment anywhere in the tree.

    Returns new objects; the input list is left untouched.
    """
    updated = []
    for comment in comments:
        if comment.id == comment_id:
            liked = not comment.is_liked
            updated.append(comment.model_copy(update={
                "is_liked": liked,
                "likes_count": max(comment.likes_count + (1 if liked else -1), 0),
            }))
        elif comment.replies:
            updated.append(comment.model_copy(update={
                "replies": apply_like_toggle(comment.replies, comment_id),
            }))
        else:
            updated.append(comment)
    return updated


def flatten_replies(comment: CommentData) -> List[CommentData]:
    """All replies below a comment as one list, depth first."""
    flat = []
    for reply in comment.replies:
        flat.append(reply.model_copy(update={"replies": []}))
        flat.extend(flatten_replies(reply))
    return flat


def validate_review_form(form: ReviewFormData) -> Optional[str]:
    """
    Check a review before submission.

    Returns:
        Error message, or None when the form can be sent
    """
    if form.rating < 1 or form.rating > 5:
        return "Lütfen bir puan verin."
    if not form.content.strip():
        return "Lütfen deneyiminizi yazın."
    if form.has_success_story and not (form.success_story or "").strip():
        return "Lütfen başarı hikayenizi yazın."
    if form.process_weeks is not None and form.process_weeks < 1:
        return "Süreç süresi en az 1 hafta olmalıdır."
    return None


def review_payload(form: ReviewFormData) -> Dict[str, Any]:
    """Review fields sent next to the comment body."""
    return {
        "is_anonymous": form.is_anonymous,
        "goal_tag": form.goal_tag,
        "program_type": form.program_type,
        "process_weeks": form.process_weeks,
        "would_recommend": form.would_recommend,
        "has_success_story": form.has_success_story,
        "success_story": form.success_story if form.has_success_story else None,
    }
