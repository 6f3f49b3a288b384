import pytest
import requests

from rejimde.models.schemas import ANONYMOUS_NAME, placeholder_avatar
from rejimde.services.comments import CommentService, normalize_comment


WP_COMMENT = {
    "id": 10,
    "author_name": "Mehmet Demir",
    "author_avatar_urls": {"96": "https://secure.gravatar.com/avatar/abc?s=96"},
    "content": {"rendered": "<p>Harika bir plan</p>"},
    "date": "2025-01-05T10:00:00",
    "likes": 4,
    "level": {"level": 3, "name": "Çırak"},
    "replies": [
        {"id": 11, "author": {"name": "Dr. Ayşe", "rank": 7, "is_expert": True}, "text": "Teşekkürler", "parent": 10},
    ],
}


def test_name_precedence():
    assert normalize_comment({"id": 1, "author": {"name": "A", "username": "b"}, "author_name": "c"}).author.name == "A"
    assert normalize_comment({"id": 1, "author": {"username": "b"}, "author_name": "c"}).author.name == "b"
    assert normalize_comment({"id": 1, "author_name": "c", "comment_author": "d"}).author.name == "c"
    assert normalize_comment({"id": 1, "comment_author": "d"}).author.name == "d"
    assert normalize_comment({"id": 1}).author.name == ANONYMOUS_NAME


def test_gravatar_replaced_with_seeded_placeholder():
    comment = normalize_comment(WP_COMMENT)
    assert comment.author.avatar == placeholder_avatar("Mehmet Demir")


def test_explicit_avatar_kept():
    comment = normalize_comment({"id": 1, "author": {"name": "A", "avatar": "https://cdn/a.png"}})
    assert comment.author.avatar == "https://cdn/a.png"


@pytest.mark.parametrize("raw,rank", [
    ({"author": {"rank": 5, "level": {"level": 2}}}, 5),
    ({"author": {"level": {"level": 2}}}, 2),
    ({"author": {"level": 4}}, 4),
    ({"author": {"level": "6"}}, 6),
    ({"level": {"level": 3}}, 3),
    ({"rank": 8}, 8),
    ({}, 1),
])
def test_rank_precedence(raw, rank):
    assert normalize_comment({"id": 1, **raw}).author.rank == rank


def test_content_likes_and_replies():
    comment = normalize_comment(WP_COMMENT)
    assert comment.content == "<p>Harika bir plan</p>"
    assert comment.likes_count == 4
    assert comment.author.rank == 3
    reply = comment.replies[0]
    assert reply.content == "Teşekkürler"
    assert reply.author.rank == 7
    assert reply.author.role == "rejimde_pro"
    assert reply.parent == 10


def test_review_fields_accept_camel_case():
    comment = normalize_comment({
        "id": 2,
        "rating": "5",
        "isAnonymous": True,
        "goalTag": "kilo_verme",
        "programType": "online",
        "processWeeks": "12",
        "successStory": "10 kilo verdim",
        "wouldRecommend": 1,
        "is_featured": "1",
        "likes_count": "3",
    })
    assert comment.rating == 5
    assert comment.is_anonymous is True
    assert comment.goal_tag == "kilo_verme"
    assert comment.process_weeks == 12
    assert comment.would_recommend is True
    assert comment.is_featured is True
    assert comment.likes_count == 3


def test_normalization_is_idempotent():
    once = normalize_comment(WP_COMMENT)
    twice = normalize_comment(once.model_dump())
    assert twice == once


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    [WP_COMMENT],
    {"comments": [WP_COMMENT], "stats": {"average": 4.5, "total": 1}},
    {"data": [WP_COMMENT]},
    {"status": "success", "data": {"comments": [WP_COMMENT]}},
])
async def test_fetch_comments_envelopes(client, http, body):
    http.add("GET", "/rejimde/v1/comments", body=body)

    thread = await CommentService(client).fetch_comments(10, "blog")

    assert [c.id for c in thread.comments] == [10]
    assert http.calls[0]["params"] == {"post": 10, "context": "blog"}


@pytest.mark.asyncio
async def test_fetch_comments_stats(client, http):
    http.add("GET", "/rejimde/v1/comments", body={
        "comments": [],
        "stats": {
            "average": "4.6",
            "total": 12,
            "distribution": {"5": {"count": 8, "percent": 67}},
            "verified_client_count": 5,
            "recommend_rate": 92,
        },
    })

    thread = await CommentService(client).get_reviews(4)

    assert thread.stats.average == 4.6
    assert thread.stats.distribution[5]["count"] == 8
    assert thread.stats.success_rate == 92
    assert http.calls[0]["params"]["context"] == "expert"


@pytest.mark.asyncio
async def test_fetch_comments_failure_is_empty(client, http):
    http.add("GET", "/rejimde/v1/comments", exc=requests.ConnectionError("down"))
    thread = await CommentService(client).fetch_comments(1, "blog")
    assert thread.comments == []
    assert thread.stats is None


@pytest.mark.asyncio
async def test_post_review_sends_camel_case_fields(client, http):
    http.add("POST", "/rejimde/v1/comments", body={"success": True, "message": "Yorumunuz onaya gönderildi."})

    result = await CommentService(client).post_comment(
        4, "Çok memnun kaldım", "expert", rating=5,
        review={"is_anonymous": True, "goal_tag": "kilo_verme", "process_weeks": 8},
    )

    assert result["success"] is True
    assert result["message"] == "Yorumunuz onaya gönderildi."
    payload = http.calls[0]["json"]
    assert payload["isAnonymous"] is True
    assert payload["goalTag"] == "kilo_verme"
    assert payload["processWeeks"] == 8
    assert payload["rating"] == 5
    assert "parent" not in payload


@pytest.mark.asyncio
async def test_post_comment_requires_login_and_content(anon_client, client, http):
    assert (await CommentService(anon_client).post_comment(1, "x", "blog"))["success"] is False
    assert (await CommentService(client).post_comment(1, "   ", "blog"))["success"] is False
    assert http.calls == []


@pytest.mark.asyncio
async def test_toggle_like(client, http):
    http.add("POST", "/rejimde/v1/comments/10/like", body={"liked": True, "likes_count": 5})
    assert await CommentService(client).toggle_like(10) == {"liked": True, "likes_count": 5}

    http.add("POST", "/rejimde/v1/comments/11/like", status=500, body={})
    assert await CommentService(client).toggle_like(11) is None
