import pytest
import requests

from rejimde.services.api import (
    SERVER_ERROR,
    ApiClient,
    ApiClientError,
    normalize_list,
)
from tests.conftest import BASE_URL


ITEMS = [{"id": 1}, {"id": 2}]


@pytest.mark.parametrize("payload", [
    {"status": "success", "data": ITEMS},
    ITEMS,
    {"data": ITEMS},
])
def test_normalize_list_accepts_all_envelopes(payload):
    assert normalize_list(payload) == ITEMS


@pytest.mark.parametrize("payload", [None, "oops", {"data": {"id": 1}}, {"status": "error"}, 42])
def test_normalize_list_rejects_other_shapes(payload):
    assert normalize_list(payload) == []


@pytest.mark.asyncio
async def test_bearer_header_attached_when_token_present(client, http):
    http.add("GET", "/rejimde/v1/gamification/me", body={"data": {"score": 10}})

    stats = await client.get_gamification_stats()

    assert stats == {"score": 10}
    assert http.calls[0]["headers"]["Authorization"] == "Bearer test-token"
    assert http.calls[0]["url"] == f"{BASE_URL}/rejimde/v1/gamification/me"


@pytest.mark.asyncio
async def test_no_auth_header_without_token(anon_client, http):
    http.add("GET", "/rejimde/v1/gamification/me", status=401, body={"message": "no"})

    assert await anon_client.get_gamification_stats() is None
    assert "Authorization" not in http.calls[0]["headers"]


@pytest.mark.asyncio
async def test_token_read_fresh_on_every_request(client, http, storage):
    http.add("GET", "/rejimde/v1/gamification/history", body=[])

    await client.get_user_history()
    storage.set("jwt_token", "rotated")
    await client.get_user_history()

    assert http.calls[0]["headers"]["Authorization"] == "Bearer test-token"
    assert http.calls[1]["headers"]["Authorization"] == "Bearer rotated"


@pytest.mark.asyncio
async def test_request_raises_on_connection_error(client, http):
    http.add("GET", "/rejimde/v1/thing", exc=requests.ConnectionError("down"))

    with pytest.raises(ApiClientError):
        await client.request("GET", "/rejimde/v1/thing")


@pytest.mark.asyncio
async def test_request_raises_on_invalid_json(client, http):
    http.add("GET", "/rejimde/v1/thing", text="<html>fatal error</html>")

    with pytest.raises(ApiClientError):
        await client.request("GET", "/rejimde/v1/thing")


@pytest.mark.asyncio
async def test_non_2xx_is_soft_failure(client, http):
    http.add("GET", "/rejimde/v1/thing", status=500, body={"message": "boom"})

    response = await client.request("GET", "/rejimde/v1/thing")

    assert not response.ok
    assert response.message == "boom"


@pytest.mark.asyncio
async def test_list_accessors_swallow_network_errors(client, http):
    http.add("GET", "/rejimde/v1/me/private-plans", exc=requests.Timeout("slow"))

    assert await client.get_my_private_plans() == []


@pytest.mark.asyncio
async def test_post_action_converts_network_error(client, http):
    http.add("POST", "/rejimde/v1/gamification/earn", exc=requests.ConnectionError("down"))

    result = await client.earn_points("daily_login")

    assert result == {"success": False, "message": SERVER_ERROR}


@pytest.mark.asyncio
async def test_login_stores_session_fields(anon_client, http, anon_storage):
    http.add("POST", "/jwt-auth/v1/token", body={
        "token": "jwt-123",
        "user_email": "ayse@example.com",
        "user_display_name": "Ayşe",
        "user_id": 5,
        "user_nicename": "ayse",
        "roles": ["rejimde_pro", "subscriber"],
    })

    result = await anon_client.login_user("ayse", "secret")

    assert result["success"] is True
    context = anon_storage.load()
    assert context.token == "jwt-123"
    assert context.user_role == "rejimde_pro"
    assert context.user_id == 5
    assert context.user_slug == "ayse"
    assert context.user_avatar.endswith("seed=ayse")


@pytest.mark.asyncio
async def test_login_failure_returns_message(anon_client, http, anon_storage):
    http.add("POST", "/jwt-auth/v1/token", status=403, body={"message": "Hatalı şifre"})

    result = await anon_client.login_user("ayse", "wrong")

    assert result == {"success": False, "message": "Hatalı şifre"}
    assert anon_storage.load().token is None


@pytest.mark.asyncio
async def test_register_requires_non_empty_body(anon_client, http):
    http.add("POST", "/rejimde/v1/auth/register", text="")

    result = await anon_client.register_user({"username": "x", "email": "x@y.z", "password": "p"})

    assert result["success"] is False
    assert "boş" in result["message"]


@pytest.mark.asyncio
async def test_register_logs_in_when_token_returned(anon_client, http, anon_storage):
    http.add("POST", "/rejimde/v1/auth/register", body={
        "status": "success",
        "data": {"token": "new-jwt", "user_id": 9, "roles": ["rejimde_user"]},
    })

    result = await anon_client.register_user({"username": "x", "email": "x@y.z", "password": "p", "gender": "male"})

    assert result["success"] is True
    assert anon_storage.load().token == "new-jwt"
    assert http.calls[0]["json"]["meta"]["gender"] == "male"
    assert http.calls[0]["json"]["role"] == "rejimde_user"


def test_logout_clears_storage(client, storage):
    client.logout()
    assert storage.load().is_authenticated is False


@pytest.mark.asyncio
async def test_get_me_avatar_fallbacks(client, http):
    http.add("GET", "/wp/v2/users/me", body={"id": 7, "name": "Ayşe", "avatar_urls": {"96": "https://x/96.png"}})
    profile = await client.get_me()
    assert profile["avatar_url"] == "https://x/96.png"
    assert profile["goals"] == {}


@pytest.mark.asyncio
async def test_get_me_gender_default_avatar(client, http):
    http.add("GET", "/wp/v2/users/me", body={"id": 7, "gender": "male", "goals": '{"target": "kilo"}'})
    profile = await client.get_me()
    assert "seed=Felix" in profile["avatar_url"]
    assert profile["goals"] == {"target": "kilo"}


@pytest.mark.asyncio
async def test_update_user_stores_new_name(client, http, storage):
    http.add("POST", "/wp/v2/users/me", body={"id": 7})

    result = await client.update_user({"name": "Ayşe Yılmaz", "avatar_url": "https://x/a.png"})

    assert result["success"] is True
    assert storage.load().user_name == "Ayşe Yılmaz"
    assert storage.load().user_avatar == "https://x/a.png"


@pytest.mark.asyncio
async def test_upload_media_sends_multipart(client, http):
    http.add("POST", "/wp/v2/media", body={"id": 33, "source_url": "https://x/cert.pdf"})

    result = await client.upload_media("cert.pdf", b"%PDF", "application/pdf")

    assert result == {"success": True, "id": 33, "url": "https://x/cert.pdf"}
    call = http.calls[0]
    assert call["files"]["file"][0] == "cert.pdf"
    assert "Content-Type" not in call["headers"]


@pytest.mark.asyncio
async def test_get_experts_filters_by_type(client, http):
    http.add("GET", "/rejimde/v1/professionals", body={"status": "success", "data": [
        {"id": 1, "name": "A", "type": "dietitian"},
        {"id": 2, "name": "B", "type": "pt"},
        {"name": "no id"},
    ]})

    experts = await client.get_experts("pt")

    assert [e.id for e in experts] == [2]


@pytest.mark.asyncio
async def test_get_experts_accepts_numeric_rating_and_skips_bad_items(client, http):
    http.add("GET", "/rejimde/v1/professionals", body=[
        {"id": 1, "name": "A", "rating": 4.8, "is_verified": "1", "is_online": 0},
        {"id": "not-a-number", "name": "B"},
    ])

    experts = await client.get_experts()

    assert [e.id for e in experts] == [1]
    assert experts[0].rating == "4.8"
    assert experts[0].is_verified is True
    assert experts[0].is_online is False


@pytest.mark.asyncio
async def test_get_expert_by_slug_unwraps_envelope(client, http):
    http.add("GET", "/rejimde/v1/professionals/dr-ayse", body={
        "status": "success",
        "data": {"id": 4, "name": "Dr. Ayşe", "slug": "dr-ayse", "is_claimed": "1", "goal_tags": '["kilo"]'},
    })

    expert = await client.get_expert_by_slug("dr-ayse")

    assert expert.is_claimed is True
    assert expert.goal_tags == ["kilo"]


@pytest.mark.asyncio
async def test_get_expert_by_slug_missing(client, http):
    http.add("GET", "/rejimde/v1/professionals/nobody", status=404, body={"message": "yok"})
    assert await client.get_expert_by_slug("nobody") is None


@pytest.mark.asyncio
async def test_get_post_by_slug_read_time(client, http):
    words = " ".join(["kelime"] * 450)
    http.add("GET", "/wp/v2/posts", body=[{
        "id": 3,
        "slug": "su-icmek",
        "title": {"rendered": "Su İçmek"},
        "content": {"rendered": f"<p>{words}</p>"},
        "excerpt": {"rendered": "<p>Özet</p>"},
        "_embedded": {"author": [{"name": "Editör Ali"}]},
    }])

    post = await client.get_post_by_slug("su-icmek")

    assert post["read_time"] == "3 dk"
    assert post["excerpt"] == "Özet"
    assert post["author_name"] == "Editör Ali"
    assert post["image"] == "https://placehold.co/800x400"


@pytest.mark.asyncio
async def test_get_plan_by_slug_unwraps_data(client, http):
    http.add("GET", "/rejimde/v1/plans/detoks", body={"status": "success", "data": {"id": 12}})
    assert await client.get_plan_by_slug("detoks") == {"id": 12}


@pytest.mark.asyncio
async def test_get_post_by_id_prefers_raw_fields(client, http):
    http.add("GET", "/wp/v2/posts/3", body={
        "id": 3,
        "slug": "su-icmek",
        "title": {"raw": "Su İçmek", "rendered": "Su &#304;çmek"},
        "content": {"raw": "<!-- wp:paragraph -->Metin", "rendered": "<p>Metin</p>"},
        "excerpt": {"rendered": "<p>Özet</p>"},
        "featured_media": 9,
        "_embedded": {"wp:featuredmedia": [{"source_url": "https://cdn/su.jpg"}]},
        "categories": [2],
        "status": "draft",
        "meta": {"rank_math_title": "SEO"},
    })

    post = await client.get_post_by_id(3)

    assert post["title"] == "Su İçmek"
    assert post["content"] == "<!-- wp:paragraph -->Metin"
    assert post["excerpt"] == "<p>Özet</p>"
    assert post["featured_media_url"] == "https://cdn/su.jpg"
    assert post["tags"] == []
    assert post["meta"]["rank_math_title"] == "SEO"
    assert post["meta"]["rank_math_focus_keyword"] == ""
    call = http.calls[0]
    assert call["params"] == {"context": "edit", "_embed": 1}
    assert call["headers"]["Authorization"] == "Bearer test-token"


@pytest.mark.asyncio
async def test_get_post_by_id_forbidden(client, http):
    http.add("GET", "/wp/v2/posts/3", status=401,
             body={"code": "rest_forbidden_context", "message": "Yetkiniz yok"})
    assert await client.get_post_by_id(3) is None


@pytest.mark.asyncio
async def test_get_plan_by_id_decodes_plan_data(client, http):
    http.add("GET", "/wp/v2/rejimde_plan/12", body={
        "id": 12,
        "title": {"raw": "Detoks"},
        "content": {"raw": "Açıklama"},
        "status": "publish",
        "meta": {"plan_data": '[{"day": 1, "meals": []}]', "difficulty": "easy"},
    })

    plan = await client.get_plan_by_id(12)

    assert plan["title"] == "Detoks"
    assert plan["plan_data"] == [{"day": 1, "meals": []}]
    assert plan["meta"] == {"difficulty": "easy", "duration": None, "calories": None}
    assert plan["featured_media_url"] == ""


@pytest.mark.asyncio
async def test_get_plan_by_id_network_error(client, http):
    http.add("GET", "/wp/v2/rejimde_plan/12", exc=requests.ConnectionError("down"))
    assert await client.get_plan_by_id(12) is None


@pytest.mark.asyncio
async def test_get_progress_decodes_items(client, http):
    http.add("GET", "/rejimde/v1/progress/diet/5", body={
        "status": "success",
        "data": {"completed_items": '["a", "b"]', "is_started": 1, "reward_claimed": "0"},
    })

    record = await client.get_progress("diet", 5)

    assert record.completed_items == ["a", "b"]
    assert record.is_started is True
    assert record.reward_claimed is False


@pytest.mark.asyncio
async def test_ping(http):
    http.add("GET", "/", status=200, body={"name": "Rejimde"})
    assert await ApiClient(base_url=BASE_URL, http=http).ping() is True


@pytest.mark.asyncio
async def test_ping_down(http):
    http.add("GET", "/", exc=requests.ConnectionError("refused"))
    assert await ApiClient(base_url=BASE_URL, http=http).ping() is False
