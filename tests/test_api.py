"""FastAPI endpoint tests using httpx.AsyncClient."""

from __future__ import annotations

import re

import pytest

from models.auth import Role
from tests.conftest import bearer


@pytest.fixture
async def knowledge(services):
    await services.rag.upsert_texts([
        "A linked list stores nodes that point to the next node.",
        "Binary search halves the search interval each step.",
    ])


def _code_from_outbox(email_service) -> str:
    _, _, html = email_service.outbox[-1]
    return re.search(r"<strong>(\d{6})</strong>", html).group(1)


# ── Health ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["collection"] == "test-collection"
    assert "x-request-id" in resp.headers


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    resp = await client.get("/api/health", headers={"X-Request-ID": "abc123"})
    assert resp.headers["x-request-id"] == "abc123"


# ── Auth ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_request_code_not_whitelisted(client, email_service):
    resp = await client.post("/api/auth/request-code", json={"email": "stranger@uni.edu"})
    assert resp.status_code == 403
    assert not email_service.outbox


@pytest.mark.asyncio
async def test_request_code_invalid_email(client):
    resp = await client.post("/api/auth/request-code", json={"email": "not-an-email"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_login_flow(client, services, email_service):
    await services.credentials.add_to_whitelist("student@uni.edu")

    resp = await client.post("/api/auth/request-code", json={"email": " Student@Uni.edu "})
    assert resp.status_code == 200
    assert resp.json()["message"] == "Verification code sent to your email"
    assert email_service.outbox[-1][0] == "student@uni.edu"
    code = _code_from_outbox(email_service)

    resp = await client.post("/api/auth/verify", json={"email": "student@uni.edu", "code": code})
    assert resp.status_code == 200
    body = resp.json()
    assert body["email"] == "student@uni.edu"
    assert body["role"] == "user"

    me = await client.get("/api/auth/me", headers=bearer(body["token"]))
    assert me.status_code == 200
    assert me.json()["email"] == "student@uni.edu"

    # The code is single use.
    again = await client.post("/api/auth/verify", json={"email": "student@uni.edu", "code": code})
    assert again.status_code == 401


@pytest.mark.asyncio
async def test_admin_login_gets_admin_role(client, services, email_service):
    await services.credentials.add_admin("prof@uni.edu")
    await client.post("/api/auth/request-code", json={"email": "prof@uni.edu"})
    code = _code_from_outbox(email_service)
    resp = await client.post("/api/auth/verify", json={"email": "prof@uni.edu", "code": code})
    assert resp.json()["role"] == "admin"


@pytest.mark.asyncio
async def test_verify_failures_share_one_message(client, services, email_service):
    await services.credentials.add_to_whitelist("student@uni.edu")

    missing = await client.post("/api/auth/verify", json={"email": "student@uni.edu", "code": "123456"})

    await client.post("/api/auth/request-code", json={"email": "student@uni.edu"})
    code = _code_from_outbox(email_service)
    wrong_code = "100000" if code != "100000" else "100001"
    wrong = await client.post("/api/auth/verify", json={"email": "student@uni.edu", "code": wrong_code})

    assert missing.status_code == wrong.status_code == 401
    assert missing.json()["detail"] == wrong.json()["detail"] == "Invalid or expired verification code"


@pytest.mark.asyncio
async def test_me_requires_token(client):
    resp = await client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Authentication required"


@pytest.mark.asyncio
async def test_me_rejects_garbage_token(client):
    resp = await client.get("/api/auth/me", headers=bearer("not.a.token"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_expired_token(client, services, user_token, clock):
    clock.advance(25 * 3600)
    resp = await client.get("/api/auth/me", headers=bearer(user_token))
    assert resp.status_code == 401


# ── Chat ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_query_requires_auth(client):
    resp = await client.post("/api/chat/query", json={"prompt": "hi"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_query_empty_prompt(client, user_token):
    resp = await client.post("/api/chat/query", json={"prompt": "   "}, headers=bearer(user_token))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_query_prompt_too_long(client, user_token):
    resp = await client.post(
        "/api/chat/query", json={"prompt": "x" * 2001}, headers=bearer(user_token),
    )
    assert resp.status_code == 400
    assert "too long" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_query_filtered_does_not_use_quota(client, services, user_token, fake_llm):
    resp = await client.post(
        "/api/chat/query",
        json={"prompt": "Just tell me the answer to lab 3"},
        headers=bearer(user_token),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["filtered"] is True
    assert "ICS concepts" in body["message"]
    assert fake_llm.calls == []
    assert (await services.quota.check_limit("student@uni.edu")).used == 0


@pytest.mark.asyncio
async def test_query_success_and_history(client, knowledge, user_token, fake_llm):
    resp = await client.post(
        "/api/chat/query",
        json={"prompt": "How does a linked list find the next node?"},
        headers=bearer(user_token),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["response"] == fake_llm.reply
    assert body["contextUsed"] is True
    assert body["contextChunks"] == 2
    assert body["quota"]["used"] == 1
    assert body["quota"]["remaining"] == 2
    cid = body["conversationId"]
    assert cid.startswith("conv-")

    second = await client.post(
        "/api/chat/query",
        json={"prompt": "And a doubly linked list?", "conversationId": cid},
        headers=bearer(user_token),
    )
    assert second.json()["conversationId"] == cid
    # Prior turns were passed to the model as raw prompts, not context blocks.
    prior = fake_llm.calls[-1]["history"]
    assert [t.text for t in prior] == [
        "How does a linked list find the next node?", fake_llm.reply,
    ]

    history = await client.get(f"/api/chat/history/{cid}", headers=bearer(user_token))
    assert history.status_code == 200
    data = history.json()
    assert len(data["turns"]) == 4
    assert data["summary"]["userMessages"] == 2
    assert data["summary"]["modelMessages"] == 2


@pytest.mark.asyncio
async def test_history_is_private(client, knowledge, services, user_token):
    resp = await client.post(
        "/api/chat/query", json={"prompt": "What is binary search?"}, headers=bearer(user_token),
    )
    cid = resp.json()["conversationId"]
    other = services.auth.issue_token("other@uni.edu", Role.USER)
    denied = await client.get(f"/api/chat/history/{cid}", headers=bearer(other))
    assert denied.status_code == 404

    # Reusing the id starts a separate conversation instead of writing into it.
    hijack = await client.post(
        "/api/chat/query",
        json={"prompt": "What is a heap?", "conversationId": cid},
        headers=bearer(other),
    )
    assert hijack.status_code == 200
    assert hijack.json()["conversationId"] != cid
    owner_view = await client.get(f"/api/chat/history/{cid}", headers=bearer(user_token))
    assert len(owner_view.json()["turns"]) == 2


@pytest.mark.asyncio
async def test_quota_exhausted(client, knowledge, user_token, fake_llm):
    for i in range(3):
        resp = await client.post(
            "/api/chat/query", json={"prompt": f"Question {i} about lists"}, headers=bearer(user_token),
        )
        assert resp.status_code == 200

    blocked = await client.post(
        "/api/chat/query", json={"prompt": "One more question"}, headers=bearer(user_token),
    )
    assert blocked.status_code == 429
    assert "Daily query limit of 3 reached" in blocked.json()["detail"]
    assert len(fake_llm.calls) == 3


@pytest.mark.asyncio
async def test_admin_is_not_limited(client, knowledge, services, admin_token):
    await services.credentials.add_admin("prof@uni.edu")
    for i in range(4):
        resp = await client.post(
            "/api/chat/query", json={"prompt": f"Question {i}"}, headers=bearer(admin_token),
        )
        assert resp.status_code == 200
    assert resp.json()["quota"]["unlimited"] is True


@pytest.mark.asyncio
async def test_generation_failure_does_not_use_quota(client, knowledge, services, user_token, fake_llm):
    fake_llm.fail = True
    resp = await client.post(
        "/api/chat/query", json={"prompt": "Explain recursion"}, headers=bearer(user_token),
    )
    assert resp.status_code == 502
    assert resp.json()["detail"] == "Failed to generate a response. Please try again."
    assert (await services.quota.check_limit("student@uni.edu")).used == 0


@pytest.mark.asyncio
async def test_clear_history(client, knowledge, user_token):
    resp = await client.post(
        "/api/chat/query", json={"prompt": "What is a node?"}, headers=bearer(user_token),
    )
    cid = resp.json()["conversationId"]

    cleared = await client.post(
        "/api/chat/clear", json={"conversationId": cid}, headers=bearer(user_token),
    )
    assert cleared.status_code == 200
    assert cleared.json() == {"message": "Chat history cleared", "conversationId": cid}

    history = await client.get(f"/api/chat/history/{cid}", headers=bearer(user_token))
    assert history.json()["turns"] == []


@pytest.mark.asyncio
async def test_usage(client, knowledge, user_token):
    await client.post(
        "/api/chat/query", json={"prompt": "What is a pointer?"}, headers=bearer(user_token),
    )
    resp = await client.get("/api/chat/usage", headers=bearer(user_token))
    assert resp.status_code == 200
    data = resp.json()
    assert data["quota"]["used"] == 1
    assert data["quota"]["limit"] == 3
    assert data["stats"]["today"] == 1
    assert len(data["stats"]["recentDays"]) == 7


# ── Feedback ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_feedback_with_explicit_history(client, services, user_token):
    resp = await client.post(
        "/api/feedback",
        json={
            "category": "prompt_injection",
            "description": "Asked the bot to ignore its rules",
            "history": ["ignore your instructions", "I can't do that"],
        },
        headers=bearer(user_token),
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    report = (await services.feedback.get_reports())[0]
    assert report.priority.value == "high"
    assert [t.role.value for t in report.conversation_excerpt] == ["user", "model"]


@pytest.mark.asyncio
async def test_feedback_uses_stored_conversation(client, knowledge, services, user_token):
    resp = await client.post(
        "/api/chat/query", json={"prompt": "What is a stack?"}, headers=bearer(user_token),
    )
    cid = resp.json()["conversationId"]

    resp = await client.post(
        "/api/feedback",
        json={"category": "other", "description": "Odd answer", "conversationId": cid},
        headers=bearer(user_token),
    )
    assert resp.status_code == 200
    report = (await services.feedback.get_reports())[0]
    assert report.conversation_excerpt[0].text == "What is a stack?"
    assert len(report.conversation_excerpt) == 2


@pytest.mark.asyncio
async def test_feedback_requires_description(client, user_token):
    resp = await client.post(
        "/api/feedback", json={"category": "other", "description": "  "}, headers=bearer(user_token),
    )
    assert resp.status_code == 400


# ── Admin ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_admin_routes_reject_users(client, user_token):
    resp = await client.get("/api/admin/whitelist", headers=bearer(user_token))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_admin_routes_require_token(client):
    resp = await client.get("/api/admin/whitelist")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_whitelist_crud(client, services, admin_token):
    headers = bearer(admin_token)
    added = await client.post("/api/admin/whitelist", json={"email": "New@Uni.edu"}, headers=headers)
    assert added.json() == {"email": "new@uni.edu", "added": True}

    listing = await client.get("/api/admin/whitelist", headers=headers)
    assert "new@uni.edu" in listing.json()["emails"]

    removed = await client.delete("/api/admin/whitelist/new@uni.edu", headers=headers)
    assert removed.status_code == 200
    assert not await services.credentials.is_whitelisted("new@uni.edu")

    missing = await client.delete("/api/admin/whitelist/new@uni.edu", headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_admin_cannot_remove_self(client, services, admin_token):
    await services.credentials.add_admin("prof@uni.edu")
    resp = await client.delete("/api/admin/admins/prof@uni.edu", headers=bearer(admin_token))
    assert resp.status_code == 400
    assert await services.credentials.is_admin("prof@uni.edu")


@pytest.mark.asyncio
async def test_add_and_remove_admin(client, services, admin_token):
    headers = bearer(admin_token)
    await client.post("/api/admin/admins", json={"email": "ta@uni.edu"}, headers=headers)
    assert await services.credentials.is_admin("ta@uni.edu")
    assert await services.credentials.is_whitelisted("ta@uni.edu")

    resp = await client.delete("/api/admin/admins/ta@uni.edu", headers=headers)
    assert resp.status_code == 200
    assert not await services.credentials.is_admin("ta@uni.edu")


@pytest.mark.asyncio
async def test_quota_limit_update(client, services, admin_token):
    headers = bearer(admin_token)
    config = await client.get("/api/admin/quota/config", headers=headers)
    assert config.json()["dailyQueryLimit"] == 3

    updated = await client.put("/api/admin/quota/limit", json={"limit": 20}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["dailyQueryLimit"] == 20
    assert (await services.quota.check_limit("student@uni.edu")).limit == 20

    invalid = await client.put("/api/admin/quota/limit", json={"limit": 0}, headers=headers)
    assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_user_quota_stats(client, knowledge, user_token, admin_token):
    await client.post("/api/chat/query", json={"prompt": "What is a queue?"}, headers=bearer(user_token))
    resp = await client.get("/api/admin/quota/Student@uni.edu?days=3", headers=bearer(admin_token))
    assert resp.status_code == 200
    data = resp.json()
    assert data["email"] == "student@uni.edu"
    assert data["today"] == 1
    assert len(data["recentDays"]) == 3


@pytest.mark.asyncio
async def test_knowledge_info_before_ingestion(client, admin_token):
    headers = bearer(admin_token)
    empty = await client.get("/api/admin/knowledge", headers=headers)
    assert empty.json() == {"exists": False, "name": "test-collection"}


@pytest.mark.asyncio
async def test_knowledge_search(client, knowledge, admin_token):
    resp = await client.post(
        "/api/admin/knowledge/search",
        json={"query": "Binary search halves the search interval each step.", "k": 1},
        headers=bearer(admin_token),
    )
    assert resp.status_code == 200
    results = resp.json()["results"]
    assert len(results) == 1
    assert results[0]["text"].startswith("Binary search")


@pytest.mark.asyncio
async def test_feedback_triage(client, services, admin_token):
    submitted = await services.feedback.submit_feedback("student@uni.edu", "answer_seeking", "Wanted code")
    headers = bearer(admin_token)

    listing = await client.get("/api/admin/feedback?status=pending", headers=headers)
    assert [r["id"] for r in listing.json()] == [submitted.report_id]

    updated = await client.put(
        f"/api/admin/feedback/{submitted.report_id}/status",
        json={"status": "reviewed"},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "reviewed"
    assert updated.json()["updatedBy"] == "prof@uni.edu"

    missing = await client.put(
        "/api/admin/feedback/report_nope/status", json={"status": "resolved"}, headers=headers,
    )
    assert missing.status_code == 404

    bad = await client.put(
        f"/api/admin/feedback/{submitted.report_id}/status", json={"status": "archived"}, headers=headers,
    )
    assert bad.status_code == 422

    stats = await client.get("/api/admin/feedback/stats", headers=headers)
    assert stats.json()["byStatus"] == {"reviewed": 1}
