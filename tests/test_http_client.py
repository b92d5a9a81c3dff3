"""Tests for the httpx transport adapter and payload parsing."""

from __future__ import annotations

import json

import httpx
import pytest

from nudge_ai.core.config import RemoteSettings
from nudge_ai.core.models import (
    GenerationRequest,
    MessageCategory,
    MessageImpact,
    MessageTone,
    TimeOfDay,
)
from nudge_ai.intelligence.payloads import (
    GenerateMessagesBody,
    parse_categories,
    parse_generated_messages,
)
from nudge_ai.transport import HttpGenerationClient, RemoteError, RemoteErrorKind, RemoteRequest


def _client(handler) -> HttpGenerationClient:
    settings = RemoteSettings(base_url="https://api.example.com", api_key="secret")
    return HttpGenerationClient(settings, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_send_posts_json_with_bearer_token() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "messages": []})

    async with _client(handler) as client:
        payload = await client.send(
            RemoteRequest("POST", "/api/messages/generate", {"category": "romantic"})
        )

    assert payload == {"success": True, "messages": []}
    assert seen["url"] == "https://api.example.com/api/messages/generate"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"category": "romantic"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (401, RemoteErrorKind.UNAUTHORIZED),
        (403, RemoteErrorKind.UNAUTHORIZED),
        (429, RemoteErrorKind.RATE_LIMITED),
        (503, RemoteErrorKind.SERVER_ERROR),
        (404, RemoteErrorKind.UNKNOWN),
    ],
)
async def test_status_codes_map_to_error_kinds(status: int, kind: RemoteErrorKind) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": "nope"})

    async with _client(handler) as client:
        with pytest.raises(RemoteError) as excinfo:
            await client.send(RemoteRequest("GET", "api/messages/categories"))

    assert excinfo.value.kind is kind
    assert excinfo.value.status_code == status
    assert "nope" in str(excinfo.value)


@pytest.mark.asyncio
async def test_transport_failures_are_classified() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    def stall(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async with _client(refuse) as client:
        with pytest.raises(RemoteError) as refused:
            await client.send(RemoteRequest("GET", "x"))
    async with _client(stall) as client:
        with pytest.raises(RemoteError) as stalled:
            await client.send(RemoteRequest("GET", "x"))

    assert refused.value.kind is RemoteErrorKind.CONNECTIVITY
    assert stalled.value.kind is RemoteErrorKind.TIMEOUT
    assert refused.value.retryable and stalled.value.connectivity_class


@pytest.mark.asyncio
async def test_invalid_json_is_a_decoding_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    async with _client(handler) as client:
        with pytest.raises(RemoteError) as excinfo:
            await client.send(RemoteRequest("GET", "x"))

    assert excinfo.value.kind is RemoteErrorKind.DECODING_ERROR
    assert not excinfo.value.retryable


def test_request_body_uses_camel_case_and_skips_empty_fields() -> None:
    request = GenerationRequest(
        category=MessageCategory.ROMANTIC,
        time_of_day=TimeOfDay.EVENING,
        partner_name="Sam",
        recent_context="long week",
    )
    body = GenerateMessagesBody.from_request(request).to_wire()
    assert body == {
        "category": "romantic",
        "timeOfDay": "evening",
        "recentContext": "long week",
        "partnerName": "Sam",
    }


def test_parse_generated_messages_is_lenient_about_labels() -> None:
    request = GenerationRequest(category=MessageCategory.SUPPORT, partner_name="Sam")
    payload = {
        "success": True,
        "messages": [
            {
                "id": "abc",
                "content": "  You've got this, Sam.  ",
                "category": "support",
                "tone": "Supportive",
                "estimatedImpact": "high",
                "personalityMatch": "caring",
            },
            {"content": "Thinking of you", "tone": "mysterious", "estimatedImpact": "huge"},
        ],
    }
    first, second = parse_generated_messages(payload, request)

    assert first.id == "abc"
    assert first.content == "You've got this, Sam."
    assert first.tone is MessageTone.SUPPORTIVE
    assert first.estimated_impact is MessageImpact.HIGH
    assert first.personality_match == "caring"
    assert first.context.partner_name == "Sam"
    assert second.category is MessageCategory.SUPPORT
    assert second.tone is MessageTone.WARM
    assert second.estimated_impact is MessageImpact.MEDIUM
    assert second.id != first.id


@pytest.mark.parametrize(
    ("payload", "kind"),
    [
        ({"success": True, "messages": [{"content": ""}]}, RemoteErrorKind.DECODING_ERROR),
        ({"success": True, "messages": []}, RemoteErrorKind.DECODING_ERROR),
        ({"messages": "nope"}, RemoteErrorKind.DECODING_ERROR),
        ({"success": False, "error": "quota"}, RemoteErrorKind.UNKNOWN),
    ],
)
def test_parse_generated_messages_rejects_bad_payloads(
    payload: dict[str, object], kind: RemoteErrorKind
) -> None:
    request = GenerationRequest(category=MessageCategory.SUPPORT)
    with pytest.raises(RemoteError) as excinfo:
        parse_generated_messages(payload, request)
    assert excinfo.value.kind is kind


def test_parse_categories() -> None:
    categories = parse_categories(
        {
            "success": True,
            "categories": [
                {"id": "romantic", "label": "Romantic", "description": "Spark"},
                {"id": "custom", "label": "Custom", "priority": 3},
            ],
        }
    )
    assert [info.key for info in categories] == ["romantic", "custom"]
    assert categories[0].category is MessageCategory.ROMANTIC
    assert categories[1].priority == 3
