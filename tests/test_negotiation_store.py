import asyncio
import json

import httpx
import pytest

from constant.enum import AgentStatus, NegotiationStyle
from core.auth_client import AuthApiClient
from core.exceptions import NegotiationStoreError
from integration.negotiation_store import NegotiationStore

NEGOTIATION_RECORD = {
    "_id": "neg_1",
    "_creationTime": 1700000000000,
    "userId": "user_1",
    "status": "pending",
    "currentPrice": "950.00 EUR",
    "initialRequest": {
        "origin": "Berlin",
        "destination": "Munich",
        "price": "800",
        "distance": "500 km",
        "offerContactEmail": "dispatch@carrier.example",
    },
    "messages": [
        {"sender": "carrier", "content": "ok 950", "timestamp": 1700000100000, "emailMessageId": "<m1@mail>"},
    ],
    "counterOffers": [],
    "isAgentActive": True,
    "agentTargetPricePerKm": 2.0,
    "agentReplyCount": 1,
}


def make_store(handler):
    client = AuthApiClient("http://store.test/", "m2m-token", transport=httpx.MockTransport(handler))
    return NegotiationStore(client=client)


def test_get_negotiation_parses_record():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"data": NEGOTIATION_RECORD})

    negotiation = asyncio.run(make_store(handler).get_negotiation("neg_1"))

    assert seen == {"path": "/negotiations/neg_1", "auth": "Bearer m2m-token"}
    assert negotiation.id == "neg_1"
    assert negotiation.agent_target_price_per_km == 2.0
    assert negotiation.messages[0].sender == "carrier"


def test_missing_negotiation_and_configuration_are_none():
    store = make_store(lambda request: httpx.Response(200, json={"data": None}))

    assert asyncio.run(store.get_negotiation("neg_404")) is None
    assert asyncio.run(store.get_agent_configuration("neg_404")) is None


def test_agent_configuration():
    record = {"style": "aggressive", "maxAutoReplies": 4, "notifyOnRefusal": False}
    store = make_store(lambda request: httpx.Response(200, json={"data": record}))

    policy = asyncio.run(store.get_agent_configuration("neg_1"))

    assert policy.style == NegotiationStyle.AGGRESSIVE
    assert policy.max_auto_replies == 4
    assert policy.notify_on_refusal is False


@pytest.mark.parametrize("response", [
    httpx.Response(404, json={"message": "not found"}),
    httpx.Response(502, text="<html>bad gateway</html>"),
])
def test_responses_without_data_raise(response):
    store = make_store(lambda request: response)

    with pytest.raises(NegotiationStoreError):
        asyncio.run(store.get_negotiation("neg_1"))


def test_update_agent_status_payload():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": True})

    asyncio.run(make_store(handler).update_agent_status("neg_1", AgentStatus.NEEDS_REVIEW, "Max replies reached."))

    assert seen == {
        "method": "PATCH",
        "path": "/negotiations/neg_1/agent-status",
        "body": {"status": "needs_review", "reason": "Max replies reached."},
    }
