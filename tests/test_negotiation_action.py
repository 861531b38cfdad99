"""Tests for persisting pipeline outcomes through the negotiation store."""

import asyncio

import pytest

from actions.negotiation import NegotiationAgentAction
from constant.enum import AgentStatus, NotificationType
from core.exceptions import NegotiationStoreError
from services.negotiation_pipeline import NegotiationPipeline


class RecordingStore:
    def __init__(self, negotiation=None, policy=None, fail_on=None):
        self.negotiation = negotiation
        self.policy = policy
        self.fail_on = fail_on
        self.writes = []
        self.reads = []

    def _record(self, name, *args):
        if name == self.fail_on:
            raise NegotiationStoreError({"error": "write rejected"})
        self.writes.append((name, *args))

    async def get_negotiation(self, negotiation_id):
        self.reads.append("get_negotiation")
        return self.negotiation

    async def get_agent_configuration(self, negotiation_id):
        self.reads.append("get_agent_configuration")
        return self.policy

    async def update_current_price(self, negotiation_id, price_str):
        self._record("update_current_price", price_str)

    async def increment_agent_reply_count(self, negotiation_id):
        self._record("increment_agent_reply_count")
        return self.negotiation.agent_reply_count + 1

    async def add_agent_message(self, negotiation_id, content):
        self._record("add_agent_message", content)

    async def update_agent_status(self, negotiation_id, status, reason=None):
        self._record("update_agent_status", status, reason)

    async def create_notification(self, user_id, notification_type, title, content, source_id, source_name):
        self._record("create_notification", notification_type, title, content)


@pytest.fixture
def make_action(analysis_stub, generation_stub):
    def _make(store, verdict_data=None, text="1080 and it's a deal."):
        pipeline = NegotiationPipeline(analysis_stub(verdict_data), generation_stub(text), store=store)
        return NegotiationAgentAction(pipeline=pipeline, store=store)
    return _make


def test_send_persists_reply(make_snapshot, make_message, make_action, verdict):
    store = RecordingStore(make_snapshot(messages=[make_message("carrier", "ok 950", 3000)]))

    result = asyncio.run(make_action(store, verdict()).run_agent("neg_1"))

    assert result.generated_message == "1080 and it's a deal."
    assert store.writes == [
        ("update_current_price", "950.00 EUR"),
        ("increment_agent_reply_count",),
        ("update_agent_status", None, None),
        ("add_agent_message", "1080 and it's a deal."),
    ]


def test_review_flags_and_notifies(make_snapshot, make_message, make_action, verdict):
    store = RecordingStore(make_snapshot(messages=[make_message("carrier", "deal, 1000 works", 3000)]))
    data = verdict(intent="agreement", currentNegotiationPrice=1000)

    asyncio.run(make_action(store, data).run_agent("neg_1"))

    reason = "Target price reached (1000.00 EUR >= 1000.00 EUR)."
    assert store.writes == [
        ("update_current_price", "1000.00 EUR"),
        ("update_agent_status", AgentStatus.NEEDS_REVIEW, reason),
        ("create_notification", NotificationType.AGENT_NEEDS_REVIEW, "AI Agent Needs Review: Berlin to Munich", reason),
    ]


def test_new_terms_notification(make_snapshot, make_message, make_action, verdict):
    store = RecordingStore(make_snapshot(messages=[make_message("carrier", "need a tail lift", 3000)]))

    asyncio.run(make_action(store, verdict(newTermsDetected=True)).run_agent("neg_1"))

    notification = store.writes[-1]
    assert notification[1] == NotificationType.AGENT_NEW_TERMS
    assert notification[2] == "New Terms Mentioned: Berlin to Munich"


def test_review_reason_mentioning_terms_in_passing(make_snapshot, make_message, make_action, verdict):
    store = RecordingStore(make_snapshot(messages=[make_message("carrier", "when do you load?", 3000)]))
    data = verdict(intent="question", needsReview=True, reviewReason="Cannot determine the loading date.")

    asyncio.run(make_action(store, data).run_agent("neg_1"))

    notification = store.writes[-1]
    assert notification[1] == NotificationType.AGENT_NEEDS_REVIEW
    assert notification[2] == "AI Agent Needs Review: Berlin to Munich"


def test_negotiation_is_read_once_per_run(make_snapshot, make_message, make_action, verdict):
    store = RecordingStore(make_snapshot(messages=[make_message("carrier", "ok 950", 3000)]))

    asyncio.run(make_action(store, verdict()).run_agent("neg_1"))

    assert store.reads == ["get_negotiation", "get_agent_configuration"]
    assert store.writes[-1][0] == "add_agent_message"


def test_error_flags_and_notifies(make_snapshot, make_action):
    store = RecordingStore(make_snapshot(isAgentActive=False))

    asyncio.run(make_action(store).run_agent("neg_1"))

    message = "Agent is not active for negotiation neg_1."
    assert store.writes == [
        ("update_agent_status", AgentStatus.ERROR, message),
        ("create_notification", NotificationType.AGENT_NEEDS_REVIEW, "AI Agent Error: Berlin to Munich", message),
    ]


def test_missing_negotiation_is_rejected(make_action):
    with pytest.raises(ValueError, match="not found"):
        asyncio.run(make_action(RecordingStore()).run_agent("neg_404"))


def test_store_write_failure_is_raised(make_snapshot, make_message, make_action, verdict):
    store = RecordingStore(make_snapshot(messages=[make_message("carrier", "ok 950", 3000)]),
                           fail_on="add_agent_message")

    with pytest.raises(NegotiationStoreError):
        asyncio.run(make_action(store, verdict()).run_agent("neg_1"))
