"""
Shared builders and stub language services for the negotiation agent tests.
"""
import copy
from typing import Any, Dict, List, Optional

import pytest

from schemas.negotiation import AgentPolicy, NegotiationSnapshot, PipelineState
from services.negotiation_pipeline import NegotiationPipeline


BASE_NEGOTIATION = {
    "_id": "neg_1",
    "userId": "user_1",
    "offerId": "offer_1",
    "status": "pending",
    "currentPrice": None,
    "initialRequest": {
        "origin": "Berlin",
        "destination": "Munich",
        "price": "800",
        "distance": "500 km",
        "loadType": "FTL",
        "weight": "12t",
    },
    "messages": [],
    "counterOffers": [],
    "isAgentActive": True,
    "agentTargetPricePerKm": 2.0,
    "agentReplyCount": 0,
    "createdAt": 1000,
}


class StubAnalysisService:
    """Returns a fixed verdict (or raises) and records every call"""

    def __init__(self, verdict: Any = None, error: Optional[Exception] = None):
        self.verdict = verdict
        self.error = error
        self.calls: List[Dict[str, str]] = []

    def analyze(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        self.calls.append({"system": system_prompt, "user": user_prompt})
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.verdict)


class StubGenerationService:
    def __init__(self, text: str = "I can do 1100 EUR for this run, truck is ready tomorrow.",
                 error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[list] = []

    def generate(self, messages) -> str:
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.text


def build_verdict(**overrides) -> Dict[str, Any]:
    verdict = {
        "intent": "counter_proposal",
        "explicitPriceInMessage": 950,
        "currentNegotiationPrice": 950,
        "newTermsDetected": False,
        "needsReview": False,
        "reviewReason": None,
    }
    verdict.update(overrides)
    return verdict


@pytest.fixture
def make_message():
    def _make(sender: str, content: str, timestamp: float) -> Dict[str, Any]:
        return {"sender": sender, "content": content, "timestamp": timestamp}
    return _make


@pytest.fixture
def make_snapshot():
    def _make(**overrides) -> NegotiationSnapshot:
        data = copy.deepcopy(BASE_NEGOTIATION)
        request_overrides = overrides.pop("initialRequest", None)
        if request_overrides:
            data["initialRequest"].update(request_overrides)
        data.update(overrides)
        return NegotiationSnapshot.model_validate(data)
    return _make


@pytest.fixture
def verdict():
    return build_verdict


@pytest.fixture
def analysis_stub():
    return StubAnalysisService


@pytest.fixture
def generation_stub():
    return StubGenerationService


@pytest.fixture
def started_state():
    """PipelineState after the start stage, ready for analysis"""
    def _start(snapshot: NegotiationSnapshot, policy: Optional[AgentPolicy] = None) -> PipelineState:
        pipeline = NegotiationPipeline(StubAnalysisService(), StubGenerationService())
        state = PipelineState(negotiation_id=snapshot.id, snapshot=snapshot, policy=policy or AgentPolicy())
        state = state.apply(pipeline.start(state))
        assert state.final_action is None, state.error_details
        return state
    return _start


@pytest.fixture
def negotiation_record():
    """Raw store record, as the store API returns it"""
    return copy.deepcopy(BASE_NEGOTIATION)
