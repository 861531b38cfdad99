from pydantic import AliasChoices, BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional

from constant.enum import (
    FinalAction,
    MessageIntent,
    NegotiationStyle,
    PriceSource,
    ReviewTrigger,
    is_counterparty_sender,
)


class StoreModel(BaseModel):
    """Records read from the negotiation store use camelCase keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        frozen = True


# --- Negotiation snapshot (read-only) ---
class Message(StoreModel):
    sender: str = Field(..., description="agent, user, system or a counterparty sender")
    content: str = ""
    timestamp: float = Field(..., description="Milliseconds since epoch")
    email_message_id: Optional[str] = None

    @property
    def is_from_counterparty(self) -> bool:
        return is_counterparty_sender(self.sender)


class CounterOffer(StoreModel):
    price: str
    proposed_by: str
    timestamp: float
    status: str = "pending"
    notes: Optional[str] = None


class InitialRequest(StoreModel):
    origin: str
    destination: str
    price: str
    distance: Optional[str] = None
    platform: Optional[str] = None
    load_type: Optional[str] = None
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    carrier: Optional[str] = None
    notes: Optional[str] = None
    offer_contact_email: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        frozen = True
        coerce_numbers_to_str = True

    @property
    def route(self) -> str:
        return f"{self.origin} to {self.destination}"


class NegotiationSnapshot(StoreModel):
    id: str = Field(..., validation_alias=AliasChoices("id", "_id", "negotiationId"))
    user_id: Optional[str] = None
    offer_id: Optional[str] = None
    status: str = "pending"
    current_price: Optional[str] = None
    initial_request: InitialRequest
    messages: List[Message] = Field(default_factory=list)
    counter_offers: List[CounterOffer] = Field(default_factory=list)
    is_agent_active: bool = False
    agent_target_price_per_km: Optional[float] = None
    agent_reply_count: int = 0
    created_at: float = Field(0, validation_alias=AliasChoices("createdAt", "created_at", "_creationTime"))

    @property
    def counterparty_messages(self) -> List[Message]:
        return [m for m in self.messages if m.is_from_counterparty]

    @property
    def latest_counterparty_message(self) -> Optional[Message]:
        counterparty = self.counterparty_messages
        return counterparty[-1] if counterparty else None


# --- Agent policy ---
POLICY_GATES = {
    ReviewTrigger.TARGET_PRICE_REACHED: ("notify_on_target_price_reached", "bypass_target_price_check"),
    ReviewTrigger.AGREEMENT: ("notify_on_agreement", "bypass_agreement_check"),
    ReviewTrigger.NEW_TERMS: ("notify_on_new_terms", "bypass_new_terms_check"),
    ReviewTrigger.PRICE_CHANGE: ("notify_on_price_change", "bypass_price_change_check"),
    ReviewTrigger.MAX_REPLIES: ("notify_on_max_replies", "bypass_max_replies_check"),
    ReviewTrigger.CONFUSION: ("notify_on_confusion", "bypass_confusion_check"),
    ReviewTrigger.REFUSAL: ("notify_on_refusal", "bypass_refusal_check"),
}


class AgentPolicy(StoreModel):
    """
    Escalation policy for one negotiation.

    Each trigger fires only when its notify flag is on and its bypass flag is off.
    Bypass flags normally arrive per run (operator clicked "continue anyway").
    """
    style: NegotiationStyle = NegotiationStyle.BALANCED
    max_auto_replies: int = 3

    notify_on_target_price_reached: bool = True
    notify_on_agreement: bool = True
    notify_on_new_terms: bool = True
    notify_on_price_change: bool = True
    notify_on_max_replies: bool = True
    notify_on_confusion: bool = True
    notify_on_refusal: bool = True

    bypass_target_price_check: bool = False
    bypass_agreement_check: bool = False
    bypass_new_terms_check: bool = False
    bypass_price_change_check: bool = False
    bypass_max_replies_check: bool = False
    bypass_confusion_check: bool = False
    bypass_refusal_check: bool = False

    def is_gate_active(self, trigger: ReviewTrigger) -> bool:
        notify_flag, bypass_flag = POLICY_GATES[trigger]
        return getattr(self, notify_flag) and not getattr(self, bypass_flag)

    def with_bypasses(self, bypasses: Optional[Dict[str, bool]]) -> "AgentPolicy":
        """Copy of the policy with per-run bypass flags switched on."""
        if not bypasses:
            return self
        update = {
            name: True for name, enabled in bypasses.items()
            if enabled and name.startswith("bypass_") and name in type(self).model_fields
        }
        return self.model_copy(update=update)


class BypassFlags(StoreModel):
    bypass_target_price_check: bool = False
    bypass_agreement_check: bool = False
    bypass_new_terms_check: bool = False
    bypass_price_change_check: bool = False
    bypass_max_replies_check: bool = False
    bypass_confusion_check: bool = False
    bypass_refusal_check: bool = False


# --- Pipeline working state ---
class CurrentPriceInfo(StoreModel):
    price: Optional[float] = None
    price_str: Optional[str] = None
    source: PriceSource = PriceSource.NONE
    timestamp: int = 0


class TargetPriceInfo(StoreModel):
    target_total: Optional[float] = None
    target_total_str: Optional[str] = None
    target_per_km: Optional[float] = None


class AnalysisResult(StoreModel):
    intent: MessageIntent = MessageIntent.OTHER
    price_in_message: Optional[float] = None
    current_negotiation_price: Optional[float] = None
    new_terms_detected: bool = False
    summary: Optional[str] = None
    triggers: List[ReviewTrigger] = Field(default_factory=list)


class AnalysisVerdict(BaseModel):
    """
    Verdict returned by the analysis call.

    Strict: no type coercion, every key must be present, reviewReason is
    mandatory when needsReview is true.
    """
    intent: Literal["agreement", "refusal", "counter_proposal", "question", "new_terms", "other", "none"]
    explicitPriceInMessage: Optional[float] = Field(..., ge=0)
    currentNegotiationPrice: Optional[float] = Field(..., ge=0)
    newTermsDetected: bool
    needsReview: bool
    reviewReason: Optional[str] = None

    class Config:
        strict = True
        frozen = True

    @model_validator(mode="after")
    def review_reason_required(self) -> "AnalysisVerdict":
        if self.needsReview and not (self.reviewReason or "").strip():
            raise ValueError("reviewReason is required when needsReview is true")
        return self


class PipelineState(BaseModel):
    """Per-run working state, replaced (never mutated) after each stage."""
    negotiation_id: str
    snapshot: Optional[NegotiationSnapshot] = None
    policy: AgentPolicy = Field(default_factory=AgentPolicy)
    latest_message: Optional[Message] = None
    current_price_info: CurrentPriceInfo = Field(default_factory=CurrentPriceInfo)
    target_price_info: TargetPriceInfo = Field(default_factory=TargetPriceInfo)
    analysis_result: AnalysisResult = Field(default_factory=AnalysisResult)
    generated_message: Optional[str] = None
    final_action: Optional[FinalAction] = None
    review_reason: Optional[str] = None
    error_details: Optional[str] = None

    def apply(self, update: Dict[str, Any]) -> "PipelineState":
        return self.model_copy(update=update)

    @property
    def is_terminal(self) -> bool:
        return self.final_action is not None


class PipelineResult(StoreModel):
    negotiation_id: str
    final_action: FinalAction
    generated_message: Optional[str] = None
    review_reason: Optional[str] = None
    error_details: Optional[str] = None
    analysis_result: AnalysisResult
    current_price_info: CurrentPriceInfo
    target_price_info: TargetPriceInfo

    @classmethod
    def from_state(cls, state: PipelineState) -> "PipelineResult":
        return cls(
            negotiation_id=state.negotiation_id,
            final_action=state.final_action or FinalAction.ERROR,
            generated_message=state.generated_message,
            review_reason=state.review_reason,
            error_details=state.error_details,
            analysis_result=state.analysis_result,
            current_price_info=state.current_price_info,
            target_price_info=state.target_price_info,
        )


# --- API payloads ---
class RunAgentRequest(StoreModel):
    negotiation_id: str
    bypass: BypassFlags = Field(default_factory=BypassFlags)

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "negotiationId": "k57a2b9xq3m1c8d4",
                "bypass": {"bypassNewTermsCheck": True}
            }
        }


class EvaluateNegotiationRequest(StoreModel):
    negotiation: NegotiationSnapshot
    policy: Optional[AgentPolicy] = None
