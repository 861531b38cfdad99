"""
Enums for the Freight Negotiation Agent
"""
from enum import Enum
from typing import Optional


class RMQEnum(Enum):
    AGENT_RUN_QUEUE = 'agent_run_queue'


class FinalAction(str, Enum):
    """Terminal outcome of a pipeline run"""
    SEND = 'send'
    REVIEW = 'review'
    ERROR = 'error'


class MessageIntent(str, Enum):
    """
    Counterparty intent in the latest message.

    ERROR is never produced by the language service, only by the pipeline
    when the analysis step fails.
    """
    AGREEMENT = 'agreement'
    REFUSAL = 'refusal'
    COUNTER_PROPOSAL = 'counter_proposal'
    QUESTION = 'question'
    NEW_TERMS = 'new_terms'
    OTHER = 'other'
    NONE = 'none'
    ERROR = 'error'


class PriceSource(str, Enum):
    """Where the current operative price came from"""
    MESSAGE = 'message'
    COUNTER_OFFER = 'counterOffer'
    INITIAL = 'initial'
    AGREEMENT = 'agreement'
    LLM_ANALYSIS = 'llm_analysis'
    ERROR = 'error'
    DATABASE = 'database'
    NONE = 'none'


class MessageSender(str, Enum):
    """
    Known non-counterparty senders. Any other sender value (carrier,
    carrier_system, email, ...) belongs to the counterparty.
    """
    AGENT = 'agent'
    USER = 'user'
    SYSTEM = 'system'


class NegotiationStyle(str, Enum):
    CONSERVATIVE = 'conservative'
    BALANCED = 'balanced'
    AGGRESSIVE = 'aggressive'


class NegotiationStatus(str, Enum):
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'


class ReviewTrigger(str, Enum):
    """Escalation categories, each paired with a notify and a bypass flag"""
    TARGET_PRICE_REACHED = 'target_price_reached'
    AGREEMENT = 'agreement'
    NEW_TERMS = 'new_terms'
    PRICE_CHANGE = 'price_change'
    MAX_REPLIES = 'max_replies'
    CONFUSION = 'confusion'
    REFUSAL = 'refusal'


class AgentStatus(str, Enum):
    """Agent state persisted on the negotiation record"""
    NEEDS_REVIEW = 'needs_review'
    ERROR = 'error'


class NotificationType(str, Enum):
    AGENT_NEEDS_REVIEW = 'agent_needs_review'
    AGENT_NEW_TERMS = 'agent_new_terms'


def sender_role(sender: Optional[str]) -> Optional[MessageSender]:
    """Known sender for a stored sender value, case-insensitive. None for the counterparty"""
    try:
        return MessageSender((sender or '').strip().lower())
    except ValueError:
        return None


def is_counterparty_sender(sender: Optional[str]) -> bool:
    """True when the message was written by the other side of the deal"""
    return sender_role(sender) is None
