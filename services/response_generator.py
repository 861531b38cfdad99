"""
Response Generator - drafts the agent's next message

Drafts the reply with the generation service, then applies hard checks
that turn the draft into a review item instead of an outbound message:
    - the price already meets our minimum and the counterparty agreed or countered
    - the counterparty refused
    - the counterparty introduced new terms
"""
import logging
from typing import Any, Dict, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from config import AppConfig
from constant.enum import FinalAction, MessageIntent, MessageSender, NegotiationStyle, sender_role
from core.utils import format_price, visible_reply_text
from prompts.negotiation import GENERATION_PROMPT, INTENT_TACTICS, STYLE_GUIDANCE
from schemas.negotiation import Message, PipelineState
from services.language_service import GenerationService
from services.pricing import should_negotiate_up

# Opening ask above the minimum, per negotiation style
OPENING_MARKUP = {
    NegotiationStyle.CONSERVATIVE: 1.05,
    NegotiationStyle.BALANCED: 1.10,
    NegotiationStyle.AGGRESSIVE: 1.15,
}

VERY_CLOSE_RATIO = 0.05


def to_chat_history(messages: List[Message], max_messages: int) -> List[BaseMessage]:
    """Map stored messages onto chat roles for the generation call"""
    history: List[BaseMessage] = []
    for msg in messages[-max_messages:]:
        content = visible_reply_text(msg.content)
        role = sender_role(msg.sender)
        if role == MessageSender.AGENT:
            history.append(AIMessage(content=content))
        elif role == MessageSender.USER:
            history.append(HumanMessage(content=f"[Operator note]: {content}"))
        elif role == MessageSender.SYSTEM:
            history.append(SystemMessage(content=content))
        else:
            history.append(HumanMessage(content=f"[{msg.sender}]: {content}"))
    return history


def is_very_close(current_price: Optional[float], target_price: Optional[float]) -> bool:
    if current_price is None or not target_price:
        return False
    return abs(current_price - target_price) < target_price * VERY_CLOSE_RATIO


class ResponseGenerator:
    """Generation stage of the negotiation pipeline"""

    def __init__(self, generation_service: GenerationService, history_window: int = AppConfig.ANALYSIS_HISTORY_WINDOW):
        self.generation_service = generation_service
        self.history_window = history_window
        self.logger = logging.getLogger(__name__)

    def generate(self, state: PipelineState) -> Dict[str, Any]:
        negotiation = state.snapshot
        if negotiation is None or state.target_price_info.target_total is None:
            return {
                "final_action": FinalAction.ERROR,
                "error_details": "Missing negotiation context for response generation."
            }

        messages = self.build_messages(state)

        try:
            draft = self.generation_service.generate(messages)
        except Exception as e:
            self.logger.error(f"Error generating negotiation response: {e}", exc_info=True)
            return {
                "generated_message": None,
                "final_action": FinalAction.ERROR,
                "error_details": f"Error generating response: {e}"
            }

        if not draft or not draft.strip():
            self.logger.warning("Generation service returned an empty draft")
            return {
                "generated_message": None,
                "final_action": FinalAction.ERROR,
                "error_details": "Generation service returned an empty message."
            }

        draft = draft.strip()
        self.logger.info(f"Generated response: {draft}")

        review_reason = self._hard_check(state)
        if review_reason:
            self.logger.info(f"Overriding send with review: {review_reason}")
            return {
                "generated_message": draft,
                "final_action": FinalAction.REVIEW,
                "review_reason": review_reason
            }

        return {
            "generated_message": draft,
            "final_action": FinalAction.SEND
        }

    def build_messages(self, state: PipelineState) -> List[BaseMessage]:
        """System framing, recent history and the per-turn instructions"""
        negotiation = state.snapshot
        request = negotiation.initial_request
        analysis = state.analysis_result
        target_info = state.target_price_info
        current_price = state.current_price_info.price
        current_price_str = state.current_price_info.price_str or "unknown"

        up = should_negotiate_up(current_price, target_info.target_total)
        first_message = not any(sender_role(m.sender) == MessageSender.AGENT for m in negotiation.messages)

        if up:
            price_goal = f"Negotiate the TOTAL PRICE UP to at least {target_info.target_total_str}"
            direction_instruction = "You need a HIGHER price. The current offer is below your minimum."
        else:
            price_goal = f"Hold the TOTAL PRICE at or above {current_price_str}"
            direction_instruction = "The current price already meets your minimum. Hold it and confirm the deal."

        first_message_opening = ""
        initial_tactic = ""
        if first_message:
            markup = OPENING_MARKUP.get(state.policy.style, OPENING_MARKUP[NegotiationStyle.BALANCED])
            # never open below what is already on the table
            opening_total = max(target_info.target_total * markup, current_price or 0.0)
            opening_price = format_price(opening_total, AppConfig.CURRENCY)
            first_message_opening = (
                f"FIRST MESSAGE: This is your first reply in this thread. Open above your minimum, "
                f"around {opening_price}, so you have room to concede."
            )
            initial_tactic = "Mention you have a truck available for this route and state your price clearly."

        if is_very_close(current_price, target_info.target_total):
            proximity_tactic = "- You're very close to your minimum - a small final push should close it"
        else:
            proximity_tactic = ""

        latest = state.latest_message
        return GENERATION_PROMPT.format_messages(
            history=to_chat_history(negotiation.messages, self.history_window),
            price_goal=price_goal,
            target_price=target_info.target_total_str,
            origin=request.origin,
            destination=request.destination,
            load_type=request.load_type or "Standard load",
            weight=request.weight or "weight not specified",
            current_price=current_price_str,
            direction_instruction=direction_instruction,
            style_guidance=STYLE_GUIDANCE.get(state.policy.style, STYLE_GUIDANCE[NegotiationStyle.BALANCED]),
            first_message_opening=first_message_opening,
            initial_tactic=initial_tactic,
            latest_message=visible_reply_text(latest.content) if latest else "No message yet",
            intent=analysis.intent.value,
            summary=analysis.summary or "N/A",
            contact_tactic=("- This is your first contact - keep it brief and lead with your price" if first_message
                            else "- You've already been talking - keep it short and to the point"),
            intent_tactic=INTENT_TACTICS.get(analysis.intent, "- Respond naturally and steer back to the price"),
            proximity_tactic=proximity_tactic,
        )

    @staticmethod
    def _hard_check(state: PipelineState) -> Optional[str]:
        """Reason the draft must go to review instead of out, None when it can be sent"""
        analysis = state.analysis_result
        target_info = state.target_price_info
        price_info = state.current_price_info

        if (not should_negotiate_up(price_info.price, target_info.target_total)
                and analysis.intent in (MessageIntent.AGREEMENT, MessageIntent.COUNTER_PROPOSAL)):
            return (f"Target price met ({price_info.price_str} >= {target_info.target_total_str}) "
                    f"- accept and confirm the deal.")

        if analysis.intent == MessageIntent.REFUSAL:
            return "Counterparty refused the offer."

        if analysis.new_terms_detected:
            return "New terms detected in counterparty message."

        return None
