"""
Message Analyzer - turns the negotiation thread into a structured decision input

1. Builds a bounded conversation summary and direction framing
2. Asks the analysis service for a JSON verdict (intent, prices, review flag)
3. Validates the verdict strictly - a malformed verdict is an error, never defaulted
4. Applies the deterministic policy gates on top of the service's judgment
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from config import AppConfig
from constant.enum import FinalAction, MessageIntent, MessageSender, PriceSource, ReviewTrigger, sender_role
from core.utils import format_price, now_ms, parse_numeric_value, visible_reply_text
from prompts.negotiation import ANALYSIS_PROMPT
from schemas.negotiation import (
    AnalysisResult,
    AnalysisVerdict,
    CurrentPriceInfo,
    Message,
    NegotiationSnapshot,
    PipelineState,
)
from services.language_service import AnalysisService
from services.price_history import get_counterparty_price_history, last_counterparty_price
from services.pricing import calculate_price_per_km, should_negotiate_up


def format_history_for_analysis(messages: List[Message], max_messages: int) -> str:
    """Format the most recent messages for the analysis prompt"""
    if not messages:
        return "No previous conversation"

    lines = []
    for msg in messages[-max_messages:]:
        content = visible_reply_text(msg.content)
        role = sender_role(msg.sender)
        if role == MessageSender.AGENT:
            lines.append(f"Agent (Us): {content}")
        elif role == MessageSender.USER:
            lines.append(f"Operator (Us): {content}")
        elif role == MessageSender.SYSTEM:
            lines.append(f"System: {content}")
        else:
            lines.append(f"Counterparty ({msg.sender}): {content}")

    return "\n---\n".join(lines)


class MessageAnalyzer:
    """Analysis stage of the negotiation pipeline"""

    def __init__(self, analysis_service: AnalysisService, history_window: int = AppConfig.ANALYSIS_HISTORY_WINDOW):
        self.analysis_service = analysis_service
        self.history_window = history_window
        self.logger = logging.getLogger(__name__)

    def analyze(self, state: PipelineState) -> Dict[str, Any]:
        """
        Run the analysis stage.

        Returns:
            Partial state update. final_action is None (continue), review or error.
        """
        negotiation = state.snapshot
        if negotiation is None:
            return {
                "final_action": FinalAction.ERROR,
                "error_details": "Missing negotiation document for analysis."
            }

        target_price = state.target_price_info.target_total
        initial_price = parse_numeric_value(negotiation.initial_request.price)
        price_to_compare = state.current_price_info.price if state.current_price_info.price is not None else initial_price
        if should_negotiate_up(price_to_compare, target_price):
            direction = "We need to negotiate the price up."
        else:
            direction = "The price already meets our target. We hold it and never negotiate it down."

        prompt_messages = ANALYSIS_PROMPT.format_messages(
            **self._prompt_variables(state, negotiation, direction, initial_price)
        )
        system_prompt, user_prompt = prompt_messages[0].content, prompt_messages[1].content

        try:
            raw_verdict = self.analysis_service.analyze(system_prompt, user_prompt)
            self.logger.info(f"LLM Analysis result: {raw_verdict}")
        except Exception as e:
            self.logger.error(f"Error in LLM message analysis: {e}", exc_info=True)
            return {
                "analysis_result": AnalysisResult(
                    intent=MessageIntent.ERROR,
                    summary=str(e) or "Unknown analysis error"
                ),
                "current_price_info": state.current_price_info.model_copy(
                    update={"source": PriceSource.ERROR, "timestamp": now_ms()}
                ),
                "final_action": FinalAction.ERROR,
                "error_details": f"Error during analysis: {e}"
            }

        try:
            verdict = AnalysisVerdict.model_validate(raw_verdict)
        except ValidationError as e:
            self.logger.error(f"Invalid analysis structure received from LLM: {raw_verdict}")
            return {
                "analysis_result": AnalysisResult(
                    intent=MessageIntent.ERROR,
                    summary="Error: Invalid analysis structure from LLM."
                ),
                "current_price_info": self._partial_price_info(state, raw_verdict),
                "final_action": FinalAction.ERROR,
                "error_details": f"Invalid analysis structure received from LLM: {e.error_count()} invalid field(s). {e}"
            }

        price_info = self._resolve_operative_price(state, negotiation, verdict)
        triggers = self._policy_triggers(state, verdict, price_info)

        needs_review = verdict.needsReview or bool(triggers)
        review_reason = None
        if needs_review:
            review_reason = verdict.reviewReason if verdict.needsReview else triggers[0][1]

        intent = MessageIntent(verdict.intent)
        analysis_result = AnalysisResult(
            intent=intent,
            price_in_message=verdict.explicitPriceInMessage,
            current_negotiation_price=verdict.currentNegotiationPrice,
            new_terms_detected=verdict.newTermsDetected,
            summary=review_reason if needs_review else
            f"LLM analyzed: Intent={intent.value}, Price={price_info.price if price_info.price is not None else 'N/A'}",
            triggers=[trigger for trigger, _ in triggers]
        )

        self.logger.info(f"Analysis - Intent: {intent.value}")
        self.logger.info(f"Analysis - Operative Price: {price_info.price_str} (source: {price_info.source.value})")
        self.logger.info(f"Analysis - Policy Triggers: {[t.value for t, _ in triggers]}")
        self.logger.info(f"Analysis - Needs Review: {needs_review} ({review_reason})")

        return {
            "analysis_result": analysis_result,
            "current_price_info": price_info,
            "final_action": FinalAction.REVIEW if needs_review else None,
            "review_reason": review_reason
        }

    def _prompt_variables(self, state: PipelineState, negotiation: NegotiationSnapshot,
                          direction: str, initial_price: Optional[float]) -> Dict[str, Any]:
        policy = state.policy
        request = negotiation.initial_request
        latest = state.latest_message

        price_per_km = calculate_price_per_km(request.price, request.distance)
        history = get_counterparty_price_history(negotiation)
        price_history = "\n".join(
            f"- {point.value:.2f} {AppConfig.CURRENCY} ({point.source.value})" for point in history
        ) or "No prices yet"

        return {
            "route": request.route,
            "load_details": f"{request.load_type or 'Standard load'}, {request.weight or 'N/A'}, {request.distance or 'distance N/A'}",
            "target_price": state.target_price_info.target_total_str or "unknown",
            "initial_price": format_price(initial_price, AppConfig.CURRENCY) or request.price,
            "initial_price_per_km": f"{price_per_km:.2f} {AppConfig.CURRENCY}/km" if price_per_km is not None else "per km N/A",
            "current_price": state.current_price_info.price_str or "unknown",
            "direction": direction,
            "style": policy.style.value,
            "max_auto_replies": policy.max_auto_replies,
            "reply_count": negotiation.agent_reply_count,
            "notify_on_new_terms": policy.notify_on_new_terms,
            "notify_on_price_change": policy.notify_on_price_change,
            "notify_on_target_price_reached": policy.notify_on_target_price_reached,
            "notify_on_agreement": policy.notify_on_agreement,
            "notify_on_confusion": policy.notify_on_confusion,
            "notify_on_refusal": policy.notify_on_refusal,
            "bypass_new_terms_check": policy.bypass_new_terms_check,
            "bypass_price_change_check": policy.bypass_price_change_check,
            "bypass_max_replies_check": policy.bypass_max_replies_check or not policy.notify_on_max_replies,
            "bypass_target_price_check": policy.bypass_target_price_check,
            "bypass_agreement_check": policy.bypass_agreement_check,
            "bypass_confusion_check": policy.bypass_confusion_check,
            "bypass_refusal_check": policy.bypass_refusal_check,
            "price_history": price_history,
            "history_window": self.history_window,
            "history": format_history_for_analysis(negotiation.messages, self.history_window),
            "latest_message": f'"{visible_reply_text(latest.content)}"' if latest else "None",
            "currency": AppConfig.CURRENCY,
        }

    @staticmethod
    def _partial_price_info(state: PipelineState, raw_verdict: Any) -> CurrentPriceInfo:
        """Best-effort price from a malformed verdict, prior price otherwise"""
        price = raw_verdict.get("currentNegotiationPrice") if isinstance(raw_verdict, dict) else None
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            price = None

        if price is None:
            return state.current_price_info.model_copy(
                update={"source": PriceSource.LLM_ANALYSIS, "timestamp": now_ms()}
            )

        return CurrentPriceInfo(
            price=float(price),
            price_str=format_price(float(price), AppConfig.CURRENCY),
            source=PriceSource.LLM_ANALYSIS,
            timestamp=now_ms()
        )

    @staticmethod
    def _resolve_operative_price(state: PipelineState, negotiation: NegotiationSnapshot,
                                 verdict: AnalysisVerdict) -> CurrentPriceInfo:
        """
        Operative price after analysis.

        Verdict price first, then the last known operative price (prior state,
        then the last counterparty price in the thread), then the initial price.
        """
        if verdict.currentNegotiationPrice is not None:
            price, source = verdict.currentNegotiationPrice, PriceSource.LLM_ANALYSIS
        elif state.current_price_info.price is not None:
            price, source = state.current_price_info.price, state.current_price_info.source
        else:
            last_point = last_counterparty_price(negotiation)
            initial_price = parse_numeric_value(negotiation.initial_request.price)
            if last_point is not None:
                price, source = last_point.value, last_point.source
            elif initial_price is not None:
                price, source = initial_price, PriceSource.INITIAL
            else:
                price, source = None, PriceSource.NONE

        return CurrentPriceInfo(
            price=price,
            price_str=format_price(price, AppConfig.CURRENCY),
            source=source,
            timestamp=now_ms()
        )

    @staticmethod
    def _policy_triggers(state: PipelineState, verdict: AnalysisVerdict,
                         price_info: CurrentPriceInfo) -> List[Tuple[ReviewTrigger, str]]:
        """Gates that can be decided without the language service"""
        policy = state.policy
        negotiation = state.snapshot
        target = state.target_price_info.target_total
        triggers = []

        if (policy.is_gate_active(ReviewTrigger.TARGET_PRICE_REACHED)
                and price_info.price is not None and target is not None and price_info.price >= target):
            triggers.append((
                ReviewTrigger.TARGET_PRICE_REACHED,
                f"Target price reached ({price_info.price_str} >= {state.target_price_info.target_total_str})."
            ))

        if policy.is_gate_active(ReviewTrigger.AGREEMENT) and verdict.intent == MessageIntent.AGREEMENT.value:
            triggers.append((ReviewTrigger.AGREEMENT, "Counterparty agreed to price."))

        if policy.is_gate_active(ReviewTrigger.NEW_TERMS) and (
                verdict.newTermsDetected or verdict.intent == MessageIntent.NEW_TERMS.value):
            triggers.append((ReviewTrigger.NEW_TERMS, "New terms require review."))

        if (policy.is_gate_active(ReviewTrigger.MAX_REPLIES)
                and negotiation.agent_reply_count >= policy.max_auto_replies):
            triggers.append((
                ReviewTrigger.MAX_REPLIES,
                f"Max replies reached ({negotiation.agent_reply_count}/{policy.max_auto_replies})."
            ))

        return triggers
