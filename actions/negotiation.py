"""
Negotiation Agent Action
File: actions/negotiation.py

Caller side of the negotiation pipeline:
1. Loads the negotiation and runs the pipeline with per-run bypass flags
2. Persists the outcome through the negotiation store
   - send:   bump reply count, clear agent status, append the agent message
   - review: flag needs_review and notify the owner
   - error:  flag error and notify the owner
"""

import logging
import re
from typing import Dict, Optional

from constant.enum import AgentStatus, FinalAction, NotificationType, ReviewTrigger
from integration.negotiation_store import NegotiationStore
from schemas.negotiation import AgentPolicy, NegotiationSnapshot, PipelineResult
from services.language_service import OpenAIAnalysisService, OpenAIGenerationService
from services.negotiation_pipeline import NegotiationPipeline

NEW_TERMS_PATTERN = re.compile(r"\bnew terms?\b", re.IGNORECASE)


class NegotiationAgentAction:
    """Runs the agent for a stored negotiation and writes the result back"""

    def __init__(self, pipeline: Optional[NegotiationPipeline] = None,
                 store: Optional[NegotiationStore] = None):
        self.logger = logging.getLogger(__name__)
        self.store = store or NegotiationStore()
        self.pipeline = pipeline or NegotiationPipeline(
            OpenAIAnalysisService(),
            OpenAIGenerationService(),
            store=self.store
        )

    async def run_agent(self, negotiation_id: str, bypass: Optional[Dict[str, bool]] = None) -> PipelineResult:
        self.logger.info("="*60)
        self.logger.info(f"[Agent] Running agent for negotiation {negotiation_id}")
        self.logger.info(f"[Agent] Bypass flags: {[name for name, on in (bypass or {}).items() if on]}")

        negotiation = await self.store.get_negotiation(negotiation_id)
        if negotiation is None:
            raise ValueError(f"Negotiation {negotiation_id} not found.")
        policy = await self.store.get_agent_configuration(negotiation_id)

        result = self.pipeline.run(negotiation, (policy or AgentPolicy()).with_bypasses(bypass), negotiation_id)
        self.logger.info(f"[Agent] Pipeline completed with action: {result.final_action.value}")

        try:
            await self.persist_result(negotiation, result)
        except Exception as e:
            self.logger.error(f"[Agent] Failed to persist agent result for {negotiation_id}: {e}", exc_info=True)
            raise

        self.logger.info("="*60)
        return result

    @staticmethod
    def is_new_terms_review(result: PipelineResult) -> bool:
        """New terms flagged by analysis, or named in the review reason as a fallback"""
        analysis = result.analysis_result
        if analysis.new_terms_detected or ReviewTrigger.NEW_TERMS in analysis.triggers:
            return True
        return bool(NEW_TERMS_PATTERN.search(result.review_reason or ""))

    async def persist_result(self, negotiation: NegotiationSnapshot, result: PipelineResult):
        negotiation_id = negotiation.id
        route = negotiation.initial_request.route

        price_str = result.current_price_info.price_str
        if price_str is not None:
            self.logger.info(f"[Agent] Updating currentPrice to: {price_str}")
            await self.store.update_current_price(negotiation_id, price_str)
        else:
            self.logger.warning("[Agent] Could not update currentPrice: no operative price determined")

        if result.final_action == FinalAction.SEND and result.generated_message:
            reply_count = await self.store.increment_agent_reply_count(negotiation_id)
            self.logger.info(f"[Agent] Incremented reply count for {negotiation_id} to {reply_count}")

            await self.store.update_agent_status(negotiation_id, None)
            await self.store.add_agent_message(negotiation_id, result.generated_message)
            self.logger.info(f"[Agent] Added agent message for {negotiation_id}")

        elif result.final_action == FinalAction.REVIEW:
            reason = result.review_reason or "Your attention is needed on this negotiation."
            self.logger.info(f"[Agent] Flagging {negotiation_id} for review. Reason: {reason}")
            await self.store.update_agent_status(negotiation_id, AgentStatus.NEEDS_REVIEW, reason)

            if self.is_new_terms_review(result):
                notification_type, title = NotificationType.AGENT_NEW_TERMS, f"New Terms Mentioned: {route}"
            else:
                notification_type, title = NotificationType.AGENT_NEEDS_REVIEW, f"AI Agent Needs Review: {route}"

            await self.store.create_notification(
                user_id=negotiation.user_id,
                notification_type=notification_type,
                title=title,
                content=reason,
                source_id=negotiation_id,
                source_name=route
            )
            self.logger.info(f"[Agent] Created {notification_type.value} notification for user {negotiation.user_id}")

        else:
            error_message = result.error_details or "Unknown error during agent execution"
            self.logger.error(f"[Agent] Error state reached for {negotiation_id}: {error_message}")
            await self.store.update_agent_status(negotiation_id, AgentStatus.ERROR, error_message)
            await self.store.create_notification(
                user_id=negotiation.user_id,
                notification_type=NotificationType.AGENT_NEEDS_REVIEW,
                title=f"AI Agent Error: {route}",
                content=error_message,
                source_id=negotiation_id,
                source_name=route
            )
