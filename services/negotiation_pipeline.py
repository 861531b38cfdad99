"""
Negotiation Pipeline - state machine for one agent run

    Start -> Analyze -> Generate -> Done (send)
              |           |
              +-----------+--> Review / Error (absorbing)

Each stage returns a partial update that is merged into a fresh copy of the
PipelineState. A stage that sets final_action stops the run. The pipeline
never writes to the negotiation store; persisting the outcome is the
caller's job (see actions/negotiation.py).
"""
import logging
from typing import Any, Dict, Optional

from config import AppConfig
from constant.enum import FinalAction, NegotiationStatus, PriceSource
from core.exceptions import TargetPriceError
from core.utils import format_price, now_ms, parse_numeric_value
from schemas.negotiation import (
    AgentPolicy,
    CurrentPriceInfo,
    NegotiationSnapshot,
    PipelineResult,
    PipelineState,
)
from services.language_service import AnalysisService, GenerationService
from services.message_analyzer import MessageAnalyzer
from services.pricing import calculate_price_per_km, calculate_target_price
from services.response_generator import ResponseGenerator

logger = logging.getLogger(__name__)


class NegotiationPipeline:
    """
    Runs the agent decision pipeline for a single negotiation.

    The language services are injected so tests can drive the pipeline with
    deterministic stubs. The store is only needed by run_for_negotiation.
    """

    def __init__(self, analysis_service: AnalysisService, generation_service: GenerationService,
                 store=None, history_window: int = AppConfig.ANALYSIS_HISTORY_WINDOW):
        self.analyzer = MessageAnalyzer(analysis_service, history_window)
        self.generator = ResponseGenerator(generation_service, history_window)
        self.store = store
        self.logger = logging.getLogger(__name__)

    # =========================================================================
    # STAGES
    # =========================================================================

    def start(self, state: PipelineState) -> Dict[str, Any]:
        """Validate preconditions, compute the target price, seed the current price"""
        negotiation = state.snapshot
        if negotiation is None:
            return {
                "final_action": FinalAction.ERROR,
                "error_details": f"Negotiation {state.negotiation_id} not found."
            }

        if not negotiation.is_agent_active:
            return {
                "final_action": FinalAction.ERROR,
                "error_details": f"Agent is not active for negotiation {state.negotiation_id}."
            }

        rate = parse_numeric_value(negotiation.agent_target_price_per_km)
        if rate is None or rate <= 0:
            return {
                "final_action": FinalAction.ERROR,
                "error_details": f"Invalid target price per km ({negotiation.agent_target_price_per_km})."
            }

        if negotiation.status != NegotiationStatus.PENDING.value:
            return {
                "final_action": FinalAction.ERROR,
                "error_details": f"Negotiation is no longer pending (current status: {negotiation.status})."
            }

        request = negotiation.initial_request
        try:
            target_price_info = calculate_target_price(request.distance, rate)
        except TargetPriceError as e:
            return {
                "final_action": FinalAction.ERROR,
                "error_details": str(e)
            }

        initial_per_km = calculate_price_per_km(request.price, request.distance)
        self.logger.info(f"[Agent] Target Price: {target_price_info.target_total_str} ({rate}/km)")
        self.logger.info(f"[Agent] Initial Price per km: {initial_per_km}")

        stored_price = parse_numeric_value(negotiation.current_price)
        if stored_price is not None:
            current_price_info = CurrentPriceInfo(
                price=stored_price,
                price_str=format_price(stored_price, AppConfig.CURRENCY),
                source=PriceSource.DATABASE,
                timestamp=now_ms()
            )
        else:
            current_price_info = CurrentPriceInfo(source=PriceSource.NONE, timestamp=now_ms())

        latest_message = negotiation.latest_counterparty_message
        self.logger.info(
            f"[Agent] Latest counterparty message: {latest_message.content[:80] if latest_message else 'None'}")

        return {
            "target_price_info": target_price_info,
            "current_price_info": current_price_info,
            "latest_message": latest_message,
        }

    def analyze(self, state: PipelineState) -> Dict[str, Any]:
        return self.analyzer.analyze(state)

    def generate(self, state: PipelineState) -> Dict[str, Any]:
        return self.generator.generate(state)

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def run(self, snapshot: Optional[NegotiationSnapshot], policy: Optional[AgentPolicy] = None,
            negotiation_id: Optional[str] = None) -> PipelineResult:
        """
        Run the pipeline over a preloaded snapshot.

        Always returns a result with a terminal final_action; unexpected
        exceptions become an error result.
        """
        negotiation_id = negotiation_id or (snapshot.id if snapshot else "unknown")
        state = PipelineState(
            negotiation_id=negotiation_id,
            snapshot=snapshot,
            policy=policy or AgentPolicy(),
        )

        self.logger.info("=" * 60)
        self.logger.info(f"[Agent] Running negotiation agent for {negotiation_id}")
        self.logger.info("=" * 60)

        try:
            for stage in (self.start, self.analyze, self.generate):
                state = state.apply(stage(state))
                if state.is_terminal:
                    break

            if not state.is_terminal:
                state = state.apply({
                    "final_action": FinalAction.ERROR,
                    "error_details": "Pipeline finished without a final action."
                })

        except Exception as e:
            self.logger.error(f"[Agent] Error executing agent: {e}", exc_info=True)
            state = state.apply({
                "final_action": FinalAction.ERROR,
                "error_details": f"Error executing agent: {e}"
            })

        self.logger.info(f"[Agent] Final Action: {state.final_action.value}")
        if state.review_reason:
            self.logger.info(f"[Agent] Review Reason: {state.review_reason}")
        if state.error_details:
            self.logger.info(f"[Agent] Error Details: {state.error_details}")

        return PipelineResult.from_state(state)

    async def run_for_negotiation(self, negotiation_id: str,
                                  bypass: Optional[Dict[str, bool]] = None) -> PipelineResult:
        """Load snapshot and policy from the store, then run"""
        if self.store is None:
            raise ValueError("A negotiation store is required to run by negotiation id")

        try:
            snapshot = await self.store.get_negotiation(negotiation_id)
            policy = await self.store.get_agent_configuration(negotiation_id)
        except Exception as e:
            self.logger.error(f"[Agent] Failed to load negotiation {negotiation_id}: {e}", exc_info=True)
            return PipelineResult.from_state(PipelineState(
                negotiation_id=negotiation_id,
                final_action=FinalAction.ERROR,
                error_details=f"Error executing agent: {e}"
            ))

        policy = (policy or AgentPolicy()).with_bypasses(bypass)
        return self.run(snapshot, policy, negotiation_id=negotiation_id)
