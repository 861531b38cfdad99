"""
Negotiation Agent Controller

Endpoints:
- POST /api/v1/agent/run       run the agent for a stored negotiation and persist the outcome
- POST /api/v1/agent/evaluate  dry run over a preloaded negotiation, nothing persisted
- POST /api/v1/agent/enqueue   queue an agent run (serialized by the queue consumer)
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException

from actions.negotiation import NegotiationAgentAction
from core.rabbitmq import RabbitMQManager
from schemas.negotiation import EvaluateNegotiationRequest, PipelineResult, RunAgentRequest
from services.negotiation_pipeline import NegotiationPipeline


logger = logging.getLogger(__name__)


class NegotiationController:
    def __init__(self, action: Optional[NegotiationAgentAction] = None,
                 pipeline: Optional[NegotiationPipeline] = None,
                 publisher: Optional[RabbitMQManager] = None):
        self.router = APIRouter(prefix="/api/v1/agent", tags=["Negotiation Agent"])
        self.logger = logging.getLogger(__name__)
        self.action = action or NegotiationAgentAction()
        self.pipeline = pipeline or self.action.pipeline
        self.publisher = publisher

        self.router.add_api_route(
            "/run",
            self.run_agent,
            methods=["POST"],
            response_model=PipelineResult
        )
        self.router.add_api_route(
            "/evaluate",
            self.evaluate,
            methods=["POST"],
            response_model=PipelineResult
        )
        self.router.add_api_route(
            "/enqueue",
            self.enqueue,
            methods=["POST"]
        )

    async def run_agent(self, request: RunAgentRequest) -> PipelineResult:
        """
        Run the negotiation agent for one negotiation.

        - **negotiationId**: negotiation to run
        - **bypass**: per-run bypass flags, e.g. after the operator reviewed new terms
        """
        try:
            return await self.action.run_agent(
                request.negotiation_id,
                request.bypass.model_dump()
            )
        except ValueError as e:
            self.logger.error(f"Validation error: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            self.logger.exception(f"Error running agent: {repr(e)}")
            raise HTTPException(
                status_code=500,
                detail=f"Error running negotiation agent: {str(e)}"
            )

    async def evaluate(self, request: EvaluateNegotiationRequest) -> PipelineResult:
        """Evaluate a negotiation without touching the store"""
        try:
            return self.pipeline.run(request.negotiation, request.policy)
        except Exception as e:
            self.logger.exception(f"Error evaluating negotiation: {repr(e)}")
            raise HTTPException(
                status_code=500,
                detail=f"Error evaluating negotiation: {str(e)}"
            )

    async def enqueue(self, request: RunAgentRequest) -> Dict[str, Any]:
        """Publish an agent run to the queue"""
        if self.publisher is None:
            raise HTTPException(status_code=503, detail="Agent run queue is not enabled")

        message = {
            "negotiationId": request.negotiation_id,
            "bypass": request.bypass.model_dump(by_alias=True)
        }
        try:
            await self.publisher.publish(message)
        except Exception as e:
            self.logger.error(f"❌ Failed to enqueue agent run: {e}", exc_info=True)
            raise HTTPException(
                status_code=500,
                detail=f"Failed to send message to RabbitMQ: {str(e)}"
            )

        self.logger.info(f"✅ Agent run queued for negotiation {request.negotiation_id}")
        return {
            "status": "success",
            "message": "Agent run sent to queue",
            "queue": self.publisher.queue_name,
            "data": message
        }
