"""
Freight Negotiation Agent - Main Application

Entry points for the negotiation agent:
1. HTTP API (api/v1/negotiation.py) for direct and dry runs
2. Optional RabbitMQ consumer that serializes queued agent runs
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import asyncio
import httpx
from contextlib import asynccontextmanager

from core.rabbitmq import RabbitMQManager
from core.exceptions import NegotiationStoreError
from constant.enum import RMQEnum
from config import AppConfig

from schemas.negotiation import BypassFlags
from actions.negotiation import NegotiationAgentAction
from api.v1.negotiation import NegotiationController
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


config = AppConfig()
# ------------------------------
# Create RabbitMQ manager
# ------------------------------
rabbit_mq_manager = RabbitMQManager(
    rabbitmq_url=config.RABBITMQ_URL,
    queue_name=RMQEnum.AGENT_RUN_QUEUE.value
) if config.AGENT_QUEUE_ENABLED else None

agent_action = NegotiationAgentAction()


# =============================================================================
# QUEUED AGENT RUNS
# =============================================================================

async def agent_run_processor(payload: dict):
    """
    Handles one queued agent run: {"negotiationId": ..., "bypass": {...}}
    """
    logger.info("="*60)
    logger.info("AGENT RUN RECEIVED FROM QUEUE")
    logger.info("="*60)

    try:
        negotiation_id = payload["negotiationId"]
        bypass = BypassFlags.model_validate(payload.get("bypass") or {})

        result = await agent_action.run_agent(negotiation_id, bypass.model_dump())
        logger.info(f"Queued run finished for {negotiation_id}: {result.final_action.value}")
        logger.info("="*60)
        return result

    except (httpx.HTTPError, NegotiationStoreError) as e:
        logger.error(f"Store error: {e}")
        return e

    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return e

    except KeyError as e:
        logger.error(f"Missing field: {e}")
        return e

    except Exception as e:
        logger.exception(f"Unexpected error: {repr(e)}")
        return e


# ------------------------------
# Lifespan (startup / shutdown)
# ------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    if rabbit_mq_manager is None:
        logger.info("Agent run queue disabled")
        yield
        return

    logger.info("Attempting RabbitMQ connection...")
    await rabbit_mq_manager.connect()
    app.state.consumer_task = asyncio.create_task(
        rabbit_mq_manager.consume(agent_run_processor)
    )
    logger.info("Connected")
    yield

    # Shutdown
    rabbit_mq_manager.should_reconnect = False
    app.state.consumer_task.cancel()
    try:
        await app.state.consumer_task
    except asyncio.CancelledError:
        pass

    await rabbit_mq_manager.disconnect()


# ------------------------------
# FastAPI instance (SINGLE)
# ------------------------------
app = FastAPI(
    title="Freight Negotiation Agent",
    description="APIs for running the freight negotiation agent",
    version="0.1.0",
    lifespan=lifespan
)


# ------------------------------
# Middleware
# ------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------------
# Routers
# ------------------------------
negotiation_router = NegotiationController(action=agent_action, publisher=rabbit_mq_manager).router
app.include_router(negotiation_router)


@app.get("/")
def read_root():
    return {"status": "ok", "service": "freight-negotiation-agent"}
