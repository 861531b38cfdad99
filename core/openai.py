from typing import Dict, Tuple

from langchain_openai import ChatOpenAI
from config import AppConfig as Settings
import structlog

logger = structlog.get_logger(__name__)


class OpenAIClientManager:
    """Shares one chat client per (model, temperature) across the analysis and generation services."""

    _chat_clients: Dict[Tuple[str, float], ChatOpenAI] = {}

    @classmethod
    def get_chat_client(cls, model: str, temperature: float) -> ChatOpenAI:
        key = (model, float(temperature))

        if key not in cls._chat_clients:
            if not Settings.OPENAI_API_KEY:
                raise ValueError(
                    "OpenAI API key is not set. Please check your .env file.")

            cls._chat_clients[key] = ChatOpenAI(
                model=model,
                temperature=temperature,
                api_key=Settings.OPENAI_API_KEY,
                max_retries=Settings.OPENAI_MAX_RETRIES
            )
            logger.info("chat_client_created", model=model, temperature=temperature)

        return cls._chat_clients[key]

    @classmethod
    def reset(cls):
        """Drop cached clients, e.g. after the API key changed."""
        cls._chat_clients.clear()
        logger.info("chat_clients_reset")


def get_llm(model: str = Settings.GENERATION_MODEL, temperature: float = Settings.GENERATION_TEMPERATURE) -> ChatOpenAI:
    return OpenAIClientManager.get_chat_client(model, temperature)
