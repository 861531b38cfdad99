"""
Language service capabilities used by the negotiation pipeline.

Two separate interfaces: analysis returns a JSON object, generation returns
free text. The pipeline receives them at construction, so tests can pass
deterministic stubs and production passes the OpenAI-backed versions below.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol

from langchain_core.exceptions import OutputParserException
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_core.output_parsers import JsonOutputParser, StrOutputParser
from openai import OpenAIError

from config import AppConfig
from core.exceptions import LanguageServiceError
from core.openai import get_llm

logger = logging.getLogger(__name__)


class AnalysisService(Protocol):
    def analyze(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        ...


class GenerationService(Protocol):
    def generate(self, messages: List[BaseMessage]) -> str:
        ...


class OpenAIAnalysisService:
    """Structured analysis call, low temperature, JSON object output."""

    def __init__(self, llm: Optional[BaseChatModel] = None,
                 model: str = AppConfig.ANALYSIS_MODEL,
                 temperature: float = AppConfig.ANALYSIS_TEMPERATURE):
        self._llm = llm
        self.model = model
        self.temperature = temperature
        self.parser = JsonOutputParser()

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = get_llm(self.model, self.temperature)
        return self._llm

    def analyze(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        chain = self.llm.bind(response_format={"type": "json_object"}) | self.parser
        try:
            result = chain.invoke([SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)])
        except (OpenAIError, OutputParserException) as e:
            raise LanguageServiceError(f"Analysis call failed: {e}") from e

        if not isinstance(result, dict):
            raise LanguageServiceError(f"Analysis response is not a JSON object: {result!r}")

        return result


class OpenAIGenerationService:
    """Free-text drafting call over a role-tagged message sequence."""

    def __init__(self, llm: Optional[BaseChatModel] = None,
                 model: str = AppConfig.GENERATION_MODEL,
                 temperature: float = AppConfig.GENERATION_TEMPERATURE):
        self._llm = llm
        self.model = model
        self.temperature = temperature

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = get_llm(self.model, self.temperature)
        return self._llm

    def generate(self, messages: List[BaseMessage]) -> str:
        chain = self.llm | StrOutputParser()
        try:
            return chain.invoke(messages).strip()
        except OpenAIError as e:
            raise LanguageServiceError(f"Generation call failed: {e}") from e
