import logging
from typing import Any, Dict, Optional

import httpx

from config import AppConfig
from constant.enum import AgentStatus, MessageSender, NotificationType
from core.auth_client import AuthApiClient
from core.exceptions import NegotiationStoreError
from schemas.negotiation import AgentPolicy, NegotiationSnapshot


class NegotiationStore:
    """ NEGOTIATION STORE INTEGRATION """

    def __init__(self, client: Optional[AuthApiClient] = None):
        config = AppConfig()
        self.client = client or AuthApiClient(config.NEGOTIATION_STORE_URL, config.APP_KEY)
        self.logger = logging.getLogger(__name__)

    def _unwrap(self, response: httpx.Response) -> Any:
        try:
            json_resp = response.json()
        except ValueError as e:
            raise NegotiationStoreError(
                f"Store returned a non-JSON response ({response.status_code}): {response.text[:200]}") from e

        if not isinstance(json_resp, dict) or "data" not in json_resp:
            raise NegotiationStoreError(json_resp)

        return json_resp["data"]

    # READS
    async def get_negotiation(self, negotiation_id: str) -> Optional[NegotiationSnapshot]:
        response = self.client.get(endpoint=f'negotiations/{negotiation_id}')
        data = self._unwrap(response)
        if data is None:
            self.logger.warning(f"Negotiation {negotiation_id} not found")
            return None

        return NegotiationSnapshot.model_validate(data)

    async def get_agent_configuration(self, negotiation_id: str) -> Optional[AgentPolicy]:
        response = self.client.get(endpoint=f'negotiations/{negotiation_id}/agent-configuration')
        data = self._unwrap(response)
        if data is None:
            self.logger.info(f"No agent configuration for {negotiation_id}, using defaults")
            return None

        return AgentPolicy.model_validate(data)

    # WRITES (agent run action only)
    async def update_current_price(self, negotiation_id: str, price_str: Optional[str]):
        response = self.client.patch(
            endpoint=f'negotiations/{negotiation_id}/current-price',
            json_data={"currentPrice": price_str})
        return self._unwrap(response)

    async def increment_agent_reply_count(self, negotiation_id: str) -> int:
        response = self.client.post(endpoint=f'negotiations/{negotiation_id}/agent-reply-count/increment')
        return self._unwrap(response)

    async def add_agent_message(self, negotiation_id: str, content: str):
        response = self.client.post(
            endpoint=f'negotiations/{negotiation_id}/messages',
            json_data={"sender": MessageSender.AGENT.value, "content": content})
        return self._unwrap(response)

    async def update_agent_status(self, negotiation_id: str, status: Optional[AgentStatus],
                                  reason: Optional[str] = None):
        """A None status clears the agent state (normal operation)"""
        response = self.client.patch(
            endpoint=f'negotiations/{negotiation_id}/agent-status',
            json_data={"status": status.value if status else None, "reason": reason})
        return self._unwrap(response)

    async def create_notification(self, user_id: Optional[str], notification_type: NotificationType,
                                  title: str, content: str, source_id: str, source_name: str):
        payload: Dict[str, Any] = {
            "userId": user_id,
            "type": notification_type.value,
            "title": title,
            "content": content,
            "sourceId": source_id,
            "sourceName": source_name,
        }
        response = self.client.post(endpoint='notifications', json_data=payload)
        return self._unwrap(response)
