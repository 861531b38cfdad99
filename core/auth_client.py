import httpx
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class AuthApiClient:
    """
    HTTP client for the negotiation store API.
    Adds the machine-to-machine bearer token to every request.
    """

    def __init__(self, base_url: str, app_key: str, timeout: Optional[float] = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.app_key = app_key
        self.default_timeout = timeout
        self.transport = transport

    def _prepare_headers(self, additional_headers: Optional[Dict] = None) -> Dict[str, str]:
        """Prepare headers with bearer token"""
        headers = {
            'Authorization': f'Bearer {self.app_key}',
            'Content-Type': 'application/json'
        }
        if additional_headers:
            headers.update(additional_headers)

        return headers

    def _client(self, timeout: Optional[float]) -> httpx.Client:
        return httpx.Client(timeout=timeout or self.default_timeout, transport=self.transport)

    def get(self, endpoint: str, params: Optional[Dict] = None, headers: Optional[Dict] = None,
            timeout: Optional[float] = None) -> httpx.Response:
        url = f"{self.base_url}/{endpoint}"
        logger.debug(f"GET {url}")
        with self._client(timeout) as client:
            return client.get(url, params=params, headers=self._prepare_headers(headers))

    def post(self, endpoint: str, json_data: Optional[Dict[str, Any]] = None,
             headers: Optional[Dict] = None, timeout: Optional[float] = None) -> httpx.Response:
        url = f"{self.base_url}/{endpoint}"
        logger.debug(f"POST {url}")
        with self._client(timeout) as client:
            return client.post(url, json=json_data, headers=self._prepare_headers(headers))

    def patch(self, endpoint: str, json_data: Optional[Dict[str, Any]] = None,
              headers: Optional[Dict] = None, timeout: Optional[float] = None) -> httpx.Response:
        url = f"{self.base_url}/{endpoint}"
        logger.debug(f"PATCH {url}")
        with self._client(timeout) as client:
            return client.patch(url, json=json_data, headers=self._prepare_headers(headers))
