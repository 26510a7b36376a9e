"""
Moz connector

Two Moz surfaces are used:
- JSON-RPC (api.moz.com) for keyword metrics: volume, difficulty, organic CTR
- Links API v2 (lsapi.seomoz.com) for URL authority: DA, PA, spam score

Each keyword or URL costs one Moz credit.
"""
from typing import Any, Dict, List, Optional
import uuid
import httpx

from adpilot.connectors.base_connector import BaseConnector, ConnectorError
from adpilot.config import get_settings
from adpilot.utils.logger import log

JSONRPC_URL = "https://api.moz.com/jsonrpc"
URL_METRICS_URL = "https://lsapi.seomoz.com/v2/url_metrics"


class MozConnector(BaseConnector):
    """Connector for the Moz keyword and links APIs"""

    def __init__(self, token: Optional[str] = None, timeout: float = 30.0):
        super().__init__("Moz")
        self.token = token if token is not None else get_settings().moz_api_token
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.token)

    async def validate_connection(self) -> bool:
        try:
            await self.fetch_keyword_metrics("google ads")
            return True
        except ConnectorError as e:
            log.error(f"Moz connection validation failed: {e}")
            return False

    async def _rpc(self, method: str, params: Dict) -> Dict[str, Any]:
        if not self.is_configured:
            raise ConnectorError(self.name, "Moz API token not configured")

        payload = {
            "jsonrpc": "2.0",
            "id": f"adpilot-{uuid.uuid4().hex[:12]}",
            "method": method,
            "params": params,
        }

        async def call():
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    JSONRPC_URL,
                    json=payload,
                    headers={"x-moz-token": self.token},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.json()

        try:
            data = await self._retry_operation(call, operation_name=method)
        except httpx.HTTPError as e:
            raise ConnectorError(self.name, str(e))

        if data.get("error"):
            raise ConnectorError(self.name, data["error"].get("message") or "Moz API error")
        return data.get("result") or {}

    async def fetch_keyword_metrics(self, keyword: str, locale: str = "en-US", device: str = "desktop") -> Dict:
        """Returns {keyword, volume, difficulty, organic_ctr, priority}"""
        result = await self._rpc("data.keyword.metrics.fetch", {
            "data": {
                "serp_query": {
                    "keyword": keyword,
                    "locale": locale,
                    "engine": "google",
                    "device": device,
                }
            }
        })
        metrics = result.get("keyword_metrics") or {}
        return {
            "keyword": keyword,
            "volume": metrics.get("volume"),
            "difficulty": metrics.get("difficulty"),
            "organic_ctr": metrics.get("organic_ctr"),
            "priority": metrics.get("priority"),
        }

    async def fetch_url_metrics(self, urls: List[str]) -> List[Dict]:
        """Links API url_metrics for up to 50 targets"""
        if not self.is_configured:
            raise ConnectorError(self.name, "Moz API token not configured")

        async def call():
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    URL_METRICS_URL,
                    json={"targets": urls},
                    headers={"Authorization": f"Basic {self.token}"},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.json()

        try:
            data = await self._retry_operation(call, operation_name="url_metrics")
        except httpx.HTTPStatusError as e:
            raise ConnectorError(self.name, f"HTTP {e.response.status_code}", e.response.status_code)
        except httpx.HTTPError as e:
            raise ConnectorError(self.name, str(e))

        results = data.get("results") or []
        return [
            {
                "url": item.get("page") or (urls[i] if i < len(urls) else None),
                "domain_authority": item.get("domain_authority"),
                "page_authority": item.get("page_authority"),
                "spam_score": item.get("spam_score"),
                "root_domains_to_root_domain": item.get("root_domains_to_root_domain"),
                "external_pages_to_page": item.get("external_pages_to_page"),
            }
            for i, item in enumerate(results)
        ]
