"""
DataForSEO connector

SERP composition (organic/live/advanced), Google Ads search volume,
Labs keyword difficulty and search intent, and account balance. All endpoints take a JSON
array of tasks and answer with {status_code, tasks[{status_code, result}]};
20000 means OK at both levels.
"""
from typing import Any, Dict, List, Optional
import httpx

from adpilot.connectors.base_connector import BaseConnector, ConnectorError
from adpilot.config import get_settings
from adpilot.utils.helpers import chunk_list
from adpilot.utils.logger import log

API_URL = "https://api.dataforseo.com/v3"
STATUS_OK = 20000

SEARCH_VOLUME_BATCH_SIZE = 100
KEYWORD_DIFFICULTY_BATCH_SIZE = 1000
SEARCH_INTENT_BATCH_SIZE = 1000


class DataForSEOConnector(BaseConnector):
    """Connector for the DataForSEO REST API"""

    def __init__(self, login: Optional[str] = None, password: Optional[str] = None, timeout: float = 60.0):
        super().__init__("DataForSEO")
        settings = get_settings()
        self.login = login if login is not None else settings.dataforseo_login
        self.password = password if password is not None else settings.dataforseo_password
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.login and self.password)

    async def _request(self, method: str, path: str, body: Optional[List[Dict]] = None) -> Dict[str, Any]:
        if not self.is_configured:
            raise ConnectorError(self.name, "DataForSEO credentials not configured")

        async def call():
            async with httpx.AsyncClient(auth=(self.login, self.password)) as client:
                response = await client.request(method, f"{API_URL}{path}", json=body, timeout=self.timeout)
                response.raise_for_status()
                return response.json()

        try:
            data = await self._retry_operation(call, operation_name=path)
        except httpx.HTTPStatusError as e:
            raise ConnectorError(self.name, f"HTTP {e.response.status_code}: {e.response.text[:200]}",
                                 e.response.status_code)
        except httpx.HTTPError as e:
            raise ConnectorError(self.name, str(e))

        if data.get("status_code") != STATUS_OK:
            raise ConnectorError(self.name, data.get("status_message") or "Unknown DataForSEO error")
        return data

    @staticmethod
    def _first_task_result(data: Dict) -> List[Dict]:
        tasks = data.get("tasks") or []
        if not tasks:
            return []
        task = tasks[0]
        if task.get("status_code") not in (None, STATUS_OK):
            raise ConnectorError("DataForSEO", task.get("status_message") or "Task failed")
        return task.get("result") or []

    async def validate_connection(self) -> bool:
        try:
            await self.get_balance()
            return True
        except ConnectorError as e:
            log.error(f"DataForSEO connection validation failed: {e}")
            return False

    async def get_balance(self) -> float:
        """Remaining account balance in USD"""
        data = await self._request("GET", "/user/info")
        result = self._first_task_result(data)
        if not result:
            return 0.0
        return float((result[0].get("money") or {}).get("balance") or 0.0)

    async def fetch_serp(self, keyword: str, location_code: int = 2840, device: str = "desktop",
                         language_code: str = "en") -> Optional[Dict]:
        """Raw advanced SERP result for one keyword, or None when empty"""
        body = [{
            "keyword": keyword,
            "location_code": int(location_code),
            "language_code": language_code,
            "device": device,
            "os": "android" if device == "mobile" else "windows",
        }]
        data = await self._request("POST", "/serp/google/organic/live/advanced", body)
        result = self._first_task_result(data)
        return result[0] if result else None

    async def fetch_search_volume(self, keywords: List[str], location_code: int = 2840,
                                  language_code: str = "en") -> Dict[str, Dict]:
        """
        Google Ads search volume for keywords, 100 per request.

        Returns:
            {keyword_lower: {search_volume, cpc, competition, monthly_searches}}
        """
        metrics = {}
        for batch in chunk_list(keywords, SEARCH_VOLUME_BATCH_SIZE):
            body = [{
                "keywords": batch,
                "location_code": int(location_code),
                "language_code": language_code,
                "include_serp_info": False,
                "include_clickstream_data": False,
            }]
            data = await self._request("POST", "/keywords_data/google_ads/search_volume/live", body)
            for item in self._first_task_result(data):
                if not item.get("keyword"):
                    continue
                metrics[item["keyword"].lower()] = {
                    "search_volume": item.get("search_volume"),
                    "cpc": item.get("cpc"),
                    "competition": item.get("competition"),
                    "monthly_searches": item.get("monthly_searches"),
                }
        log.info(f"Fetched DataForSEO search volume for {len(metrics)}/{len(keywords)} keywords")
        return metrics

    async def fetch_keyword_difficulty(self, keywords: List[str], location_code: int = 2840,
                                       language_code: str = "en") -> Dict[str, Optional[int]]:
        """Labs keyword difficulty (0-100) keyed by lowercased keyword"""
        difficulties = {}
        for batch in chunk_list(keywords, KEYWORD_DIFFICULTY_BATCH_SIZE):
            body = [{
                "keywords": batch,
                "location_code": int(location_code),
                "language_code": language_code,
            }]
            data = await self._request("POST", "/dataforseo_labs/google/bulk_keyword_difficulty/live", body)
            result = self._first_task_result(data)
            items = (result[0].get("items") or []) if result else []
            for item in items:
                if item.get("keyword"):
                    difficulties[item["keyword"].lower()] = item.get("keyword_difficulty")
        return difficulties

    async def fetch_search_intent(self, keywords: List[str], language_code: str = "en") -> Dict[str, Dict]:
        """
        Labs search intent keyed by lowercased keyword.

        Returns:
            {keyword_lower: {intent, probability, secondary: [{intent, probability}]}}
        """
        intents = {}
        for batch in chunk_list(keywords, SEARCH_INTENT_BATCH_SIZE):
            body = [{"keywords": batch, "language_code": language_code}]
            data = await self._request("POST", "/dataforseo_labs/google/search_intent/live", body)
            result = self._first_task_result(data)
            items = (result[0].get("items") or []) if result else []
            for item in items:
                primary = item.get("keyword_intent") or {}
                if not item.get("keyword") or not primary.get("label"):
                    continue
                intents[item["keyword"].lower()] = {
                    "intent": primary["label"].lower(),
                    "probability": primary.get("probability") or 0,
                    "secondary": [
                        {"intent": s["label"].lower(), "probability": s.get("probability")}
                        for s in item.get("secondary_keyword_intents") or [] if s.get("label")
                    ],
                }
        log.info(f"Fetched DataForSEO search intent for {len(intents)}/{len(keywords)} keywords")
        return intents
