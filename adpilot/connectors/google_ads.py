"""
Google Ads connector

Per-account client around the google-ads library: GAQL reads for campaigns,
ad groups, keywords, ads, negative keywords and daily metrics, Keyword Planner
historical metrics, and the handful of mutations the dashboard and automated rules perform.

Reads raise ConnectorError on API failure. Writes never raise for API
rejections; they return {"success": False, "error": "..."} instead.
"""
from typing import Any, Dict, List, Optional
from datetime import date
from google.ads.googleads.client import GoogleAdsClient
from google.ads.googleads.errors import GoogleAdsException

from adpilot.connectors.base_connector import BaseConnector, ConnectorError
from adpilot.config import get_settings
from adpilot.utils.helpers import chunk_list, keyword_entity_id, normalize_customer_id
from adpilot.utils.logger import log

MICROS = 1_000_000

# Criterion ids for Keyword Planner languages
LANGUAGE_IDS = {
    "en": "1000", "de": "1001", "fr": "1002", "es": "1003", "it": "1004",
    "ja": "1005", "nl": "1010", "pt": "1014", "ar": "1019",
}

ENTITY_RESOURCES = {
    "CAMPAIGN": "campaign",
    "AD_GROUP": "ad_group",
    "KEYWORD": "keyword_view",
    "AD": "ad_group_ad",
}


def _error_message(error: Exception) -> str:
    """First error message from a GoogleAdsException, else str(error)"""
    if isinstance(error, GoogleAdsException):
        try:
            return error.failure.errors[0].message
        except (AttributeError, IndexError):
            pass
    return str(error)


class GoogleAdsConnector(BaseConnector):
    """Connector for one Google Ads customer"""

    def __init__(self, refresh_token: str, customer_id: str, login_customer_id: Optional[str] = None):
        super().__init__("Google Ads")
        self.settings = get_settings()
        self.refresh_token = refresh_token
        self.customer_id = normalize_customer_id(customer_id)
        self.login_customer_id = normalize_customer_id(login_customer_id) if login_customer_id else None
        self.client = None

    @property
    def is_configured(self) -> bool:
        return bool(
            self.settings.google_ads_developer_token
            and self.settings.google_ads_client_id
            and self.settings.google_ads_client_secret
            and self.refresh_token
        )

    def connect(self) -> GoogleAdsClient:
        """Build the client lazily; credentials are only checked on first call"""
        if self.client is not None:
            return self.client
        if not self.is_configured:
            raise ConnectorError(self.name, "Google Ads credentials not configured")

        credentials = {
            "developer_token": self.settings.google_ads_developer_token,
            "client_id": self.settings.google_ads_client_id,
            "client_secret": self.settings.google_ads_client_secret,
            "refresh_token": self.refresh_token,
            "use_proto_plus": True,
        }
        if self.login_customer_id:
            credentials["login_customer_id"] = self.login_customer_id

        self.client = GoogleAdsClient.load_from_dict(credentials)
        log.info(f"Connected to Google Ads API for customer {self.customer_id}")
        return self.client

    async def validate_connection(self) -> bool:
        try:
            await self._search("SELECT customer.id FROM customer LIMIT 1")
            return True
        except ConnectorError as e:
            log.error(f"Google Ads connection validation failed: {e}")
            return False

    async def _search(self, query: str, operation_name: str = "search") -> List[Any]:
        client = self.connect()
        ga_service = client.get_service("GoogleAdsService")
        try:
            return await self._retry_operation(
                lambda: list(ga_service.search(customer_id=self.customer_id, query=query)),
                operation_name=operation_name,
            )
        except GoogleAdsException as e:
            raise ConnectorError(self.name, _error_message(e))

    @staticmethod
    def _date_clause(start_date: date, end_date: date) -> str:
        return f"segments.date BETWEEN '{start_date:%Y-%m-%d}' AND '{end_date:%Y-%m-%d}'"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_campaigns(self, start_date: date, end_date: date) -> List[Dict]:
        """Campaign totals for the range, highest spend first"""
        query = f"""
            SELECT
                campaign.id,
                campaign.name,
                campaign.status,
                campaign.advertising_channel_type,
                campaign_budget.amount_micros,
                metrics.impressions,
                metrics.clicks,
                metrics.cost_micros,
                metrics.conversions,
                metrics.conversions_value,
                metrics.ctr,
                metrics.average_cpc
            FROM campaign
            WHERE campaign.status != 'REMOVED'
                AND {self._date_clause(start_date, end_date)}
            ORDER BY metrics.cost_micros DESC
        """
        rows = await self._search(query, "fetch_campaigns")

        campaigns = []
        for row in rows:
            spend = row.metrics.cost_micros / MICROS
            clicks = row.metrics.clicks
            impressions = row.metrics.impressions
            conversions = row.metrics.conversions
            conversions_value = row.metrics.conversions_value
            campaigns.append({
                "id": str(row.campaign.id),
                "name": row.campaign.name,
                "status": row.campaign.status.name,
                "type": row.campaign.advertising_channel_type.name,
                "budget": row.campaign_budget.amount_micros / MICROS if row.campaign_budget.amount_micros else None,
                "spend": spend,
                "clicks": clicks,
                "impressions": impressions,
                "conversions": conversions,
                "conversions_value": conversions_value,
                "ctr": row.metrics.ctr * 100 if row.metrics.ctr else (clicks / impressions * 100 if impressions else 0),
                "cpa": spend / conversions if conversions else 0,
                "roas": conversions_value / spend if spend else 0,
            })

        log.info(f"Fetched {len(campaigns)} campaigns from Google Ads for {self.customer_id}")
        return campaigns

    async def fetch_ad_groups(self, campaign_id: str, start_date: date, end_date: date) -> List[Dict]:
        query = f"""
            SELECT
                ad_group.id,
                ad_group.name,
                ad_group.status,
                ad_group.cpc_bid_micros,
                metrics.impressions,
                metrics.clicks,
                metrics.conversions,
                metrics.conversions_value,
                metrics.cost_micros
            FROM ad_group
            WHERE ad_group.campaign = 'customers/{self.customer_id}/campaigns/{campaign_id}'
                AND ad_group.status != 'REMOVED'
                AND {self._date_clause(start_date, end_date)}
            ORDER BY metrics.cost_micros DESC
        """
        rows = await self._search(query, "fetch_ad_groups")

        ad_groups = []
        for row in rows:
            spend = row.metrics.cost_micros / MICROS
            clicks = row.metrics.clicks
            impressions = row.metrics.impressions
            conversions = row.metrics.conversions
            ad_groups.append({
                "id": str(row.ad_group.id),
                "campaign_id": str(campaign_id),
                "name": row.ad_group.name,
                "status": row.ad_group.status.name,
                "cpc_bid": row.ad_group.cpc_bid_micros / MICROS if row.ad_group.cpc_bid_micros else None,
                "impressions": impressions,
                "clicks": clicks,
                "conversions": conversions,
                "conversions_value": row.metrics.conversions_value,
                "spend": spend,
                "ctr": clicks / impressions * 100 if impressions else 0,
                "cpa": spend / conversions if conversions else 0,
                "roas": row.metrics.conversions_value / spend if spend else 0,
            })
        return ad_groups

    async def fetch_keywords(self, ad_group_id: str, start_date: date, end_date: date) -> List[Dict]:
        query = f"""
            SELECT
                ad_group_criterion.criterion_id,
                ad_group_criterion.keyword.text,
                ad_group_criterion.keyword.match_type,
                ad_group_criterion.status,
                ad_group_criterion.quality_info.quality_score,
                ad_group_criterion.effective_cpc_bid_micros,
                ad_group.id,
                campaign.id,
                metrics.impressions,
                metrics.clicks,
                metrics.conversions,
                metrics.conversions_value,
                metrics.cost_micros
            FROM keyword_view
            WHERE ad_group.id = {int(ad_group_id)}
                AND ad_group_criterion.status != 'REMOVED'
                AND {self._date_clause(start_date, end_date)}
            ORDER BY metrics.cost_micros DESC
        """
        rows = await self._search(query, "fetch_keywords")

        keywords = []
        for row in rows:
            criterion = row.ad_group_criterion
            spend = row.metrics.cost_micros / MICROS
            clicks = row.metrics.clicks
            impressions = row.metrics.impressions
            conversions = row.metrics.conversions
            keywords.append({
                "id": str(criterion.criterion_id),
                "ad_group_id": str(row.ad_group.id),
                "campaign_id": str(row.campaign.id),
                "text": criterion.keyword.text,
                "match_type": criterion.keyword.match_type.name,
                "status": criterion.status.name,
                "quality_score": criterion.quality_info.quality_score or None,
                "cpc_bid": criterion.effective_cpc_bid_micros / MICROS if criterion.effective_cpc_bid_micros else None,
                "impressions": impressions,
                "clicks": clicks,
                "conversions": conversions,
                "conversions_value": row.metrics.conversions_value,
                "spend": spend,
                "ctr": clicks / impressions * 100 if impressions else 0,
                "cpa": spend / conversions if conversions else 0,
                "roas": row.metrics.conversions_value / spend if spend else 0,
            })
        return keywords

    async def fetch_ads(self, ad_group_id: str, start_date: date, end_date: date) -> List[Dict]:
        """Ads in an ad group with responsive search ad copy and range totals"""
        query = f"""
            SELECT
                ad_group_ad.ad.id,
                ad_group_ad.ad.type,
                ad_group_ad.ad.final_urls,
                ad_group_ad.ad.responsive_search_ad.headlines,
                ad_group_ad.ad.responsive_search_ad.descriptions,
                ad_group_ad.ad.responsive_search_ad.path1,
                ad_group_ad.ad.responsive_search_ad.path2,
                ad_group_ad.status,
                ad_group.id,
                campaign.id,
                metrics.impressions,
                metrics.clicks,
                metrics.conversions,
                metrics.conversions_value,
                metrics.cost_micros
            FROM ad_group_ad
            WHERE ad_group.id = {int(ad_group_id)}
                AND ad_group_ad.status != 'REMOVED'
                AND {self._date_clause(start_date, end_date)}
            ORDER BY metrics.cost_micros DESC
        """
        rows = await self._search(query, "fetch_ads")

        ads = []
        for row in rows:
            ad = row.ad_group_ad.ad
            rsa = ad.responsive_search_ad
            spend = row.metrics.cost_micros / MICROS
            clicks = row.metrics.clicks
            impressions = row.metrics.impressions
            conversions = row.metrics.conversions
            ads.append({
                "id": str(ad.id),
                "ad_group_id": str(row.ad_group.id),
                "campaign_id": str(row.campaign.id),
                "type": ad.type_.name,
                "status": row.ad_group_ad.status.name,
                "headlines": [h.text for h in rsa.headlines],
                "descriptions": [d.text for d in rsa.descriptions],
                "final_urls": list(ad.final_urls),
                "path1": rsa.path1 or None,
                "path2": rsa.path2 or None,
                "impressions": impressions,
                "clicks": clicks,
                "conversions": conversions,
                "conversions_value": row.metrics.conversions_value,
                "spend": spend,
                "ctr": clicks / impressions * 100 if impressions else 0,
                "cpa": spend / conversions if conversions else 0,
                "roas": row.metrics.conversions_value / spend if spend else 0,
            })
        return ads

    async def fetch_negative_keywords(self, campaign_id: Optional[str] = None) -> Dict[str, List[Dict]]:
        """
        Negative keywords at campaign level plus the account's shared negative lists.

        Returns:
            {"campaign": [{id, campaign_id, text, match_type}], "shared_lists": [{id, name, keyword_count}]}
        """
        campaign_filter = f"AND campaign.id = {int(campaign_id)}" if campaign_id else ""
        criteria = await self._search(f"""
            SELECT
                campaign_criterion.criterion_id,
                campaign_criterion.keyword.text,
                campaign_criterion.keyword.match_type,
                campaign.id
            FROM campaign_criterion
            WHERE campaign_criterion.negative = TRUE
                AND campaign_criterion.type = 'KEYWORD'
                {campaign_filter}
        """, "fetch_negative_keywords")
        shared = await self._search("""
            SELECT shared_set.id, shared_set.name, shared_set.member_count
            FROM shared_set
            WHERE shared_set.type = 'NEGATIVE_KEYWORDS'
                AND shared_set.status = 'ENABLED'
        """, "fetch_negative_keyword_lists")

        return {
            "campaign": [
                {
                    "id": str(row.campaign_criterion.criterion_id),
                    "campaign_id": str(row.campaign.id),
                    "text": row.campaign_criterion.keyword.text,
                    "match_type": row.campaign_criterion.keyword.match_type.name,
                }
                for row in criteria
            ],
            "shared_lists": [
                {
                    "id": str(row.shared_set.id),
                    "name": row.shared_set.name,
                    "keyword_count": row.shared_set.member_count,
                }
                for row in shared
            ],
        }

    async def fetch_daily_metrics(self, entity_type: str, start_date: date, end_date: date) -> List[Dict]:
        """
        One row per entity per day, in the shape MetricsService.cache_metrics expects.

        Args:
            entity_type: CAMPAIGN, AD_GROUP, KEYWORD or AD
        """
        if entity_type not in ENTITY_RESOURCES:
            raise ValueError(f"Unsupported entity type for daily metrics: {entity_type}")

        if entity_type == "CAMPAIGN":
            fields = "campaign.id, campaign.name, campaign.status"
            status_filter = "campaign.status != 'REMOVED'"
        elif entity_type == "AD_GROUP":
            fields = "ad_group.id, ad_group.name, ad_group.status, campaign.id"
            status_filter = "ad_group.status != 'REMOVED'"
        elif entity_type == "KEYWORD":
            fields = ("ad_group_criterion.criterion_id, ad_group_criterion.keyword.text, "
                      "ad_group_criterion.status, ad_group.id, campaign.id")
            status_filter = "ad_group_criterion.status != 'REMOVED'"
        else:
            fields = "ad_group_ad.ad.id, ad_group_ad.ad.name, ad_group_ad.ad.type, ad_group_ad.status, ad_group.id, campaign.id"
            status_filter = "ad_group_ad.status != 'REMOVED'"

        query = f"""
            SELECT
                {fields},
                segments.date,
                metrics.impressions,
                metrics.clicks,
                metrics.cost_micros,
                metrics.conversions,
                metrics.conversions_value,
                metrics.ctr,
                metrics.average_cpc
            FROM {ENTITY_RESOURCES[entity_type]}
            WHERE {status_filter}
                AND {self._date_clause(start_date, end_date)}
        """
        rows = await self._search(query, f"fetch_daily_metrics:{entity_type}")

        results = []
        for row in rows:
            if entity_type == "CAMPAIGN":
                entity = {
                    "entity_id": str(row.campaign.id),
                    "entity_name": row.campaign.name,
                    "status": row.campaign.status.name,
                    "parent_entity_id": None,
                    "campaign_id": str(row.campaign.id),
                    "ad_group_id": None,
                }
            elif entity_type == "AD_GROUP":
                entity = {
                    "entity_id": str(row.ad_group.id),
                    "entity_name": row.ad_group.name,
                    "status": row.ad_group.status.name,
                    "parent_entity_id": str(row.campaign.id),
                    "campaign_id": str(row.campaign.id),
                    "ad_group_id": str(row.ad_group.id),
                }
            elif entity_type == "KEYWORD":
                entity = {
                    "entity_id": keyword_entity_id(row.ad_group.id, row.ad_group_criterion.criterion_id),
                    "criterion_id": str(row.ad_group_criterion.criterion_id),
                    "entity_name": row.ad_group_criterion.keyword.text,
                    "status": row.ad_group_criterion.status.name,
                    "parent_entity_id": str(row.ad_group.id),
                    "campaign_id": str(row.campaign.id),
                    "ad_group_id": str(row.ad_group.id),
                }
            else:
                ad = row.ad_group_ad.ad
                entity = {
                    "entity_id": str(ad.id),
                    "entity_name": ad.name or f"{ad.type_.name} {ad.id}",
                    "status": row.ad_group_ad.status.name,
                    "parent_entity_id": str(row.ad_group.id),
                    "campaign_id": str(row.campaign.id),
                    "ad_group_id": str(row.ad_group.id),
                }
            entity.update({
                "date": row.segments.date,
                "impressions": row.metrics.impressions,
                "clicks": row.metrics.clicks,
                "cost_micros": row.metrics.cost_micros,
                "conversions": row.metrics.conversions,
                "conversions_value": row.metrics.conversions_value,
                "ctr": row.metrics.ctr,
                "average_cpc": row.metrics.average_cpc / MICROS if row.metrics.average_cpc else 0,
            })
            results.append(entity)

        log.info(f"Fetched {len(results)} daily {entity_type} rows for {self.customer_id}")
        return results

    async def fetch_keyword_planner_metrics(self, keywords: List[str], location_id: str = "2840",
                                            language: str = "en") -> Dict[str, Dict]:
        """
        Keyword Planner historical metrics.

        Returns:
            {keyword_lower: {search_volume, avg_cpc_micros, competition, competition_index}}
        """
        client = self.connect()
        idea_service = client.get_service("KeywordPlanIdeaService")
        ga_service = client.get_service("GoogleAdsService")
        geo_service = client.get_service("GeoTargetConstantService")

        request = client.get_type("GenerateKeywordHistoricalMetricsRequest")
        request.customer_id = self.customer_id
        request.keywords.extend(keywords)
        request.geo_target_constants.append(geo_service.geo_target_constant_path(location_id))
        request.language = ga_service.language_constant_path(LANGUAGE_IDS.get(language, language))
        request.keyword_plan_network = client.enums.KeywordPlanNetworkEnum.GOOGLE_SEARCH

        try:
            response = await self._retry_operation(
                lambda: idea_service.generate_keyword_historical_metrics(request=request),
                operation_name="keyword_planner",
            )
        except GoogleAdsException as e:
            raise ConnectorError(self.name, _error_message(e))

        metrics = {}
        for result in response.results:
            m = result.keyword_metrics
            low, high = m.low_top_of_page_bid_micros, m.high_top_of_page_bid_micros
            bids = [b for b in (low, high) if b]
            metrics[result.text.lower()] = {
                "search_volume": m.avg_monthly_searches,
                "avg_cpc_micros": int(sum(bids) / len(bids)) if bids else None,
                "competition": m.competition.name if m.competition.name in ("LOW", "MEDIUM", "HIGH") else None,
                "competition_index": m.competition_index / 100 if m.competition_index else None,
            }
        return metrics

    async def get_campaign_budget(self, campaign_id: str) -> Optional[Dict]:
        query = f"""
            SELECT campaign.id, campaign.name, campaign_budget.resource_name, campaign_budget.amount_micros
            FROM campaign
            WHERE campaign.id = {int(campaign_id)}
        """
        rows = await self._search(query, "get_campaign_budget")
        if not rows:
            return None
        row = rows[0]
        return {
            "campaign_id": str(row.campaign.id),
            "campaign_name": row.campaign.name,
            "resource_name": row.campaign_budget.resource_name,
            "amount": row.campaign_budget.amount_micros / MICROS,
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _mutate(self, service_name: str, method: str, operation, description: str) -> Dict:
        try:
            client = self.connect()
            service = client.get_service(service_name)
            response = getattr(service, method)(customer_id=self.customer_id, operations=[operation])
            log.info(f"Google Ads {description} succeeded for {self.customer_id}")
            return {"success": True, "resource_names": [r.resource_name for r in response.results]}
        except Exception as e:
            message = _error_message(e)
            log.error(f"Google Ads {description} failed for {self.customer_id}: {message}")
            return {"success": False, "error": message}

    def _update_status(self, service_name: str, method: str, operation_type: str, enum_name: str,
                       resource_name: str, status: str, description: str) -> Dict:
        if status not in ("ENABLED", "PAUSED"):
            return {"success": False, "error": f"Invalid status: {status}"}
        try:
            client = self.connect()
            operation = client.get_type(operation_type)
            entity = operation.update
            entity.resource_name = resource_name
            entity.status = getattr(getattr(client.enums, enum_name), status)
            client.copy_from(operation.update_mask, client.get_type("FieldMask")(paths=["status"]))
        except Exception as e:
            return {"success": False, "error": _error_message(e)}
        return self._mutate(service_name, method, operation, description)

    async def update_campaign_status(self, campaign_id: str, status: str) -> Dict:
        return self._update_status(
            "CampaignService", "mutate_campaigns", "CampaignOperation", "CampaignStatusEnum",
            f"customers/{self.customer_id}/campaigns/{campaign_id}", status,
            f"campaign {campaign_id} -> {status}",
        )

    async def update_ad_group_status(self, ad_group_id: str, status: str) -> Dict:
        return self._update_status(
            "AdGroupService", "mutate_ad_groups", "AdGroupOperation", "AdGroupStatusEnum",
            f"customers/{self.customer_id}/adGroups/{ad_group_id}", status,
            f"ad group {ad_group_id} -> {status}",
        )

    async def update_keyword_status(self, ad_group_id: str, keyword_id: str, status: str) -> Dict:
        return self._update_status(
            "AdGroupCriterionService", "mutate_ad_group_criteria", "AdGroupCriterionOperation",
            "AdGroupCriterionStatusEnum",
            f"customers/{self.customer_id}/adGroupCriteria/{ad_group_id}~{keyword_id}", status,
            f"keyword {keyword_id} -> {status}",
        )

    async def update_campaign_budget(self, campaign_id: str, amount: float) -> Dict:
        """Set the daily budget (currency units) of the campaign's budget"""
        try:
            budget = await self.get_campaign_budget(campaign_id)
        except ConnectorError as e:
            return {"success": False, "error": e.message}
        if not budget:
            return {"success": False, "error": f"Campaign {campaign_id} not found"}

        try:
            client = self.connect()
            operation = client.get_type("CampaignBudgetOperation")
            entity = operation.update
            entity.resource_name = budget["resource_name"]
            entity.amount_micros = int(round(amount * MICROS))
            client.copy_from(operation.update_mask, client.get_type("FieldMask")(paths=["amount_micros"]))
        except Exception as e:
            return {"success": False, "error": _error_message(e)}

        result = self._mutate("CampaignBudgetService", "mutate_campaign_budgets", operation,
                              f"budget {campaign_id} -> {amount:.2f}")
        if result["success"]:
            result["previous_amount"] = budget["amount"]
        return result

    async def update_keyword_bid(self, ad_group_id: str, keyword_id: str, cpc_bid: float) -> Dict:
        try:
            client = self.connect()
            operation = client.get_type("AdGroupCriterionOperation")
            entity = operation.update
            entity.resource_name = f"customers/{self.customer_id}/adGroupCriteria/{ad_group_id}~{keyword_id}"
            entity.cpc_bid_micros = int(round(cpc_bid * MICROS))
            client.copy_from(operation.update_mask, client.get_type("FieldMask")(paths=["cpc_bid_micros"]))
        except Exception as e:
            return {"success": False, "error": _error_message(e)}
        return self._mutate("AdGroupCriterionService", "mutate_ad_group_criteria", operation,
                            f"keyword {keyword_id} bid -> {cpc_bid:.2f}")

    async def create_keywords(self, ad_group_id: str, keywords: List[Dict]) -> Dict:
        """Add keywords ({text, match_type}) to an ad group; returns the new criterion ids"""
        try:
            client = self.connect()
            service = client.get_service("AdGroupCriterionService")
            operations = []
            for kw in keywords:
                operation = client.get_type("AdGroupCriterionOperation")
                criterion = operation.create
                criterion.ad_group = f"customers/{self.customer_id}/adGroups/{ad_group_id}"
                criterion.status = client.enums.AdGroupCriterionStatusEnum.ENABLED
                criterion.keyword.text = kw["text"]
                criterion.keyword.match_type = getattr(
                    client.enums.KeywordMatchTypeEnum, (kw.get("match_type") or "BROAD").upper()
                )
                operations.append(operation)

            response = service.mutate_ad_group_criteria(customer_id=self.customer_id, operations=operations)
            ids = [r.resource_name.split("~")[-1] for r in response.results]
            log.info(f"Created {len(ids)} keywords in ad group {ad_group_id}")
            return {"success": True, "keyword_ids": ids}
        except Exception as e:
            message = _error_message(e)
            log.error(f"Failed to create keywords in ad group {ad_group_id}: {message}")
            return {"success": False, "error": message, "keyword_ids": []}

    async def remove_keyword(self, ad_group_id: str, keyword_id: str) -> Dict:
        try:
            client = self.connect()
            operation = client.get_type("AdGroupCriterionOperation")
            operation.remove = f"customers/{self.customer_id}/adGroupCriteria/{ad_group_id}~{keyword_id}"
        except Exception as e:
            return {"success": False, "error": _error_message(e)}
        return self._mutate("AdGroupCriterionService", "mutate_ad_group_criteria", operation,
                            f"remove keyword {keyword_id}")

    async def update_ad_status(self, ad_group_id: str, ad_id: str, status: str) -> Dict:
        return self._update_status(
            "AdGroupAdService", "mutate_ad_group_ads", "AdGroupAdOperation", "AdGroupAdStatusEnum",
            f"customers/{self.customer_id}/adGroupAds/{ad_group_id}~{ad_id}", status,
            f"ad {ad_id} -> {status}",
        )

    async def create_responsive_search_ad(self, ad_group_id: str, headlines: List[str], descriptions: List[str],
                                          final_urls: List[str], path1: Optional[str] = None,
                                          path2: Optional[str] = None, status: str = "PAUSED") -> Dict:
        """New ads start paused unless status says otherwise"""
        try:
            client = self.connect()
            operation = client.get_type("AdGroupAdOperation")
            ad_group_ad = operation.create
            ad_group_ad.ad_group = f"customers/{self.customer_id}/adGroups/{ad_group_id}"
            ad_group_ad.status = getattr(client.enums.AdGroupAdStatusEnum, status)
            ad = ad_group_ad.ad
            ad.final_urls.extend(final_urls)
            for text in headlines:
                asset = client.get_type("AdTextAsset")
                asset.text = text
                ad.responsive_search_ad.headlines.append(asset)
            for text in descriptions:
                asset = client.get_type("AdTextAsset")
                asset.text = text
                ad.responsive_search_ad.descriptions.append(asset)
            if path1:
                ad.responsive_search_ad.path1 = path1
            if path2:
                ad.responsive_search_ad.path2 = path2
        except Exception as e:
            return {"success": False, "error": _error_message(e)}

        result = self._mutate("AdGroupAdService", "mutate_ad_group_ads", operation,
                              f"create ad in ad group {ad_group_id}")
        if result["success"]:
            result["ad_id"] = result["resource_names"][0].split("~")[-1]
        return result

    async def add_negative_keywords(self, level: str, keywords: List[str], match_type: str = "EXACT",
                                    campaign_id: Optional[str] = None, ad_group_id: Optional[str] = None,
                                    list_id: Optional[str] = None, list_name: Optional[str] = None) -> Dict:
        """
        Add negative keywords at account (shared list), campaign or ad group level.

        Account level adds to list_id, or creates a list named list_name and
        links it to every enabled campaign.
        """
        if level == "campaign" and not campaign_id:
            return {"success": False, "error": "campaign_id is required for campaign level negatives"}
        if level == "ad_group" and not ad_group_id:
            return {"success": False, "error": "ad_group_id is required for ad group level negatives"}
        if level not in ("account", "campaign", "ad_group"):
            return {"success": False, "error": f"Invalid level: {level}"}

        try:
            client = self.connect()
            match = getattr(client.enums.KeywordMatchTypeEnum, match_type.upper())
            linked = []

            if level == "account":
                shared_set_service = client.get_service("SharedSetService")
                if list_id:
                    shared_set = shared_set_service.shared_set_path(self.customer_id, list_id)
                else:
                    operation = client.get_type("SharedSetOperation")
                    operation.create.name = list_name or "Negative keywords"
                    operation.create.type_ = client.enums.SharedSetTypeEnum.NEGATIVE_KEYWORDS
                    response = shared_set_service.mutate_shared_sets(
                        customer_id=self.customer_id, operations=[operation])
                    shared_set = response.results[0].resource_name
                    linked = await self._link_shared_set(shared_set)

                service, method, chunk_size = client.get_service("SharedCriterionService"), "mutate_shared_criteria", 500
                operations = []
                for text in keywords:
                    operation = client.get_type("SharedCriterionOperation")
                    operation.create.shared_set = shared_set
                    operation.create.keyword.text = text
                    operation.create.keyword.match_type = match
                    operations.append(operation)
            elif level == "campaign":
                service, method, chunk_size = client.get_service("CampaignCriterionService"), "mutate_campaign_criteria", 200
                operations = []
                for text in keywords:
                    operation = client.get_type("CampaignCriterionOperation")
                    operation.create.campaign = f"customers/{self.customer_id}/campaigns/{campaign_id}"
                    operation.create.negative = True
                    operation.create.keyword.text = text
                    operation.create.keyword.match_type = match
                    operations.append(operation)
            else:
                service, method, chunk_size = client.get_service("AdGroupCriterionService"), "mutate_ad_group_criteria", 200
                operations = []
                for text in keywords:
                    operation = client.get_type("AdGroupCriterionOperation")
                    operation.create.ad_group = f"customers/{self.customer_id}/adGroups/{ad_group_id}"
                    operation.create.negative = True
                    operation.create.keyword.text = text
                    operation.create.keyword.match_type = match
                    operations.append(operation)

            added = 0
            for chunk in chunk_list(operations, chunk_size):
                response = getattr(service, method)(customer_id=self.customer_id, operations=chunk)
                added += len(response.results)
        except Exception as e:
            message = _error_message(e)
            log.error(f"Failed to add {level} negative keywords for {self.customer_id}: {message}")
            return {"success": False, "error": message}

        log.info(f"Added {added} {level} negative keywords for {self.customer_id}")
        result = {"success": True, "added": added}
        if level == "account":
            result["list"] = shared_set.split("/")[-1]
            result["linked_campaigns"] = linked
        return result

    async def _link_shared_set(self, shared_set: str) -> List[str]:
        """Attach a shared negative list to every enabled campaign"""
        rows = await self._search(
            "SELECT campaign.id FROM campaign WHERE campaign.status = 'ENABLED'", "enabled_campaigns")
        campaign_ids = [str(row.campaign.id) for row in rows]
        if not campaign_ids:
            return []
        client = self.connect()
        operations = []
        for campaign_id in campaign_ids:
            operation = client.get_type("CampaignSharedSetOperation")
            operation.create.campaign = f"customers/{self.customer_id}/campaigns/{campaign_id}"
            operation.create.shared_set = shared_set
            operations.append(operation)
        client.get_service("CampaignSharedSetService").mutate_campaign_shared_sets(
            customer_id=self.customer_id, operations=operations)
        return campaign_ids

    async def remove_negative_keyword(self, campaign_id: str, criterion_id: str) -> Dict:
        try:
            client = self.connect()
            operation = client.get_type("CampaignCriterionOperation")
            operation.remove = f"customers/{self.customer_id}/campaignCriteria/{campaign_id}~{criterion_id}"
        except Exception as e:
            return {"success": False, "error": _error_message(e)}
        return self._mutate("CampaignCriterionService", "mutate_campaign_criteria", operation,
                            f"remove negative keyword {criterion_id}")


def build_google_ads_connector(account) -> GoogleAdsConnector:
    """Connector for a stored GoogleAdsAccount row"""
    settings = get_settings()
    return GoogleAdsConnector(
        refresh_token=account.refresh_token or settings.google_ads_refresh_token,
        customer_id=account.google_account_id,
        login_customer_id=account.parent_manager_id or settings.google_ads_login_customer_id,
    )
