"""
Rule runner

Loads entities for an automated rule from the metrics cache, evaluates the
rule and pushes its actions to Google Ads through the guardrails. Used by
the scheduled rules job and the "run now" / "simulate" endpoints.
"""
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional
from sqlalchemy.orm import Session

from adpilot.connectors.base_connector import ConnectorError
from adpilot.connectors.google_ads import build_google_ads_connector
from adpilot.models.account import GoogleAdsAccount
from adpilot.models.automated_rule import AutomatedRule, RuleExecutionRecord
from adpilot.services import guardrails
from adpilot.services.activity_log_service import log_activity
from adpilot.services.entity_hierarchy_service import EntityHierarchyService
from adpilot.services.metrics_service import MetricsService
from adpilot.services.rules_engine import (
    calculate_next_run,
    entity_name,
    execute_actions,
    longest_period_days,
    simulate_rule_execution,
)
from adpilot.utils.helpers import split_keyword_entity_id
from adpilot.utils.logger import log

CACHE_ENTITY_TYPES = {
    "campaign": "CAMPAIGN",
    "ad_group": "AD_GROUP",
    "keyword": "KEYWORD",
}


def rule_period(rule: Dict, today: Optional[date] = None):
    end = today or date.today()
    return end - timedelta(days=longest_period_days(rule) - 1), end


class RuleRunner:

    def __init__(self, db: Session, connector_factory: Callable = build_google_ads_connector):
        self.db = db
        self.connector_factory = connector_factory
        self.metrics = MetricsService(db)
        self.hierarchy = EntityHierarchyService(db)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    async def load_entities(self, rule: Dict, account: GoogleAdsAccount, connector=None) -> List[Dict]:
        """Cached per-entity totals for the rule's longest period; live campaigns when the cache is empty"""
        start, end = rule_period(rule)
        cache_type = CACHE_ENTITY_TYPES[rule["entity_type"]]
        entities = self.metrics.get_entity_metrics(account.google_account_id, cache_type, start, end)

        for entity in entities:
            if rule["entity_type"] == "keyword":
                ad_group_id, criterion_id = split_keyword_entity_id(entity["id"])
                entity["text"] = entity.get("name")
                entity["ad_group_id"] = ad_group_id or entity.get("parent_entity_id")
                entity["criterion_id"] = criterion_id
            elif rule["entity_type"] == "ad_group":
                entity["campaign_id"] = entity.get("parent_entity_id")

        if not entities and rule["entity_type"] == "campaign" and connector is not None:
            try:
                entities = await connector.fetch_campaigns(start, end)
            except ConnectorError as e:
                log.warning(f"Live campaign fetch for rule '{rule.get('name')}' failed: {e}")
        return entities

    def _campaign_statuses(self, customer_id: str) -> List[Dict]:
        return [
            {"id": node.entity_id, "status": node.status}
            for node in self.hierarchy.get_entities(customer_id, "CAMPAIGN")
        ]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _executor(self, rule_row: AutomatedRule, account: GoogleAdsAccount, connector, settings: Dict):
        """Async (action, entity) -> {success, error?} that enforces guardrails and logs activity"""
        campaigns = self._campaign_statuses(account.google_account_id)
        pending: List[Dict] = []
        entity_type = rule_row.entity_type

        async def execute(action: Dict, entity: Dict) -> Dict:
            action_type = action.get("type")
            entity_id = str(entity.get("id"))
            before, after = None, None

            if action_type == "send_notification":
                log.info(f"Rule '{rule_row.name}' notification: {entity_name(entity)} matched")
                result = {"success": True}

            elif action_type in ("pause", "enable"):
                status = "PAUSED" if action_type == "pause" else "ENABLED"
                if entity_type == "campaign" and action_type == "pause":
                    check = guardrails.check_action_guardrails(
                        {"action_type": "pause_campaign", "entity_id": entity_id,
                         "ai_score": entity.get("ai_score")},
                        campaigns, settings, pending,
                    )
                    if not check["allowed"]:
                        return {"success": False, "error": "; ".join(check["errors"])}
                    pending.append({"action_type": "pause_campaign", "entity_id": entity_id})

                before, after = {"status": entity.get("status")}, {"status": status}
                if entity_type == "campaign":
                    result = await connector.update_campaign_status(entity_id, status)
                elif entity_type == "ad_group":
                    result = await connector.update_ad_group_status(entity_id, status)
                else:
                    result = await connector.update_keyword_status(
                        entity.get("ad_group_id"), entity.get("criterion_id") or entity_id, status
                    )

            elif action_type == "adjust_budget":
                if entity_type != "campaign":
                    return {"success": False, "error": "Budget adjustments only apply to campaigns"}
                budget = await connector.get_campaign_budget(entity_id)
                if not budget:
                    return {"success": False, "error": "Campaign budget not found"}
                current = float(budget["amount"])
                new_amount = round(current * (1 + float(action.get("value") or 0) / 100), 2)
                check = guardrails.check_budget_guardrails({"id": entity_id, "budget": current}, new_amount, settings)
                if not check["allowed"]:
                    return {"success": False, "error": "; ".join(check["errors"])}
                before, after = {"budget": current}, {"budget": new_amount}
                result = await connector.update_campaign_budget(entity_id, new_amount)

            elif action_type == "adjust_bid":
                if entity_type != "keyword":
                    return {"success": False, "error": "Bid adjustments only apply to keywords"}
                current = float(entity.get("cpc_bid") or entity.get("average_cpc") or 0)
                if current <= 0:
                    return {"success": False, "error": "No current bid to adjust"}
                new_bid = round(current * (1 + float(action.get("value") or 0) / 100), 2)
                before, after = {"cpc_bid": current}, {"cpc_bid": new_bid}
                result = await connector.update_keyword_bid(
                    entity.get("ad_group_id"), entity.get("criterion_id") or entity_id, new_bid
                )

            else:
                return {"success": False, "error": f"Unknown action type: {action_type}"}

            log_activity(
                self.db,
                f"rule_{action_type}",
                user_id=rule_row.user_id,
                account_id=account.id,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_name=entity_name(entity),
                before_value=before,
                after_value=after,
                status="success" if result.get("success") else "failed",
                error_message=result.get("error"),
                source="rule",
            )
            return result

        return execute

    async def simulate(self, rule_row: AutomatedRule, account: GoogleAdsAccount) -> Dict:
        rule = rule_row.to_dict()
        connector = self.connector_factory(account)
        entities = await self.load_entities(rule, account, connector)
        return simulate_rule_execution({**rule, "enabled": True, "status": "active"}, entities)

    async def run_rule(self, rule_row: AutomatedRule, account: GoogleAdsAccount,
                       dry_run: bool = False) -> RuleExecutionRecord:
        """Evaluate and execute one rule, store the execution and advance next_run"""
        rule = rule_row.to_dict()
        connector = self.connector_factory(account)
        now = datetime.utcnow()

        try:
            entities = await self.load_entities(rule, account, connector)
            if dry_run:
                simulated = simulate_rule_execution({**rule, "enabled": True, "status": "active"}, entities)
                status, errors = "success", []
                evaluated, matched = simulated["entities_evaluated"], simulated["entities_matched"]
                actions_taken = [
                    {"entity_id": e["id"], "entity_name": e["name"], "action": action, "success": True}
                    for e in simulated["matched_entities"]
                    for action in e["actions"]
                ]
            else:
                settings = guardrails.get_guardrail_settings(self.db, rule_row.user_id)
                execution = await execute_actions(
                    {**rule, "enabled": True, "status": "active"},
                    entities,
                    self._executor(rule_row, account, connector, settings),
                )
                status, errors = execution.status, execution.errors
                evaluated, matched = execution.entities_evaluated, execution.entities_matched
                actions_taken = execution.actions_taken

            rule_row.last_error = "; ".join(errors[:5]) if status == "failed" else None
            rule_row.status = "error" if status == "failed" else rule_row.status

        except (ConnectorError, ValueError) as e:
            log.error(f"Rule '{rule_row.name}' failed: {e}")
            status, errors = "failed", [str(e)]
            evaluated = matched = 0
            actions_taken = []
            rule_row.status = "error"
            rule_row.last_error = str(e)

        record = RuleExecutionRecord(
            rule_id=rule_row.id,
            executed_at=now,
            status=status,
            entities_evaluated=evaluated,
            entities_matched=matched,
            actions_taken=actions_taken,
            errors=errors,
            dry_run=dry_run,
        )
        self.db.add(record)

        if not dry_run:
            rule_row.last_run = now
            rule_row.run_count = (rule_row.run_count or 0) + 1
            rule_row.next_run = calculate_next_run(rule_row.schedule, now)
        self.db.commit()
        self.db.refresh(record)
        return record

    async def run_due_rules(self, now: Optional[datetime] = None) -> Dict:
        """Every enabled, active rule whose next_run has passed"""
        now = now or datetime.utcnow()
        due = self.db.query(AutomatedRule).filter(
            AutomatedRule.enabled == True,
            AutomatedRule.status == "active",
            AutomatedRule.next_run <= now,
        ).all()

        summary = {"rules_due": len(due), "executed": 0, "failed": 0}
        for rule_row in due:
            account = self.db.query(GoogleAdsAccount).filter(GoogleAdsAccount.id == rule_row.account_id).first()
            if not account or account.status != "active":
                rule_row.next_run = calculate_next_run(rule_row.schedule, now)
                self.db.commit()
                continue
            record = await self.run_rule(rule_row, account)
            summary["executed"] += 1
            if record.status == "failed":
                summary["failed"] += 1

        if due:
            log.info(f"Automated rules: {summary['executed']} executed, {summary['failed']} failed")
        return summary
