"""
Automated rules engine

Rules are plain dicts shaped like AutomatedRule.to_dict():
    {name, entity_type, entity_filter, conditions, actions, schedule, enabled, status}

Conditions are ANDed. Entities are campaign/ad group/keyword dicts as
returned by the Google Ads connector or the metrics cache.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional
from dateutil.relativedelta import relativedelta

from adpilot.utils.logger import log

OPERATORS = ("greater_than", "less_than", "equals", "greater_than_or_equal", "less_than_or_equal", "not_equals")
METRICS = ("spend", "clicks", "impressions", "conversions", "ctr", "cpa", "roas",
           "cost_per_click", "conversion_rate", "quality_score")
ENTITY_TYPES = ("campaign", "ad_group", "keyword")
ACTION_TYPES = ("pause", "enable", "adjust_budget", "adjust_bid", "send_notification")
PERIODS = ("1d", "7d", "14d", "30d", "60d", "90d")
SCHEDULES = ("hourly", "daily", "weekly", "monthly")
RULE_STATUSES = ("active", "paused", "error")

FLOAT_TOLERANCE = 0.0001

METRIC_LABELS = {
    "spend": "Spend",
    "clicks": "Clicks",
    "impressions": "Impressions",
    "conversions": "Conversions",
    "ctr": "CTR",
    "cpa": "CPA",
    "roas": "ROAS",
    "cost_per_click": "Cost per Click",
    "conversion_rate": "Conversion Rate",
    "quality_score": "Quality Score",
}

OPERATOR_LABELS = {
    "greater_than": ">",
    "less_than": "<",
    "equals": "=",
    "greater_than_or_equal": ">=",
    "less_than_or_equal": "<=",
    "not_equals": "!=",
}

PERIOD_DAYS = {"1d": 1, "7d": 7, "14d": 14, "30d": 30, "60d": 60, "90d": 90}

RULE_TEMPLATES = [
    {
        "name": "Pause Low-Performing Keywords",
        "description": "Automatically pause keywords with high CPA and low conversions",
        "category": "performance",
        "entity_type": "keyword",
        "conditions": [
            {"metric": "cpa", "operator": "greater_than", "value": 50, "period": "7d"},
            {"metric": "conversions", "operator": "less_than", "value": 2, "period": "7d"},
        ],
        "actions": [{"type": "pause"}],
        "schedule": "daily",
    },
    {
        "name": "Pause Campaigns with No Conversions",
        "description": "Pause campaigns that have spent budget but generated no conversions",
        "category": "performance",
        "entity_type": "campaign",
        "conditions": [
            {"metric": "conversions", "operator": "equals", "value": 0, "period": "14d"},
            {"metric": "spend", "operator": "greater_than", "value": 100, "period": "14d"},
        ],
        "actions": [{"type": "pause"}, {"type": "send_notification"}],
        "schedule": "daily",
    },
    {
        "name": "Increase Budget for High ROAS Campaigns",
        "description": "Increase budget by 20% for campaigns with excellent ROAS",
        "category": "budget",
        "entity_type": "campaign",
        "conditions": [
            {"metric": "roas", "operator": "greater_than", "value": 4, "period": "7d"},
            {"metric": "conversions", "operator": "greater_than", "value": 10, "period": "7d"},
        ],
        "actions": [{"type": "adjust_budget", "value": 20}],
        "schedule": "weekly",
    },
    {
        "name": "Decrease Budget for Low CTR Campaigns",
        "description": "Reduce budget by 15% for campaigns with poor click-through rates",
        "category": "budget",
        "entity_type": "campaign",
        "conditions": [
            {"metric": "ctr", "operator": "less_than", "value": 1, "period": "7d"},
            {"metric": "impressions", "operator": "greater_than", "value": 1000, "period": "7d"},
        ],
        "actions": [{"type": "adjust_budget", "value": -15}],
        "schedule": "weekly",
    },
    {
        "name": "Pause Low Quality Score Keywords",
        "description": "Pause keywords with consistently low quality scores",
        "category": "quality",
        "entity_type": "keyword",
        "conditions": [
            {"metric": "quality_score", "operator": "less_than", "value": 4, "period": "14d"},
        ],
        "actions": [{"type": "pause"}],
        "schedule": "weekly",
    },
    {
        "name": "Alert on High Spend Campaigns",
        "description": "Send notification when daily spend exceeds threshold",
        "category": "budget",
        "entity_type": "campaign",
        "conditions": [
            {"metric": "spend", "operator": "greater_than", "value": 500, "period": "1d"},
        ],
        "actions": [{"type": "send_notification"}],
        "schedule": "hourly",
    },
    {
        "name": "Enable Paused Campaigns with Good History",
        "description": "Re-enable paused campaigns that previously had good ROAS",
        "category": "maintenance",
        "entity_type": "campaign",
        "conditions": [
            {"metric": "roas", "operator": "greater_than", "value": 3, "period": "30d"},
        ],
        "actions": [{"type": "enable"}],
        "schedule": "weekly",
    },
    {
        "name": "Increase Bids for High Conversion Rate Keywords",
        "description": "Boost bids by 25% for keywords with excellent conversion rates",
        "category": "performance",
        "entity_type": "keyword",
        "conditions": [
            {"metric": "conversion_rate", "operator": "greater_than", "value": 10, "period": "14d"},
            {"metric": "conversions", "operator": "greater_than", "value": 5, "period": "14d"},
        ],
        "actions": [{"type": "adjust_bid", "value": 25}],
        "schedule": "weekly",
    },
]


@dataclass
class RuleExecution:
    """Outcome of applying a rule's actions to its matching entities"""
    rule_id: Optional[int]
    status: str = "success"
    entities_evaluated: int = 0
    entities_matched: int = 0
    actions_taken: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    executed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "status": self.status,
            "entities_evaluated": self.entities_evaluated,
            "entities_matched": self.entities_matched,
            "actions_taken": self.actions_taken,
            "errors": self.errors,
            "executed_at": self.executed_at.isoformat(),
        }


def entity_name(entity: Dict) -> str:
    """Campaigns and ad groups have a name, keywords have text"""
    return entity.get("name") or entity.get("text") or ""


def calculate_metric(entity: Dict, metric: str) -> Optional[float]:
    """Metric value for an entity, or None when it can't be determined"""
    spend = float(entity.get("spend") or 0)
    clicks = float(entity.get("clicks") or 0)
    conversions = float(entity.get("conversions") or 0)

    if metric == "cost_per_click":
        return spend / clicks if clicks > 0 else 0.0
    if metric == "conversion_rate":
        return conversions / clicks * 100 if clicks > 0 else 0.0
    if metric == "quality_score":
        value = entity.get("quality_score")
        return float(value) if value is not None else None
    if metric in ("spend", "clicks", "impressions", "conversions", "ctr", "cpa", "roas"):
        return float(entity.get(metric) or 0)
    return None


def compare_values(actual: float, operator: str, target: float) -> bool:
    if operator == "greater_than":
        return actual > target
    if operator == "less_than":
        return actual < target
    if operator == "equals":
        return abs(actual - target) < FLOAT_TOLERANCE
    if operator == "greater_than_or_equal":
        return actual >= target
    if operator == "less_than_or_equal":
        return actual <= target
    if operator == "not_equals":
        return abs(actual - target) >= FLOAT_TOLERANCE
    log.warning(f"Unknown rule operator: {operator}")
    return False


def evaluate_condition(entity: Dict, condition: Dict) -> bool:
    value = calculate_metric(entity, condition.get("metric"))
    if value is None:
        return False
    return compare_values(value, condition.get("operator"), float(condition.get("value") or 0))


def evaluate_rule(rule: Dict, entity: Dict) -> bool:
    """True when every condition holds for the entity"""
    return all(evaluate_condition(entity, c) for c in rule.get("conditions") or [])


def matches_filter(entity_filter: Optional[Dict], entity: Dict) -> bool:
    if not entity_filter:
        return True

    ids = entity_filter.get("ids")
    if ids and str(entity.get("id")) not in {str(i) for i in ids}:
        return False

    name_contains = entity_filter.get("name_contains")
    if name_contains and name_contains.lower() not in entity_name(entity).lower():
        return False

    status_in = entity_filter.get("status_in")
    if status_in and entity.get("status") not in status_in:
        return False

    return True


def should_apply_rule(rule: Dict, entity: Dict) -> bool:
    if not rule.get("enabled") or rule.get("status") != "active":
        return False
    if not matches_filter(rule.get("entity_filter"), entity):
        return False
    return evaluate_rule(rule, entity)


def get_matching_entities(rule: Dict, entities: List[Dict]) -> List[Dict]:
    return [e for e in entities if should_apply_rule(rule, e)]


ActionExecutor = Callable[[Dict, Dict], Awaitable[Dict]]


async def execute_actions(rule: Dict, entities: List[Dict], executor: ActionExecutor) -> RuleExecution:
    """
    Run every action of the rule against every matching entity.

    The executor receives (action, entity) and returns {"success": bool, "error"?: str}.
    """
    matched = get_matching_entities(rule, entities)
    execution = RuleExecution(
        rule_id=rule.get("id"),
        entities_evaluated=len(entities),
        entities_matched=len(matched),
    )

    attempted = 0
    succeeded = 0
    for entity in matched:
        for action in rule.get("actions") or []:
            attempted += 1
            try:
                result = await executor(action, entity)
            except Exception as e:
                log.error(f"Rule '{rule.get('name')}' action {action.get('type')} failed on {entity.get('id')}: {e}")
                result = {"success": False, "error": str(e)}

            record = {
                "entity_id": str(entity.get("id")),
                "entity_name": entity_name(entity),
                "action": action.get("type"),
                "value": action.get("value"),
                "success": bool(result.get("success")),
            }
            if result.get("success"):
                succeeded += 1
            else:
                record["error"] = result.get("error")
                execution.errors.append(f"{entity_name(entity) or entity.get('id')}: {result.get('error')}")
            execution.actions_taken.append(record)

    if attempted and succeeded == 0:
        execution.status = "failed"
    elif succeeded < attempted:
        execution.status = "partial_success"
    else:
        execution.status = "success"

    log.info(
        f"Rule '{rule.get('name')}' executed: {len(matched)}/{len(entities)} matched, "
        f"{succeeded}/{attempted} actions succeeded"
    )
    return execution


def validate_rule(rule: Dict) -> List[str]:
    """Human readable problems with a rule definition; empty when valid"""
    errors = []

    if not (rule.get("name") or "").strip():
        errors.append("Rule name is required")
    if not rule.get("entity_type"):
        errors.append("Entity type is required")

    conditions = rule.get("conditions") or []
    if not conditions:
        errors.append("At least one condition is required")
    for i, condition in enumerate(conditions, start=1):
        if not condition.get("metric"):
            errors.append(f"Condition {i}: Metric is required")
        if not condition.get("operator"):
            errors.append(f"Condition {i}: Operator is required")
        if condition.get("value") is None:
            errors.append(f"Condition {i}: Value is required")
        if not condition.get("period"):
            errors.append(f"Condition {i}: Period is required")

    actions = rule.get("actions") or []
    if not actions:
        errors.append("At least one action is required")
    for i, action in enumerate(actions, start=1):
        if not action.get("type"):
            errors.append(f"Action {i}: Action type is required")
        if action.get("type") in ("adjust_budget", "adjust_bid") and action.get("value") is None:
            errors.append(f"Action {i}: Value is required for budget/bid adjustments")

    if not rule.get("schedule"):
        errors.append("Schedule is required")

    return errors


def calculate_next_run(schedule: str, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.utcnow()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if schedule == "hourly":
        return now + timedelta(hours=1)
    if schedule == "daily":
        return midnight + timedelta(days=1)
    if schedule == "weekly":
        return midnight + timedelta(days=7)
    if schedule == "monthly":
        return midnight + relativedelta(months=1)
    return now + timedelta(hours=24)


def simulate_rule_execution(rule: Dict, entities: List[Dict]) -> Dict:
    """Dry run: which entities match and how many actions would run"""
    matched = get_matching_entities(rule, entities)
    return {
        "entities_evaluated": len(entities),
        "entities_matched": len(matched),
        "actions_taken": len(matched) * len(rule.get("actions") or []),
        "matched_entities": [
            {
                "id": str(e.get("id")),
                "name": entity_name(e),
                "status": e.get("status"),
                "actions": [a.get("type") for a in rule.get("actions") or []],
            }
            for e in matched
        ],
    }


def _format_number(value) -> str:
    return f"{value:g}" if isinstance(value, (int, float)) else str(value)


def describe_action(action: Dict) -> str:
    action_type = action.get("type")
    value = action.get("value") or 0
    if action_type == "pause":
        return "Pause"
    if action_type == "enable":
        return "Enable"
    if action_type in ("adjust_budget", "adjust_bid"):
        direction = "Increase" if value > 0 else "Decrease"
        target = "budget" if action_type == "adjust_budget" else "bid"
        return f"{direction} {target} by {_format_number(abs(value))}%"
    if action_type == "send_notification":
        return "Send notification"
    return str(action_type)


def format_rule_for_display(rule: Dict) -> Dict[str, str]:
    conditions = [
        f"{METRIC_LABELS.get(c.get('metric'), c.get('metric'))} "
        f"{OPERATOR_LABELS.get(c.get('operator'), c.get('operator'))} "
        f"{_format_number(c.get('value'))}"
        for c in rule.get("conditions") or []
    ]
    actions = [describe_action(a) for a in rule.get("actions") or []]
    schedule = rule.get("schedule") or ""
    return {
        "title": rule.get("name") or "",
        "description": f"When {' AND '.join(conditions)}, then {' and '.join(actions)}",
        "status": "Active" if rule.get("enabled") else "Paused",
        "schedule": schedule[:1].upper() + schedule[1:],
    }


def longest_period_days(rule: Dict) -> int:
    """Lookback window covering every condition of the rule"""
    days = [PERIOD_DAYS.get(c.get("period"), 7) for c in rule.get("conditions") or []]
    return max(days) if days else 7
