"""
Automated rules engine tests.

Guards against:
1. Float noise breaking "equals 0" conditions (0.00001 conversions must equal 0)
2. Disabled or paused rules still acting on entities
3. One failing action hiding the partial success of the others
4. Monthly schedules overflowing short months (Jan 31 -> Feb 29, not Mar 2)
"""
import asyncio
from datetime import datetime

from adpilot.services.rules_engine import (
    RULE_TEMPLATES,
    calculate_metric,
    calculate_next_run,
    compare_values,
    describe_action,
    evaluate_rule,
    execute_actions,
    format_rule_for_display,
    get_matching_entities,
    longest_period_days,
    matches_filter,
    simulate_rule_execution,
    validate_rule,
)


def _rule(**overrides):
    rule = {
        "id": 1,
        "name": "Pause Campaigns with No Conversions",
        "entity_type": "campaign",
        "entity_filter": None,
        "conditions": [
            {"metric": "conversions", "operator": "equals", "value": 0, "period": "14d"},
            {"metric": "spend", "operator": "greater_than", "value": 100, "period": "14d"},
        ],
        "actions": [{"type": "pause"}, {"type": "send_notification"}],
        "schedule": "daily",
        "enabled": True,
        "status": "active",
    }
    rule.update(overrides)
    return rule


CAMPAIGNS = [
    {"id": "1", "name": "Brand", "status": "ENABLED", "spend": 150, "clicks": 30, "conversions": 0.00001},
    {"id": "2", "name": "Generic", "status": "ENABLED", "spend": 90, "clicks": 20, "conversions": 0},
    {"id": "3", "name": "Competitor", "status": "PAUSED", "spend": 300, "clicks": 60, "conversions": 4},
]


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def test_derived_metrics():
    entity = {"spend": 50, "clicks": 25, "conversions": 5}
    assert calculate_metric(entity, "cost_per_click") == 2.0
    assert calculate_metric(entity, "conversion_rate") == 20.0
    assert calculate_metric({"clicks": 0}, "cost_per_click") == 0.0
    assert calculate_metric(entity, "quality_score") is None
    assert calculate_metric(entity, "impressions") == 0.0
    assert calculate_metric(entity, "bogus") is None


def test_equality_uses_tolerance():
    assert compare_values(0.00001, "equals", 0)
    assert not compare_values(0.001, "equals", 0)
    assert compare_values(0.001, "not_equals", 0)
    assert compare_values(5, "greater_than_or_equal", 5)
    assert not compare_values(5, "unknown_operator", 5)


def test_conditions_are_anded():
    rule = _rule()
    assert evaluate_rule(rule, CAMPAIGNS[0])
    assert not evaluate_rule(rule, CAMPAIGNS[1])
    assert not evaluate_rule(rule, CAMPAIGNS[2])


def test_missing_quality_score_never_matches():
    rule = _rule(conditions=[{"metric": "quality_score", "operator": "less_than", "value": 4, "period": "14d"}])
    assert not evaluate_rule(rule, {"id": "k1"})
    assert evaluate_rule(rule, {"id": "k2", "quality_score": 3})


def test_entity_filter():
    assert matches_filter(None, CAMPAIGNS[0])
    assert matches_filter({"ids": [1, 3]}, CAMPAIGNS[0])
    assert not matches_filter({"ids": ["2"]}, CAMPAIGNS[0])
    assert matches_filter({"name_contains": "bra"}, CAMPAIGNS[0])
    assert not matches_filter({"status_in": ["PAUSED"]}, CAMPAIGNS[0])
    assert matches_filter({"name_contains": "shoe"}, {"id": "k", "text": "running shoes"})


def test_inactive_rules_match_nothing():
    assert get_matching_entities(_rule(), CAMPAIGNS) == [CAMPAIGNS[0]]
    assert get_matching_entities(_rule(enabled=False), CAMPAIGNS) == []
    assert get_matching_entities(_rule(status="paused"), CAMPAIGNS) == []


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

def test_execute_actions_all_succeed():
    calls = []

    async def executor(action, entity):
        calls.append((action["type"], entity["id"]))
        return {"success": True}

    execution = asyncio.run(execute_actions(_rule(), CAMPAIGNS, executor))
    assert execution.status == "success"
    assert execution.entities_evaluated == 3
    assert execution.entities_matched == 1
    assert calls == [("pause", "1"), ("send_notification", "1")]
    assert [a["action"] for a in execution.actions_taken] == ["pause", "send_notification"]


def test_execute_actions_partial_success():
    async def executor(action, entity):
        if action["type"] == "pause":
            return {"success": False, "error": "Guardrail blocked"}
        return {"success": True}

    execution = asyncio.run(execute_actions(_rule(), CAMPAIGNS, executor))
    assert execution.status == "partial_success"
    assert execution.errors == ["Brand: Guardrail blocked"]
    assert execution.actions_taken[0]["error"] == "Guardrail blocked"


def test_executor_exceptions_fail_the_run():
    async def executor(action, entity):
        raise RuntimeError("API down")

    execution = asyncio.run(execute_actions(_rule(), CAMPAIGNS, executor))
    assert execution.status == "failed"
    assert len(execution.errors) == 2
    assert execution.to_dict()["status"] == "failed"


def test_simulation_counts_would_be_actions():
    result = simulate_rule_execution(_rule(), CAMPAIGNS)
    assert result["entities_evaluated"] == 3
    assert result["entities_matched"] == 1
    assert result["actions_taken"] == 2
    assert result["matched_entities"][0] == {
        "id": "1", "name": "Brand", "status": "ENABLED", "actions": ["pause", "send_notification"],
    }


# ---------------------------------------------------------------------------
# Validation, scheduling and display
# ---------------------------------------------------------------------------

def test_validate_rule_messages():
    assert validate_rule(_rule()) == []
    errors = validate_rule({
        "name": " ",
        "entity_type": "keyword",
        "conditions": [{"metric": "cpa", "operator": "greater_than"}],
        "actions": [{"type": "adjust_bid"}],
        "schedule": "daily",
    })
    assert errors == [
        "Rule name is required",
        "Condition 1: Value is required",
        "Condition 1: Period is required",
        "Action 1: Value is required for budget/bid adjustments",
    ]
    assert "At least one condition is required" in validate_rule(_rule(conditions=[]))
    assert "Schedule is required" in validate_rule(_rule(schedule=None))


def test_templates_are_valid():
    assert len(RULE_TEMPLATES) == 8
    for template in RULE_TEMPLATES:
        assert validate_rule(template) == [], template["name"]


def test_calculate_next_run():
    now = datetime(2024, 1, 31, 15, 30)
    assert calculate_next_run("hourly", now) == datetime(2024, 1, 31, 16, 30)
    assert calculate_next_run("daily", now) == datetime(2024, 2, 1)
    assert calculate_next_run("weekly", now) == datetime(2024, 2, 7)
    assert calculate_next_run("monthly", now) == datetime(2024, 2, 29)
    assert calculate_next_run("unknown", now) == datetime(2024, 2, 1, 15, 30)


def test_format_rule_for_display():
    display = format_rule_for_display(_rule(actions=[{"type": "adjust_budget", "value": -15}]))
    assert display == {
        "title": "Pause Campaigns with No Conversions",
        "description": "When Conversions = 0 AND Spend > 100, then Decrease budget by 15%",
        "status": "Active",
        "schedule": "Daily",
    }
    assert describe_action({"type": "adjust_bid", "value": 25}) == "Increase bid by 25%"


def test_longest_period_days():
    rule = _rule(conditions=[
        {"metric": "spend", "operator": "greater_than", "value": 1, "period": "7d"},
        {"metric": "clicks", "operator": "greater_than", "value": 1, "period": "30d"},
    ])
    assert longest_period_days(rule) == 30
    assert longest_period_days(_rule(conditions=[])) == 7
