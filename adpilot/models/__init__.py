"""Database models for the adpilot dashboard"""

from adpilot.models.user import User, UserSession
from adpilot.models.account import GoogleAdsAccount

from adpilot.models.metrics import MetricsFact, SyncMetadata
from adpilot.models.entity_hierarchy import EntityHierarchy

from adpilot.models.saved_view import SavedView

from adpilot.models.automated_rule import (
    AutomatedRule,
    RuleExecutionRecord,
    GuardrailSetting
)

from adpilot.models.activity_log import ActivityLog

from adpilot.models.keyword_data import (
    KeywordMetricsCache,
    KeywordSerpFeatures
)
