"""
Helper utilities
"""
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple
import math


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a spreadsheet: 2.5 -> 3, not banker's rounding."""
    factor = 10 ** digits
    result = math.floor(value * factor + 0.5) / factor
    return int(result) if digits == 0 else result


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator else default
    except (TypeError, ZeroDivisionError):
        return default


def chunk_list(lst: List, chunk_size: int) -> List[List]:
    """Split list into chunks"""
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def normalize_customer_id(customer_id: str) -> str:
    """Google Ads customer ids are stored without dashes."""
    return str(customer_id).replace("-", "").strip()


def keyword_entity_id(ad_group_id: str, criterion_id: str) -> str:
    """Criterion ids repeat across ad groups, so keywords are keyed like Google Ads does: ad_group~criterion"""
    return f"{ad_group_id}~{criterion_id}"


def split_keyword_entity_id(entity_id: str) -> Tuple[Optional[str], str]:
    """'21~31' -> ('21', '31'); a bare criterion id has no ad group"""
    ad_group_id, _, criterion_id = str(entity_id).rpartition("~")
    return ad_group_id or None, criterion_id


def normalize_keyword(keyword: str) -> str:
    return " ".join(keyword.lower().split())


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse YYYY-MM-DD, raising ValueError with a readable message."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")


def default_date_range(days: int = 30, end: Optional[date] = None) -> Tuple[date, date]:
    """Last `days` days ending today (inclusive)."""
    end = end or date.today()
    return end - timedelta(days=days - 1), end


def resolve_date_range(start: Optional[str], end: Optional[str], days: int = 30) -> Tuple[date, date]:
    start_d, end_d = parse_date(start), parse_date(end)
    if not start_d or not end_d:
        return default_date_range(days)
    if start_d > end_d:
        raise ValueError("start_date must be on or before end_date")
    return start_d, end_d


def iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None
