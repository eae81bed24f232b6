# hotelguard/stats.py
from typing import Any, Dict, List

from hotelguard.schemas import AuditStats, CategoryBreakdown, RiskLevel, RecordStatus


def compute_stats(records: List[Dict[str, Any]]) -> AuditStats:
    """Headline numbers for the compliance dashboard. An empty log passes at 100%."""
    total = len(records)
    high = sum(1 for r in records if r.get("riskLevel") == RiskLevel.HIGH.value)
    resolved = sum(1 for r in records if r.get("status") == RecordStatus.RESOLVED.value)
    pass_rate = (total - high) / total * 100 if total else 100.0
    return AuditStats(
        total_inspections=total,
        pass_rate=round(pass_rate, 1),
        high_risk_count=high,
        resolved_count=resolved,
    )


def category_breakdown(records: List[Dict[str, Any]]) -> List[CategoryBreakdown]:
    """Findings per category split by risk level, most frequent category first."""
    agg: Dict[str, CategoryBreakdown] = {}
    for r in records:
        name = r.get("category") or "Uncategorized"
        item = agg.setdefault(name, CategoryBreakdown(name=name))
        item.value += 1
        risk = r.get("riskLevel")
        if risk == RiskLevel.HIGH.value:
            item.high += 1
        elif risk == RiskLevel.MEDIUM.value:
            item.medium += 1
        elif risk == RiskLevel.LOW.value:
            item.low += 1
    return sorted(agg.values(), key=lambda c: c.value, reverse=True)
