"""
Usage statistics over a product's movement history.
"""
import math
from typing import Any, Dict, Sequence

from apps.stocks.models import MovementType

TREND_WINDOW = 10


def usage_stats(movements: Sequence[Any]) -> Dict[str, Any]:
    """
    Summarise a newest-first list of movements.

    The trend compares how many 'out' movements sit in the latest window of
    records against the window before it. It is a coarse signal over record
    counts, not a time-series model.
    """
    total_in = sum(m.quantity for m in movements if m.movement_type == MovementType.IN)
    total_out = sum(abs(m.quantity) for m in movements if m.movement_type == MovementType.OUT)
    total_adjustments = sum(1 for m in movements if m.movement_type == MovementType.ADJUSTMENT)

    months_of_data = max(1, math.ceil(len(movements) / TREND_WINDOW))
    average_monthly_usage = total_out / months_of_data

    recent = movements[:TREND_WINDOW]
    older = movements[TREND_WINDOW:TREND_WINDOW * 2]
    recent_out = sum(1 for m in recent if m.movement_type == MovementType.OUT)
    older_out = sum(1 for m in older if m.movement_type == MovementType.OUT)

    trend = 'stable'
    if recent_out > older_out * 1.2:
        trend = 'increasing'
    elif recent_out < older_out * 0.8:
        trend = 'decreasing'

    return {
        'total_in': total_in,
        'total_out': total_out,
        'total_adjustments': total_adjustments,
        'average_monthly_usage': round(average_monthly_usage, 2),
        'trend': trend,
    }
