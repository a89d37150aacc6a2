"""
Plan Engine Formatters
======================
Display utilities for the plan generator and reassignment pages.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

import pandas as pd

from .models import MONTH_COLUMNS


class PlanFormatters:
    """Display formatters for plans and events"""

    # ================================================================
    # STATUS FORMATTERS
    # ================================================================

    @staticmethod
    def format_plan_status(status: str) -> str:
        status_map = {
            'draft': '📝 Draft',
            'merged': '✅ Merged',
        }
        return status_map.get(str(status).lower(), status)

    @staticmethod
    def format_event_status(status: str) -> str:
        """Format shipment event status with emoji"""
        status_map = {
            'PENDING': '🔵 Pending',
            'NOTIFIED': '🟡 Notified',
            'SENT': '🚚 Sent',
            'RECEIVED': '📬 Received',
            'CANCELLED': '❌ Cancelled',
        }
        return status_map.get(status, status)

    @staticmethod
    def format_merge_strategy(strategy: str) -> str:
        if str(strategy).lower() == 'replace':
            return '♻️ Replace'
        return '➕ Add'

    @staticmethod
    def format_deferred_reason(reason: str) -> str:
        reason_map = {
            'capacity': 'Weekly capacity full',
            'quota_exhausted': 'All city quotas met',
            'no_topology': 'No node pair available',
        }
        return reason_map.get(reason, reason)

    # ================================================================
    # VALUE FORMATTERS
    # ================================================================

    @staticmethod
    def format_date(value, fmt: str = '%Y-%m-%d') -> str:
        if value is None or value == '' or (isinstance(value, float) and pd.isna(value)):
            return '-'
        if isinstance(value, (date, datetime)):
            return value.strftime(fmt)
        return str(value)

    @staticmethod
    def format_node(code: Optional[str]) -> str:
        return code if code else '— unassigned —'

    @staticmethod
    def format_fill_rate(placed: int, total: int) -> str:
        if not total:
            return '-'
        return f"{placed / total * 100:.1f}%"

    # ================================================================
    # SUMMARIES
    # ================================================================

    @staticmethod
    def monthly_targets_frame(targets: List[int]) -> pd.DataFrame:
        """One-row frame of monthly targets with a total column"""
        row = {month.capitalize(): value for month, value in zip(MONTH_COLUMNS, targets)}
        row['Total'] = sum(targets)
        return pd.DataFrame([row])

    @staticmethod
    def deferred_breakdown_frame(breakdown: List[Dict]) -> pd.DataFrame:
        """Flatten a plan's unassigned breakdown for display"""
        rows = []
        for group in breakdown:
            reasons = group.get('reasons', {})
            rows.append({
                'City': group.get('city_code') or '(none)',
                'Name': group.get('city_name') or '',
                'Unassigned': group.get('unassigned', 0),
                'Reasons': ', '.join(
                    f"{PlanFormatters.format_deferred_reason(r)}: {n}" for r, n in sorted(reasons.items())
                ),
            })
        return pd.DataFrame(rows, columns=['City', 'Name', 'Unassigned', 'Reasons'])

    @staticmethod
    def details_frame(details) -> pd.DataFrame:
        """PlanDetail list as a display frame"""
        return pd.DataFrame(
            [{
                'Date': d.scheduled_date,
                'Origin': PlanFormatters.format_node(d.origin_node),
                'Destination': PlanFormatters.format_node(d.destination_node),
                'Status': PlanFormatters.format_event_status(d.status.value),
            } for d in details],
            columns=['Date', 'Origin', 'Destination', 'Status']
        )
