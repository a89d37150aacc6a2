"""
Panelist Reassignment Data
==========================
Queries behind bulk reassignment. Preview and execute share one WHERE
clause so the previewed count and the executed update cover the same rows.
"""
import logging
from datetime import date
from typing import Dict, List, Optional

import pandas as pd
from sqlalchemy import text

from utils.db import get_db_engine
from utils.plan_engine.models import IN_FLIGHT_STATUSES, Panelist

logger = logging.getLogger(__name__)

# Rows referencing :old_node on either side, in flight, inside the range
AFFECTED_FILTER = """
    client_id = :client_id
    AND (nodo_origen = :old_node OR nodo_destino = :old_node)
    AND status IN (:pending, :notified)
    AND scheduled_date BETWEEN :date_from AND :date_to
"""

# Same scope, restricted to one side for the update statements
_SIDE_FILTER = """
    client_id = :client_id
    AND {side} = :old_node
    AND status IN (:pending, :notified)
    AND scheduled_date BETWEEN :date_from AND :date_to
"""


def filter_params(client_id: int, old_node: str, date_from: date, date_to: date) -> Dict:
    pending, notified = IN_FLIGHT_STATUSES
    return {
        'client_id': client_id,
        'old_node': old_node,
        'pending': pending.value,
        'notified': notified.value,
        'date_from': date_from.isoformat(),
        'date_to': date_to.isoformat(),
    }


class ReassignmentData:
    """Repository for panelist reassignment"""

    def __init__(self, engine=None):
        self.engine = engine or get_db_engine()

    def get_panelist(self, client_id: int, panelist_id: int) -> Optional[Panelist]:
        with self.engine.connect() as conn:
            row = conn.execute(text("""
                SELECT id, name, node_code, weekly_event_cap, is_active
                FROM panelists
                WHERE id = :panelist_id AND client_id = :client_id
            """), {'panelist_id': panelist_id, 'client_id': client_id}).fetchone()
        return Panelist.from_row(row._mapping) if row else None

    def get_panelists(self, client_id: int, active_only: bool = True) -> pd.DataFrame:
        """Panelists for the console selectors"""
        try:
            query = """
                SELECT id, name, node_code, weekly_event_cap, is_active
                FROM panelists
                WHERE client_id = :client_id
            """
            if active_only:
                query += " AND is_active = 1"
            query += " ORDER BY name, id"

            with self.engine.connect() as conn:
                df = pd.read_sql(text(query), conn, params={'client_id': client_id})
            return df
        except Exception as e:
            logger.error(f"Error loading panelists for client {client_id}: {e}")
            return pd.DataFrame()

    # ================================================================
    # PREVIEW QUERIES
    # ================================================================

    def count_affected(self, conn, params: Dict) -> int:
        return int(conn.execute(text(f"""
            SELECT COUNT(*) FROM generated_allocation_plan_details
            WHERE {AFFECTED_FILTER}
        """), params).scalar() or 0)

    def count_side(self, conn, params: Dict, side: str) -> int:
        return int(conn.execute(text(f"""
            SELECT COUNT(*) FROM generated_allocation_plan_details
            WHERE {_SIDE_FILTER.format(side=self._column(side))}
        """), params).scalar() or 0)

    def get_counterpart_nodes(self, conn, params: Dict) -> List[str]:
        """Nodes on the other end of the affected events"""
        rows = conn.execute(text(f"""
            SELECT DISTINCT nodo_destino AS node FROM generated_allocation_plan_details
            WHERE {_SIDE_FILTER.format(side='nodo_origen')}
            UNION
            SELECT DISTINCT nodo_origen AS node FROM generated_allocation_plan_details
            WHERE {_SIDE_FILTER.format(side='nodo_destino')}
        """), params).fetchall()
        return sorted(r[0] for r in rows if r[0] and r[0] != params['old_node'])

    def get_affected_events(self, params: Dict, limit: int = 500) -> pd.DataFrame:
        try:
            with self.engine.connect() as conn:
                df = pd.read_sql(text(f"""
                    SELECT id, plan_id, nodo_origen, nodo_destino, scheduled_date, status, product_id
                    FROM generated_allocation_plan_details
                    WHERE {AFFECTED_FILTER}
                    ORDER BY scheduled_date, id
                    LIMIT :limit
                """), conn, params={**params, 'limit': limit})
            return df
        except Exception as e:
            logger.error(f"Error loading affected events: {e}")
            return pd.DataFrame()

    # ================================================================
    # UPDATES (caller owns the transaction)
    # ================================================================

    def update_side(self, conn, params: Dict, side: str, new_node: Optional[str]) -> int:
        column = self._column(side)
        result = conn.execute(text(f"""
            UPDATE generated_allocation_plan_details
            SET {column} = :new_node
            WHERE {_SIDE_FILTER.format(side=column)}
        """), {**params, 'new_node': new_node})
        return result.rowcount

    @staticmethod
    def _column(side: str) -> str:
        columns = {'origin': 'nodo_origen', 'destination': 'nodo_destino'}
        if side not in columns:
            raise ValueError(f"Unknown side '{side}'")
        return columns[side]
