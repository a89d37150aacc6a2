"""
Plan Engine Data
================
Read/write contracts for reference data and generated plans.

Every query is scoped by an explicit ``client_id``. Reads used by the engine
return typed records and let database errors propagate; the DataFrame
helpers used by the console log and return an empty frame instead.

Write methods take an open connection so the caller controls the
transaction boundary (see ``utils.db.db_transaction``).
"""
import json
import logging
from datetime import date
from typing import Dict, List, Optional

import pandas as pd
from sqlalchemy import text

from utils.db import get_db_engine
from .models import (
    MONTH_COLUMNS, City, CityAllocationRequirement, DetailStatus,
    GeneratedAllocationPlan, Node, Panelist, PlanDetail, PlanStatus,
    ProductSeasonality, Topology, IN_FLIGHT_STATUSES
)

logger = logging.getLogger(__name__)

DETAIL_COLUMNS = """
    d.id, d.plan_id, d.client_id, d.product_id, d.carrier_id,
    d.nodo_origen, d.nodo_destino, d.scheduled_date, d.status, d.label_number
"""


def _iso(value: date) -> str:
    return value.isoformat()


class PlanEngineData:
    """Repository for the allocation plan engine"""

    def __init__(self, engine=None):
        self.engine = engine or get_db_engine()

    # ================================================================
    # REFERENCE DATA
    # ================================================================

    def get_cities(self, client_id: int, active_only: bool = True) -> List[City]:
        query = """
            SELECT id, code, name, classification, population_volume,
                   postal_traffic_volume, is_active
            FROM cities
            WHERE client_id = :client_id
        """
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY code"

        with self.engine.connect() as conn:
            rows = conn.execute(text(query), {'client_id': client_id}).fetchall()
        return [City.from_row(row._mapping) for row in rows]

    def get_requirements(self, client_id: int) -> Dict[int, CityAllocationRequirement]:
        query = text("""
            SELECT city_id, from_classification_a, from_classification_b, from_classification_c
            FROM city_allocation_requirements
            WHERE client_id = :client_id
        """)
        with self.engine.connect() as conn:
            rows = conn.execute(query, {'client_id': client_id}).fetchall()

        requirements = {}
        for row in rows:
            req = CityAllocationRequirement.from_row(row._mapping)
            requirements[req.city_id] = req
        return requirements

    def get_seasonality(self, client_id: int, product_id: int, year: int) -> Optional[ProductSeasonality]:
        query = text(f"""
            SELECT client_id, product_id, year, {', '.join(MONTH_COLUMNS)}
            FROM product_seasonality
            WHERE client_id = :client_id AND product_id = :product_id AND year = :year
        """)
        with self.engine.connect() as conn:
            row = conn.execute(query, {
                'client_id': client_id, 'product_id': product_id, 'year': year
            }).fetchone()
        return ProductSeasonality.from_row(row._mapping) if row else None

    def get_seasonality_table(self, client_id: int, year: Optional[int] = None) -> List[ProductSeasonality]:
        query = f"""
            SELECT client_id, product_id, year, {', '.join(MONTH_COLUMNS)}
            FROM product_seasonality
            WHERE client_id = :client_id
        """
        params = {'client_id': client_id}
        if year is not None:
            query += " AND year = :year"
            params['year'] = year
        query += " ORDER BY year, product_id"

        with self.engine.connect() as conn:
            rows = conn.execute(text(query), params).fetchall()
        return [ProductSeasonality.from_row(row._mapping) for row in rows]

    def get_topology(self, client_id: int) -> Topology:
        """Active nodes and panelists of a client"""
        with self.engine.connect() as conn:
            node_rows = conn.execute(text("""
                SELECT code, city_id, country, is_active
                FROM nodes
                WHERE client_id = :client_id AND is_active = 1
                ORDER BY code
            """), {'client_id': client_id}).fetchall()
            panelist_rows = conn.execute(text("""
                SELECT id, name, node_code, weekly_event_cap, is_active
                FROM panelists
                WHERE client_id = :client_id AND is_active = 1
                ORDER BY id
            """), {'client_id': client_id}).fetchall()

        return Topology(
            nodes=[Node.from_row(r._mapping) for r in node_rows],
            panelists=[Panelist.from_row(r._mapping) for r in panelist_rows],
        )

    def carrier_serves_product(self, carrier_id: int, product_id: int, conn=None) -> bool:
        query = text("""
            SELECT COUNT(*) FROM carrier_products
            WHERE carrier_id = :carrier_id AND product_id = :product_id
        """)
        params = {'carrier_id': carrier_id, 'product_id': product_id}

        if conn is not None:
            return bool(conn.execute(query, params).scalar())
        with self.engine.connect() as own:
            return bool(own.execute(query, params).scalar())

    # ================================================================
    # LIVE EVENTS
    # ================================================================

    def get_live_events(
        self,
        client_id: int,
        date_from: date,
        date_to: date,
        product_id: Optional[int] = None,
        include_cancelled: bool = False
    ) -> List[PlanDetail]:
        """Detail rows of merged plans scheduled within [date_from, date_to]"""
        query = f"""
            SELECT {DETAIL_COLUMNS}
            FROM generated_allocation_plan_details d
            JOIN generated_allocation_plans p ON p.id = d.plan_id
            WHERE d.client_id = :client_id
              AND p.status = :merged
              AND d.scheduled_date BETWEEN :date_from AND :date_to
        """
        params = {
            'client_id': client_id,
            'merged': PlanStatus.MERGED.value,
            'date_from': _iso(date_from),
            'date_to': _iso(date_to),
        }
        if product_id is not None:
            query += " AND d.product_id = :product_id"
            params['product_id'] = product_id
        if not include_cancelled:
            query += " AND d.status <> :cancelled"
            params['cancelled'] = DetailStatus.CANCELLED.value
        query += " ORDER BY d.scheduled_date, d.id"

        with self.engine.connect() as conn:
            rows = conn.execute(text(query), params).fetchall()
        return [PlanDetail.from_row(row._mapping) for row in rows]

    def count_supersedable(self, client_id: int, product_id: int, date_from: date, date_to: date,
                           conn=None) -> int:
        """Live in-flight events a replace merge over this period would supersede"""
        query = text("""
            SELECT COUNT(*)
            FROM generated_allocation_plan_details d
            JOIN generated_allocation_plans p ON p.id = d.plan_id
            WHERE d.client_id = :client_id
              AND d.product_id = :product_id
              AND p.status = :merged
              AND d.status IN (:pending, :notified)
              AND d.scheduled_date BETWEEN :date_from AND :date_to
        """)
        params = self._supersede_params(client_id, product_id, date_from, date_to)

        if conn is not None:
            return int(conn.execute(query, params).scalar() or 0)
        with self.engine.connect() as own:
            return int(own.execute(query, params).scalar() or 0)

    # ================================================================
    # PLANS
    # ================================================================

    def get_plan(self, client_id: int, plan_id: int, conn=None) -> Optional[GeneratedAllocationPlan]:
        query = text("""
            SELECT *
            FROM generated_allocation_plans
            WHERE id = :plan_id AND client_id = :client_id
        """)
        params = {'plan_id': plan_id, 'client_id': client_id}

        if conn is not None:
            row = conn.execute(query, params).fetchone()
        else:
            with self.engine.connect() as own:
                row = own.execute(query, params).fetchone()
        return GeneratedAllocationPlan.from_row(row._mapping) if row else None

    def get_plan_details(self, client_id: int, plan_id: int) -> List[PlanDetail]:
        query = text(f"""
            SELECT {DETAIL_COLUMNS}
            FROM generated_allocation_plan_details d
            WHERE d.plan_id = :plan_id AND d.client_id = :client_id
            ORDER BY d.scheduled_date, d.id
        """)
        with self.engine.connect() as conn:
            rows = conn.execute(query, {'plan_id': plan_id, 'client_id': client_id}).fetchall()
        return [PlanDetail.from_row(row._mapping) for row in rows]

    def count_plan_details(self, conn, plan_id: int) -> int:
        return int(conn.execute(text("""
            SELECT COUNT(*) FROM generated_allocation_plan_details WHERE plan_id = :plan_id
        """), {'plan_id': plan_id}).scalar() or 0)

    # ================================================================
    # WRITES (caller owns the transaction)
    # ================================================================

    def insert_plan(self, conn, plan: GeneratedAllocationPlan) -> int:
        result = conn.execute(text("""
            INSERT INTO generated_allocation_plans
            (client_id, product_id, carrier_id, year, start_date, end_date, status,
             merge_strategy, total_events, calculated_events, unassigned_events,
             unassigned_breakdown, generation_params, superseded_events, created_by)
            VALUES
            (:client_id, :product_id, :carrier_id, :year, :start_date, :end_date, :status,
             :merge_strategy, :total_events, :calculated_events, :unassigned_events,
             :unassigned_breakdown, :generation_params, 0, :created_by)
        """), {
            'client_id': plan.client_id,
            'product_id': plan.product_id,
            'carrier_id': plan.carrier_id,
            'year': plan.year,
            'start_date': _iso(plan.start_date),
            'end_date': _iso(plan.end_date),
            'status': plan.status.value,
            'merge_strategy': plan.merge_strategy.value,
            'total_events': plan.total_events,
            'calculated_events': plan.calculated_events,
            'unassigned_events': plan.unassigned_events,
            'unassigned_breakdown': json.dumps(plan.unassigned_breakdown),
            'generation_params': json.dumps(plan.generation_params, sort_keys=True),
            'created_by': plan.created_by,
        })
        return result.lastrowid

    def insert_details(self, conn, plan_id: int, details: List[PlanDetail]) -> int:
        if not details:
            return 0
        conn.execute(text("""
            INSERT INTO generated_allocation_plan_details
            (plan_id, client_id, product_id, carrier_id, nodo_origen, nodo_destino,
             scheduled_date, status, label_number)
            VALUES
            (:plan_id, :client_id, :product_id, :carrier_id, :nodo_origen, :nodo_destino,
             :scheduled_date, :status, :label_number)
        """), [
            {
                'plan_id': plan_id,
                'client_id': d.client_id,
                'product_id': d.product_id,
                'carrier_id': d.carrier_id,
                'nodo_origen': d.origin_node,
                'nodo_destino': d.destination_node,
                'scheduled_date': _iso(d.scheduled_date),
                'status': d.status.value,
                'label_number': d.label_number,
            }
            for d in details
        ])
        return len(details)

    def supersede_live_events(self, conn, plan: GeneratedAllocationPlan, mode: str) -> int:
        """Cancel or delete live in-flight events in the plan's period"""
        subquery = """
            SELECT id FROM generated_allocation_plans
            WHERE client_id = :client_id AND status = :merged
        """
        where = f"""
            WHERE client_id = :client_id
              AND product_id = :product_id
              AND status IN (:pending, :notified)
              AND scheduled_date BETWEEN :date_from AND :date_to
              AND plan_id IN ({subquery})
        """
        params = self._supersede_params(plan.client_id, plan.product_id, plan.start_date, plan.end_date)

        if mode == 'delete':
            result = conn.execute(text(f"DELETE FROM generated_allocation_plan_details {where}"), params)
        else:
            params['cancelled'] = DetailStatus.CANCELLED.value
            result = conn.execute(
                text(f"UPDATE generated_allocation_plan_details SET status = :cancelled {where}"),
                params
            )
        return result.rowcount

    def mark_plan_merged(self, conn, plan_id: int, client_id: int, strategy: str,
                         superseded: int, merged_at: str) -> int:
        """Flip draft -> merged; 0 rows means the plan was not a draft anymore"""
        result = conn.execute(text("""
            UPDATE generated_allocation_plans
            SET status = :merged,
                merge_strategy = :strategy,
                superseded_events = :superseded,
                merged_at = :merged_at
            WHERE id = :plan_id AND client_id = :client_id AND status = :draft
        """), {
            'merged': PlanStatus.MERGED.value,
            'draft': PlanStatus.DRAFT.value,
            'strategy': strategy,
            'superseded': superseded,
            'merged_at': merged_at,
            'plan_id': plan_id,
            'client_id': client_id,
        })
        return result.rowcount

    def delete_draft(self, conn, plan_id: int, client_id: int) -> int:
        """Delete a draft and its rows; returns deleted detail count, -1 if not a draft"""
        draft = conn.execute(text("""
            SELECT id FROM generated_allocation_plans
            WHERE id = :plan_id AND client_id = :client_id AND status = :draft
        """), {'plan_id': plan_id, 'client_id': client_id, 'draft': PlanStatus.DRAFT.value}).fetchone()
        if not draft:
            return -1

        deleted = conn.execute(text("""
            DELETE FROM generated_allocation_plan_details WHERE plan_id = :plan_id
        """), {'plan_id': plan_id}).rowcount
        conn.execute(text("""
            DELETE FROM generated_allocation_plans WHERE id = :plan_id AND status = :draft
        """), {'plan_id': plan_id, 'draft': PlanStatus.DRAFT.value})
        return deleted

    # ================================================================
    # CONSOLE FRAMES
    # ================================================================

    def list_plans(self, client_id: int, year: Optional[int] = None) -> pd.DataFrame:
        try:
            query = """
                SELECT id, product_id, carrier_id, year, status, merge_strategy,
                       total_events, calculated_events, unassigned_events,
                       superseded_events, created_by, created_at, merged_at
                FROM generated_allocation_plans
                WHERE client_id = :client_id
            """
            params = {'client_id': client_id}
            if year is not None:
                query += " AND year = :year"
                params['year'] = year
            query += " ORDER BY id DESC"

            with self.engine.connect() as conn:
                df = pd.read_sql(text(query), conn, params=params)
            return df

        except Exception as e:
            logger.error(f"Error listing plans for client {client_id}: {e}")
            return pd.DataFrame()

    def get_client_ids(self) -> List[int]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(text("SELECT DISTINCT client_id FROM cities ORDER BY client_id")).fetchall()
            return [int(r[0]) for r in rows]
        except Exception as e:
            logger.error(f"Error loading clients: {e}")
            return []

    def get_product_ids(self, client_id: int) -> List[int]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(text("""
                    SELECT DISTINCT product_id FROM product_seasonality
                    WHERE client_id = :client_id ORDER BY product_id
                """), {'client_id': client_id}).fetchall()
            return [int(r[0]) for r in rows]
        except Exception as e:
            logger.error(f"Error loading products for client {client_id}: {e}")
            return []

    # ================================================================
    # HELPERS
    # ================================================================

    @staticmethod
    def _supersede_params(client_id: int, product_id: int, date_from: date, date_to: date) -> Dict:
        pending, notified = IN_FLIGHT_STATUSES
        return {
            'client_id': client_id,
            'product_id': product_id,
            'merged': PlanStatus.MERGED.value,
            'pending': pending.value,
            'notified': notified.value,
            'date_from': _iso(date_from),
            'date_to': _iso(date_to),
        }
