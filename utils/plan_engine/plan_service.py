"""
Plan Generation Service
=======================
Business logic the console calls: generate a draft, preview and run a
merge, delete a draft, list plans.

Engine components raise ``PlanEngineError`` subclasses; this layer catches
them and returns an ``OperationResult`` whose message tells the operator
what to fix. ``data['changed']`` says whether any row was written.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import timedelta
from typing import Dict, List, Optional

import streamlit as st

from utils.config import config
from utils.db import db_transaction
from .capacity_checker import week_start_of
from .exceptions import (
    CarrierNotLinkedError, ConfigurationError, PlanEngineError, PlanNotFoundError, PreconditionError
)
from .models import GenerationOptions, MergeStrategy
from .plan_data import PlanEngineData
from .plan_generator import PlanGenerator
from .plan_merger import PlanMerger
from .plan_validators import PlanValidator

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Result of a plan engine operation"""
    success: bool
    message: str
    data: Dict = None
    errors: List[str] = None

    def __post_init__(self):
        if self.errors is None:
            self.errors = []
        if self.data is None:
            self.data = {}


def clear_console_cache():
    """Drop cached console reads after a write"""
    st.cache_data.clear()


class PlanGenerationService:
    """Plan generation and merge operations for one deployment"""

    def __init__(self, engine=None):
        self.data = PlanEngineData(engine)
        self.engine = self.data.engine
        self.validator = PlanValidator()
        self.generator = PlanGenerator(
            default_weekly_cap=config.get_app_setting('DEFAULT_WEEKLY_EVENT_CAP', 5),
            algorithm_version=config.get_app_setting('PLAN_ALGORITHM_VERSION', '2.0'),
        )
        self.merger = PlanMerger(
            self.data,
            replace_mode=config.get_app_setting('REPLACE_MODE', 'cancel'),
        )

    # ================================================================
    # GENERATE
    # ================================================================

    def generate(
        self,
        client_id: int,
        product_id: int,
        year: int,
        options: Optional[GenerationOptions] = None
    ) -> OperationResult:
        """
        Generate and persist a draft plan.

        Returns:
            OperationResult with data: plan_id, plan, calculated_events,
            deferred (list of dicts), is_partial, warnings, changed
        """
        options = options or GenerationOptions()

        validation = self.validator.validate_generation_request(client_id, product_id, year, options)
        if not validation.is_valid:
            return OperationResult(
                success=False,
                message="Validation failed",
                errors=validation.errors,
                data={'changed': False}
            )

        try:
            if options.carrier_id is not None and not self.data.carrier_serves_product(options.carrier_id, product_id):
                raise CarrierNotLinkedError(options.carrier_id, product_id)

            cities = self.data.get_cities(client_id)
            requirements = self.data.get_requirements(client_id)
            seasonality = self.data.get_seasonality(client_id, product_id, year)
            topology = self.data.get_topology(client_id)

            warnings = list(validation.warnings)
            reference = self.validator.validate_reference_data(cities, requirements, seasonality, options)
            warnings.extend(reference.warnings)

            # Events just outside the period can share its first/last week
            period_start, period_end = options.period(year)
            window_from = week_start_of(period_start)
            window_to = week_start_of(period_end) + timedelta(days=6)
            live_events = self.data.get_live_events(client_id, window_from, window_to)

            result = self.generator.generate(
                client_id, product_id, year,
                cities=cities,
                requirements=requirements,
                topology=topology,
                seasonality=seasonality,
                options=options,
                live_events=live_events,
            )

            with db_transaction(self.engine) as conn:
                plan_id = self.data.insert_plan(conn, result.plan)
                self.data.insert_details(conn, plan_id, result.details)
            result.plan.id = plan_id

            clear_console_cache()

            logger.info(
                f"Draft plan #{plan_id} saved for client {client_id}: "
                f"{result.plan.calculated_events} events, {result.plan.unassigned_events} deferred"
            )

            if result.is_partial:
                message = (
                    f"Draft plan #{plan_id} created with {result.plan.calculated_events} of "
                    f"{result.plan.total_events} events; {len(result.deferred)} could not be placed"
                )
            else:
                message = f"Draft plan #{plan_id} created with {result.plan.calculated_events} events"

            return OperationResult(
                success=True,
                message=message,
                data={
                    'plan_id': plan_id,
                    'plan': result.plan,
                    'calculated_events': result.plan.calculated_events,
                    'deferred': [asdict(d) for d in result.deferred],
                    'is_partial': result.is_partial,
                    'warnings': warnings,
                    'changed': True,
                }
            )

        except ConfigurationError as e:
            logger.warning(f"Plan generation rejected for client {client_id}: {e}")
            return OperationResult(
                success=False,
                message=f"Configuration error: {e}",
                errors=[str(e)],
                data={'changed': False, 'error_type': type(e).__name__}
            )
        except Exception as e:
            logger.error(f"Error generating plan for client {client_id}: {e}", exc_info=True)
            return OperationResult(
                success=False,
                message="Failed to generate plan",
                errors=["An unexpected error occurred while generating the plan"],
                data={'changed': False, 'technical_error': str(e)}
            )

    # ================================================================
    # MERGE
    # ================================================================

    def preview_merge(self, client_id: int, plan_id: int, strategy) -> OperationResult:
        """How many live events a merge would supersede"""
        try:
            plan = self.data.get_plan(client_id, plan_id)
            if plan is None:
                raise PlanNotFoundError(plan_id, client_id)

            validation = self.validator.validate_merge_request(strategy)
            if not validation.is_valid:
                return OperationResult(success=False, message="Validation failed", errors=validation.errors)

            superseded = self.merger.count_superseded(plan, strategy)
            validation = self.validator.validate_merge_request(strategy, superseded)
            return OperationResult(
                success=True,
                message=f"Merging plan #{plan_id} will supersede {superseded} live events",
                data={
                    'plan': plan,
                    'superseded_events': superseded,
                    'already_merged': plan.is_merged,
                    'warnings': validation.warnings,
                    'changed': False,
                }
            )

        except PlanEngineError as e:
            return OperationResult(success=False, message=str(e), errors=[str(e)], data={'changed': False})
        except Exception as e:
            logger.error(f"Error previewing merge of plan {plan_id}: {e}", exc_info=True)
            return OperationResult(
                success=False,
                message="Failed to preview merge",
                errors=["An unexpected error occurred"],
                data={'changed': False, 'technical_error': str(e)}
            )

    def merge(self, client_id: int, plan_id: int, strategy) -> OperationResult:
        validation = self.validator.validate_merge_request(strategy)
        if not validation.is_valid:
            return OperationResult(
                success=False, message="Validation failed", errors=validation.errors, data={'changed': False}
            )

        try:
            merged = self.merger.merge(client_id, plan_id, strategy)
            clear_console_cache()

            message = f"Plan #{plan_id} merged: {merged.inserted_events} events are now live"
            if merged.superseded_events:
                verb = 'deleted' if merged.replace_mode == 'delete' else 'cancelled'
                message += f", {merged.superseded_events} previous events {verb}"

            return OperationResult(
                success=True,
                message=message,
                data={
                    'plan': merged.plan,
                    'inserted_events': merged.inserted_events,
                    'superseded_events': merged.superseded_events,
                    'replace_mode': merged.replace_mode,
                    'changed': True,
                }
            )

        except PlanEngineError as e:
            logger.warning(f"Merge of plan {plan_id} rejected: {e}")
            return OperationResult(
                success=False,
                message=str(e),
                errors=[str(e)],
                data={'changed': False, 'error_type': type(e).__name__}
            )
        except Exception as e:
            logger.error(f"Error merging plan {plan_id}: {e}", exc_info=True)
            return OperationResult(
                success=False,
                message="Failed to merge plan; the transaction was rolled back and nothing changed",
                errors=["An unexpected error occurred while merging"],
                data={'changed': False, 'technical_error': str(e)}
            )

    # ================================================================
    # DRAFTS & LISTING
    # ================================================================

    def delete_draft(self, client_id: int, plan_id: int) -> OperationResult:
        if not config.is_feature_enabled('DRAFT_DELETE'):
            return OperationResult(success=False, message="Draft deletion is disabled", data={'changed': False})

        try:
            deleted = self.merger.delete_draft(client_id, plan_id)
            clear_console_cache()
            return OperationResult(
                success=True,
                message=f"Draft plan #{plan_id} deleted ({deleted} events)",
                data={'deleted_events': deleted, 'changed': True}
            )

        except PreconditionError as e:
            logger.warning(f"Delete of plan {plan_id} rejected: {e}")
            return OperationResult(
                success=False,
                message=str(e),
                errors=[str(e)],
                data={'changed': False, 'error_type': type(e).__name__}
            )
        except Exception as e:
            logger.error(f"Error deleting plan {plan_id}: {e}", exc_info=True)
            return OperationResult(
                success=False,
                message="Failed to delete draft plan",
                errors=["An unexpected error occurred"],
                data={'changed': False, 'technical_error': str(e)}
            )

    def list_plans(self, client_id: int, year: Optional[int] = None):
        return self.data.list_plans(client_id, year)

    def get_plan(self, client_id: int, plan_id: int):
        return self.data.get_plan(client_id, plan_id)

    def get_plan_details(self, client_id: int, plan_id: int):
        return self.data.get_plan_details(client_id, plan_id)

    def count_superseded(self, client_id: int, plan_id: int, strategy=MergeStrategy.REPLACE) -> int:
        plan = self.data.get_plan(client_id, plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id, client_id)
        return self.merger.count_superseded(plan, strategy)
