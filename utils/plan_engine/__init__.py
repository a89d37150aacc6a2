"""
Allocation Plan Engine
======================
Turns city classification targets and product seasonality into a calendar
of shipment events, and moves draft plans live.

Components:
- ClassificationMatrix: incoming events per destination city
- SeasonalityDistributor: annual target -> monthly targets
- CapacityConstraintChecker: weekly caps per panelist, node availability
- PlanGenerator: draft plan + deferred units
- PlanMerger: draft -> merged (add / replace)
- PlanGenerationService: what the console calls
- PlanExporter: CSV exports and import template validation

Every operation takes an explicit client_id; nothing is shared between
clients.
"""

from .exceptions import (
    PlanEngineError,
    ConfigurationError,
    InvalidSeasonalityError,
    MissingSeasonalityError,
    CarrierNotLinkedError,
    PreconditionError,
    AlreadyMergedError,
    PlanNotFoundError,
    PanelistNotFoundError,
    PanelistWithoutNodeError,
    InvalidDateRangeError,
    NothingToReassignError,
    ReassignmentPhaseError,
)
from .models import (
    City,
    CityAllocationRequirement,
    Classification,
    DetailStatus,
    GeneratedAllocationPlan,
    GenerationOptions,
    GenerationResult,
    MergeStrategy,
    Node,
    Panelist,
    PlanDetail,
    PlanStatus,
    ProductSeasonality,
    Topology,
)
from .classification_matrix import ClassificationMatrix
from .seasonality import SeasonalityDistributor
from .capacity_checker import CapacityConstraintChecker, week_start_of
from .plan_generator import PlanGenerator
from .plan_data import PlanEngineData
from .plan_merger import PlanMerger
from .plan_validators import PlanValidator, ValidationResult
from .plan_service import PlanGenerationService, OperationResult
from .plan_formatters import PlanFormatters
from .plan_exports import PlanExporter, validate_import_frame, to_csv_bytes

__all__ = [
    'PlanEngineError',
    'ConfigurationError',
    'InvalidSeasonalityError',
    'MissingSeasonalityError',
    'CarrierNotLinkedError',
    'PreconditionError',
    'AlreadyMergedError',
    'PlanNotFoundError',
    'PanelistNotFoundError',
    'PanelistWithoutNodeError',
    'InvalidDateRangeError',
    'NothingToReassignError',
    'ReassignmentPhaseError',
    'City',
    'CityAllocationRequirement',
    'Classification',
    'DetailStatus',
    'GeneratedAllocationPlan',
    'GenerationOptions',
    'GenerationResult',
    'MergeStrategy',
    'Node',
    'Panelist',
    'PlanDetail',
    'PlanStatus',
    'ProductSeasonality',
    'Topology',
    'ClassificationMatrix',
    'SeasonalityDistributor',
    'CapacityConstraintChecker',
    'week_start_of',
    'PlanGenerator',
    'PlanEngineData',
    'PlanMerger',
    'PlanValidator',
    'ValidationResult',
    'PlanGenerationService',
    'OperationResult',
    'PlanFormatters',
    'PlanExporter',
    'validate_import_frame',
    'to_csv_bytes',
]

__version__ = '2.0.0'
