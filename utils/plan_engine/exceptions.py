"""
Plan Engine Exceptions
======================
Configuration and precondition errors abort an operation; each carries
enough context (city, panelist, plan, date) for an operator to fix the
input. Capacity exhaustion is not an exception: it is reported through the
generator's ``deferred`` list.
"""


# ==================== CUSTOM EXCEPTIONS ====================

class PlanEngineError(Exception):
    """Base exception for allocation plan engine errors"""

    # Whether any persisted row was modified before the error surfaced
    changed = False


# ---------- Configuration errors ----------

class ConfigurationError(PlanEngineError):
    """Reference data is inconsistent and must be fixed in configuration"""
    pass


class InvalidSeasonalityError(ConfigurationError):
    """Raised when the twelve monthly percentages do not sum to 100"""

    def __init__(self, total, product_id=None, year=None):
        self.total = total
        self.product_id = product_id
        self.year = year
        scope = f" for product {product_id} / {year}" if product_id is not None else ""
        super().__init__(
            f"Seasonality percentages{scope} sum to {total}%, expected 100%. "
            f"Fix the product seasonality configuration; values are never rescaled."
        )


class MissingSeasonalityError(ConfigurationError):
    """Raised when seasonality is applied but no row exists for the product/year"""

    def __init__(self, product_id, year):
        self.product_id = product_id
        self.year = year
        super().__init__(
            f"No seasonality configured for product {product_id} in {year}. "
            f"Configure it or generate with seasonality disabled."
        )


class CarrierNotLinkedError(ConfigurationError):
    """Raised when the plan's carrier is not assigned to its product"""

    def __init__(self, carrier_id, product_id):
        self.carrier_id = carrier_id
        self.product_id = product_id
        super().__init__(
            f"Carrier #{carrier_id} is not assigned to product #{product_id}. "
            f"Link them in carrier_products or pick another carrier."
        )


# ---------- Precondition errors ----------

class PreconditionError(PlanEngineError):
    """The request cannot run against the current state"""
    pass


class PlanNotFoundError(PreconditionError):
    def __init__(self, plan_id, client_id=None):
        self.plan_id = plan_id
        super().__init__(f"Plan #{plan_id} not found for client {client_id}")


class AlreadyMergedError(PreconditionError):
    """Raised when merging (or deleting) a plan that is already merged"""

    def __init__(self, plan_id):
        self.plan_id = plan_id
        super().__init__(f"Plan #{plan_id} is already merged; a plan can only be merged once")


class PanelistWithoutNodeError(PreconditionError):
    def __init__(self, panelist_id, role='panelist'):
        self.panelist_id = panelist_id
        self.role = role
        super().__init__(f"The {role} (#{panelist_id}) has no assigned node")


class PanelistNotFoundError(PreconditionError):
    def __init__(self, panelist_id, client_id):
        self.panelist_id = panelist_id
        super().__init__(f"Panelist #{panelist_id} not found for client {client_id}")


class InvalidDateRangeError(PreconditionError):
    def __init__(self, date_from, date_to):
        self.date_from = date_from
        self.date_to = date_to
        super().__init__(f"Invalid date range: {date_from} is after {date_to}")


class NothingToReassignError(PreconditionError):
    """No in-flight events match the reassignment filters"""

    def __init__(self, node_code, date_from, date_to):
        super().__init__(
            f"No PENDING or NOTIFIED events reference node {node_code} "
            f"between {date_from} and {date_to}. Nothing changed."
        )


# ---------- Write failures ----------

class ReassignmentPhaseError(PlanEngineError):
    """An update statement of a bulk reassignment failed"""

    def __init__(self, phase, rolled_back, cause):
        self.phase = phase
        self.rolled_back = rolled_back
        self.changed = not rolled_back
        self.cause = cause
        if rolled_back:
            outcome = "The transaction was rolled back; nothing changed."
        else:
            outcome = (
                "Earlier updates may have been applied; events are partially changed "
                "and must be reconciled manually."
            )
        super().__init__(f"Bulk reassignment failed during the {phase} update: {cause}. {outcome}")
