class BudgetTrackerError(Exception):
    """Base class for domain errors raised below the HTTP layer."""


class NoBudgetConfigured(BudgetTrackerError):
    """The user has no active budget, so no threshold can be evaluated."""

    def __init__(self, user_email: str):
        super().__init__(f"No active budget for {user_email}")
        self.user_email = user_email


class StoreUnavailable(BudgetTrackerError):
    """The database could not be reached or refused the operation."""


class DuplicateSuppressed(BudgetTrackerError):
    """A notification of this kind already exists for the period."""

    def __init__(self, user_email: str, kind: str, period_start):
        super().__init__(f"{kind} already fired for {user_email} in period {period_start}")
        self.user_email = user_email
        self.kind = kind
        self.period_start = period_start
