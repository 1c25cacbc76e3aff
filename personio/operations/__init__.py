# =============================================================================
# personio/operations/__init__.py
# =============================================================================
# One module per Personio domain.  Importing them registers every operation
# in OPERATIONS; the dispatcher only ever looks operations up by name.
#
#   employees     list/get/search/update employees, absence balances
#   absences      time-off periods and absence types
#   attendance    attendance entries and projects
#   documents     document categories and uploads
#   organization  departments, structure and headcount (derived from roster)
#   policies      absence policy, working hours, holiday calendar
# =============================================================================

from personio.operations.base import OPERATIONS, NoParams, Operation, operation
from personio.operations import (  # noqa: F401  (registration side effect)
    absences,
    attendance,
    documents,
    employees,
    organization,
    policies,
)

__all__ = ["OPERATIONS", "NoParams", "Operation", "operation"]
