"""Exceptions raised by the reconciliation orchestrator."""


class ReconciliationError(Exception):
    """A reconciliation run could not be started."""
