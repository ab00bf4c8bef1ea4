"""Exceptions raised by the sync engine."""


class SyncError(Exception):
    """A single entity could not be written to local storage."""


class SyncAbortedError(SyncError):
    """A full sync could not continue past one of its stages."""
