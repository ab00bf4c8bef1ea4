"""ServiceM8 synchronization and reconciliation service."""
