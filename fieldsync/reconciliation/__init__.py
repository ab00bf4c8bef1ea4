"""Reconciliation orchestration: run tracking, consistency checks and alerting."""
