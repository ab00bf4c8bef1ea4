"""Sync engine: pulls upstream entities and upserts them into local storage."""
