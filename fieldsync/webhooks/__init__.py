"""Inbound ServiceM8 webhook processing."""
