"""Logging and metrics helpers for the gateway and its HTTP service."""
