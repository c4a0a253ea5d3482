"""Logging and metrics for kubesentry."""
