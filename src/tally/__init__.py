"""Reconcile test runner output with statically declared tests."""

__version__ = "0.3.0"
