"""Core collector infrastructure.

This package contains configuration, logging and async database helpers shared
by the collection runners and the operator CLI.
"""
