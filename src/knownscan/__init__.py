# src/knownscan/__init__.py
"""
knownscan: Known/Unknown value propagation analysis for declarative
infrastructure dependency graphs.

Finds the places where a value that only exists after apply reaches a
construct that needs a concrete key set at plan time.
"""

__version__ = "0.1.0"
