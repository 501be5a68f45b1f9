# src/knownscan/core/__init__.py
"""Core subsystems: expressions, graph model, snapshots, config, logging."""
