# tests/property/__init__.py
