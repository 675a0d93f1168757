"""
Core Module.

Shared data model and time helpers used by every study component.
"""
