"""
Infrastructure Layer

Reusable services that support the loaders without owning warehouse I/O.

Components:
- schema: column type definitions and schema-drift comparison
"""

__all__: list[str] = []
