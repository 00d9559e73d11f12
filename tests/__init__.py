"""
DocGraph Test Suite.

This package contains:
- models.py: Entity types shared by the tests
- unit/: Unit tests (no I/O beyond temporary SQLite files)
- integration/: Store/load/trash round trips through a DocGraph handle
"""
