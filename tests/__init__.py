"""
Archive Server Test Suite.

This package contains:
- unit/: Unit tests (temporary directories, no network)
- integration/: Batcher passes against the in-memory object store
"""
