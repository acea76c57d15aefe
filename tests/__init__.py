"""
Test suite for perfkit.

This package contains:
- unit/: isolated tests of one component each
- integration/: a full create -> read -> update -> delete run composed
  from every component against a fake HTTP backend
"""
