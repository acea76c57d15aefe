"""
Integration tests for perfkit.

These tests wire the token cache, data allocator, correlation store,
validator and error log together the way a load-test script does.
"""
