"""Unit tests, one module per perfkit component."""
