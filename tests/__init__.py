"""
Tests for the tally reconciliation service.

Run all tests: pytest
Run one file: pytest tests/unit/test_reconciliation_service.py -v
"""
