"""
MedAssist Test Suite
====================

This package contains all tests for the MedAssist medication adherence assistant.

Test Structure:
- test_tools/: schedule normalization and messaging helpers
- test_services/: data access, inference parsing, conversation handling
- test_actions/: reminder scan, reconciliation, reports, alerts, confirmations, jobs
- test_api/: FastAPI routes
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_actions/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "integration"
"""
