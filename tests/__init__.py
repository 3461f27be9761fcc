"""
TEMPFOCUS Test Suite

Test Organization:
    tests/
    ├── __init__.py          # This file
    ├── conftest.py          # Shared fixtures (logger cleanup)
    ├── mocks/               # Scriptable focuser and guider doubles
    └── unit/                # Unit tests (no external dependencies)

Running Tests:
    # Run all tests
    pytest tests/

    # Run only the compensation core
    pytest tests/unit/test_temp_compensation.py -v

Requirements:
    pip install -e ".[test]"
"""
