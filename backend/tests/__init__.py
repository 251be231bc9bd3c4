"""
Study Tracker Test Suite

Test Structure:
    tests/
    ├── conftest.py              # Shared fixtures and record factories
    ├── unit/                    # Unit tests (mocked database, no services)
    │   ├── test_duration.py     # Active-time accounting
    │   ├── test_session_machine.py  # Transition table and mutations
    │   ├── test_progress.py     # Goal progress engine
    │   ├── test_sweep.py        # Overdue/recurrence batch job
    │   └── ...
    └── integration/             # Integration tests (require PostgreSQL)
        └── test_concurrency.py  # Concurrent writers against the real schema

Running Tests:
    # Run all tests
    pytest backend/tests/ -v

    # Run only unit tests (fast, no dependencies)
    pytest backend/tests/unit/ -v

    # Run only integration tests (requires PostgreSQL)
    pytest backend/tests/integration/ -v -m integration

    # Run with coverage
    pytest backend/tests/ --cov=studytrack --cov-report=html
"""
