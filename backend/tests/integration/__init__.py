"""
Integration tests package.

Integration tests run the storage layer against a real PostgreSQL
database with the pgvector extension installed (DATABASE_URL).

To run integration tests:
    pytest tests/integration/ -v --run-integration

To skip integration tests (default):
    pytest tests/ -v
"""
