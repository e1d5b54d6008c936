"""
Pytest test suite for the Marketplace API backend.

Test categories:
- Unit tests: service helpers with the Paystack client mocked
- API tests: full FastAPI app over httpx with in-memory SQLite
- Integration tests: ORM constraints and relationships
"""
