"""
pytest suite for the merchant IPN confirmation service.

Test categories:
- unit: services and helpers against a per-test SQLite ledger and a stubbed gateway
- api: FastAPI routes through httpx ASGITransport
- integration: concurrent writers and duplicate deliveries
"""
