"""
Transport implementations for the ledger explorer service.

Supports:
- HTTP/REST (FastAPI)
"""
