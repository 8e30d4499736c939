"""
Data ingestion package for the restaurant finder.

Responsibilities:
- Read raw merchant dumps collected from the delivery platform.
- Normalize them into the canonical Restaurant schema.
- Upsert them by external id into the processed snapshot served by the API.
"""
