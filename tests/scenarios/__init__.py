"""End-to-end scenarios for the SupplyGraph middleware.

Each module drives a FastAPI application through the ASGI adapters and checks
one aspect of the behavior seen by HTTP clients: replay, client keys,
concurrent duplicates, expiry, conditional reads and file uploads.
"""
