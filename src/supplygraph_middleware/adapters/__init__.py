"""Framework adapters for the SupplyGraph request middleware.

- asgi.py: ASGI middleware for FastAPI, Starlette, etc.
"""

from supplygraph_middleware.adapters.asgi import ASGIETagMiddleware, ASGIIdempotencyMiddleware

__all__ = ["ASGIETagMiddleware", "ASGIIdempotencyMiddleware"]
