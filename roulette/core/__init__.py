"""Core session primitives (push events).

Kept free of FastAPI concerns so it can be reused by API routes, the hub, and tests.
"""
