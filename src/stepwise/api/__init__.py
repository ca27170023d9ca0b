"""
REST API layer for stepwise.

Quick start::

    from stepwise.api import create_app

    app = create_app()  # ready for uvicorn

This package owns the HTTP boundary. Behaviour lives in
``stepwise.install`` and ``stepwise.orchestration``; routers here handle
serialisation, error mapping and request context only.
"""

from stepwise.api.app import create_app

__all__ = ["create_app"]
