"""
HTTP surface for the query router.
"""

from tabgraph_router.server.app import create_app

__all__ = ["create_app"]
