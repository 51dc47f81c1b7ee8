"""
Ready-made handlers.

    from wirehttp.handlers import StaticFileHandler

    server.add_route("GET", "/assets/*path", StaticFileHandler("./public"))

or, equivalently, ``server.serve_static("/assets", "./public")``.
"""

from .static import FileBody, StaticFileHandler

__all__ = ["FileBody", "StaticFileHandler"]
