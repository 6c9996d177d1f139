"""Server package for the deployment API.

The server exposes machine CRUD, deployment and status endpoints over HTTP
for the canvas UI.
"""

from server.httpd import Server

__all__ = [
    "Server",
]
