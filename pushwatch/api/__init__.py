"""pushwatch HTTP API layer.

This package provides the Falcon Asynchronous Server Gateway Interface
(ASGI) application exposing read-only pipeline statistics.

Usage
-----
Create and run the application::

    from pushwatch.api import AppDependencies, create_app

    app = create_app(AppDependencies(stats_service=stats_service))

Public API
----------
create_app
    Application factory registering ``GET /stats``.
"""

from pushwatch.api.app import AppDependencies, create_app

__all__ = ["AppDependencies", "create_app"]
