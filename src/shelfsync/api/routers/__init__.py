"""Routers mounted by :func:`shelfsync.api.app.create_app`."""
