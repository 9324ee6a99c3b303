"""API routers for the darts scoring server."""
