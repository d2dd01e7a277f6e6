"""Web interface: FastAPI application, WebSocket channel and server startup."""
