"""
Serving — FastAPI application for document upload and chat.

This module exposes the pipeline over HTTP so it can run as a standalone
container behind any ASGI server.
"""
