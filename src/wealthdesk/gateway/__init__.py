"""Local HTTP gateway -- JSON endpoints for the dashboard UI."""

from wealthdesk.gateway.app import create_gateway_app

__all__ = ["create_gateway_app"]
