"""Framework adapters serving the monitoring endpoints."""
