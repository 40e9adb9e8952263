"""Core domain: models, ports and the monitoring manager."""
