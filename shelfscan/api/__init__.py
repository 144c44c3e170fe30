"""REST API package."""
