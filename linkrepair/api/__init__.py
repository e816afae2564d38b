"""REST API Module."""
