"""Resolution services."""
