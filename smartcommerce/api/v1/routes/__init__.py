"""Route modules collected by the v1 router."""
