"""HTTP API for SmartCommerce."""
