"""Domain services for SmartCommerce authentication and addresses."""
