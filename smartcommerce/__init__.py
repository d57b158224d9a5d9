"""SmartCommerce authentication, session and address services."""

__version__ = "1.0.0"
