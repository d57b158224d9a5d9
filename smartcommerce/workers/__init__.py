"""Celery workers for SmartCommerce maintenance tasks."""

from smartcommerce.workers.celery_app import celery_app

__all__ = ["celery_app"]
