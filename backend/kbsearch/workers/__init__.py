"""Celery application and worker setup."""
