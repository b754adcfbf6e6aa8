"""
Celery tasks module
Import all tasks here so Celery can discover them
"""
from . import subscription_tasks

__all__ = ['subscription_tasks']
