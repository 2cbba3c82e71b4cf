"""Utility helpers for kalito."""

from kalito.utils.logging import setup_logging

__all__ = ["setup_logging"]
