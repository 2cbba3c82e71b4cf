"""CLI module for kalito."""
