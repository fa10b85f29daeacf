"""
Tokenlock Core Module

Contracts, time sources, errors, configuration and logging.
"""

__all__ = []
