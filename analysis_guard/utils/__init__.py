"""
Utility modules for validation, logging, metrics and API responses.
"""
from .validators import ValidationError

__all__ = ['ValidationError']
