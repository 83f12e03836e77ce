"""
Utilities package for the pysd runtime publisher.
"""

from .config.env_validator import EnvironmentValidator, ConfigurationError

__all__ = [
    'EnvironmentValidator',
    'ConfigurationError'
]
