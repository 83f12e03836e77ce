"""
Configuration utilities for environment validation.
"""

from .env_validator import EnvironmentValidator, ConfigurationError

__all__ = ['EnvironmentValidator', 'ConfigurationError']
