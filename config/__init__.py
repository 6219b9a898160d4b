"""
Configuration package for the monitor service.

Provides the configuration interface and the environment-backed
implementation used by the service entry point.
"""
from .base import BaseConfiguration, ConfigurationError
from .environment import EnvironmentConfiguration

__all__ = [
    'BaseConfiguration',
    'ConfigurationError',
    'EnvironmentConfiguration'
]
