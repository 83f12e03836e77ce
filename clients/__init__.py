"""
Monitoring backend clients for the pysd runtime publisher.
"""
from loguru import logger

from utils.config import EnvironmentValidator, ConfigurationError
from utils.config.env_validator import BACKEND_STACKDRIVER, BACKEND_AZURE


def create_client(destination: str, backend: str = None):
    """Create the monitoring client for the configured backend.

    Args:
        destination: Project id (stackdriver) or connection string (azure)
        backend: Backend name, defaults to PYSD_BACKEND

    Returns:
        Client exposing create_time_series(records)

    Raises:
        ConfigurationError: If the backend is unknown or destination is empty
    """
    backend = backend or EnvironmentValidator.get_backend()
    if not destination:
        raise ConfigurationError(f"No destination configured for the {backend} backend")

    timeout = EnvironmentValidator.get_send_timeout()

    if backend == BACKEND_STACKDRIVER:
        from .stackdriver_client import StackdriverClient
        return StackdriverClient(destination, timeout=timeout)
    if backend == BACKEND_AZURE:
        from .app_insights_client import AppInsightsClient
        return AppInsightsClient(destination)

    logger.error(f"Unknown monitoring backend: {backend}")
    raise ConfigurationError(f"Unknown monitoring backend: {backend}")


__all__ = ['create_client']
