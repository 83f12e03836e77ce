"""
Environment validator for the pysd runtime publisher.

Validates and reads the environment variables that select the monitoring
backend and its destination.
"""
import os
from typing import Dict, Optional, Any
from loguru import logger
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

BACKEND_STACKDRIVER = "stackdriver"
BACKEND_AZURE = "azure"
SUPPORTED_BACKENDS = (BACKEND_STACKDRIVER, BACKEND_AZURE)

# Env var naming the destination for each backend
DESTINATION_VARS = {
    BACKEND_STACKDRIVER: "GOOGLE_CLOUD_PROJECT",
    BACKEND_AZURE: "APPLICATIONINSIGHTS_CONNECTION_STRING",
}


class ConfigurationError(ValueError):
    """Raised when the publisher configuration is missing or invalid."""


class EnvironmentValidator:
    """Validates required environment variables for the publisher."""

    @staticmethod
    def get_backend() -> str:
        """Get the configured monitoring backend.

        Returns:
            Backend name, one of SUPPORTED_BACKENDS

        Raises:
            ConfigurationError: If PYSD_BACKEND names an unknown backend
        """
        backend = os.getenv("PYSD_BACKEND", BACKEND_STACKDRIVER).strip().lower()
        if backend not in SUPPORTED_BACKENDS:
            raise ConfigurationError(
                f"Unsupported PYSD_BACKEND '{backend}', expected one of: {', '.join(SUPPORTED_BACKENDS)}")
        return backend

    @staticmethod
    def get_destination(backend: Optional[str] = None) -> Optional[str]:
        """Get the destination identifier for a backend from the environment.

        Args:
            backend: Backend name, defaults to the configured one

        Returns:
            Project id or connection string, None if not set
        """
        backend = backend or EnvironmentValidator.get_backend()
        return os.getenv(DESTINATION_VARS[backend]) or None

    @staticmethod
    def validate_publisher_config(destination: Optional[str] = None) -> Dict[str, bool]:
        """Validate publisher configuration environment variables.

        Args:
            destination: Destination given on the command line, replaces the env var

        Returns:
            Dictionary with validation results for each setting
        """
        results = {
            "backend": False,
            "destination": False,
            "send_timeout": False
        }

        try:
            backend = EnvironmentValidator.get_backend()
            results["backend"] = True
        except ConfigurationError as e:
            logger.error(str(e))
            backend = None

        if backend:
            results["destination"] = (destination or EnvironmentValidator.get_destination(backend)) is not None
            if not results["destination"]:
                logger.error(f"Missing required {backend} destination: {DESTINATION_VARS[backend]}")

        try:
            EnvironmentValidator.get_send_timeout()
            results["send_timeout"] = True
        except ConfigurationError as e:
            logger.error(str(e))

        return results

    @staticmethod
    def get_send_timeout() -> float:
        """Get the bound on one outbound write, in seconds."""
        raw = os.getenv("PYSD_SEND_TIMEOUT_SECONDS", "30")
        try:
            timeout = float(raw)
        except ValueError:
            raise ConfigurationError(f"PYSD_SEND_TIMEOUT_SECONDS must be a number, got '{raw}'")
        if timeout <= 0:
            raise ConfigurationError(f"PYSD_SEND_TIMEOUT_SECONDS must be positive, got {timeout}")
        return timeout

    @staticmethod
    def is_tracemalloc_enabled() -> bool:
        """Check if tracemalloc should be started so heap metrics are non-zero."""
        return os.getenv("PYSD_TRACEMALLOC", "false").lower() == "true"

    @staticmethod
    def is_gc_object_count_enabled() -> bool:
        """Check if the tracked-object count should be read each tick (walks the heap)."""
        return os.getenv("PYSD_COUNT_GC_OBJECTS", "true").lower() == "true"

    @staticmethod
    def get_publisher_config() -> Dict[str, Any]:
        """Get publisher configuration parameters.

        Returns:
            Dictionary with publisher configuration parameters
        """
        backend = EnvironmentValidator.get_backend()
        return {
            "backend": backend,
            "destination": EnvironmentValidator.get_destination(backend),
            "send_timeout": EnvironmentValidator.get_send_timeout(),
            "tracemalloc": EnvironmentValidator.is_tracemalloc_enabled(),
            "count_gc_objects": EnvironmentValidator.is_gc_object_count_enabled(),
            "log_level": os.getenv("LOG_LEVEL", "INFO").upper()
        }
