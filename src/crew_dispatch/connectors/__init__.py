"""Field-service system connectors."""

from .jobber_client import FieldServiceClient, JobberAPIError, JobberDispatchClient

__all__ = ["FieldServiceClient", "JobberAPIError", "JobberDispatchClient"]
