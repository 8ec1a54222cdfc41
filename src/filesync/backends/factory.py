"""Storage backend factory for creating backend instances."""

from typing import Any, Dict, List, Optional, Type

from ..models import ServiceType
from .base import BaseStorageBackend
from .folder import FolderStorageBackend
from .memory import MemoryStorageBackend


class StorageBackendFactory:
    """Factory for creating storage backend instances."""

    _backend_classes: Dict[ServiceType, Type[BaseStorageBackend]] = {
        ServiceType.NONE: MemoryStorageBackend,
        ServiceType.APPLE_CLOUD: FolderStorageBackend,
    }

    @classmethod
    def create_backend(
        cls,
        service_type: ServiceType,
        backend_details: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> BaseStorageBackend:
        """Create a storage backend instance.

        Args:
            service_type: Provider to talk to
            backend_details: Configuration specific to this backend
            **kwargs: Additional parameters

        Returns:
            Configured storage backend

        Raises:
            ValueError: If no backend is registered for the service type
        """
        service_type = ServiceType(service_type)
        if service_type not in cls._backend_classes:
            raise ValueError(f"Unsupported service type: {service_type.description}")

        backend_class = cls._backend_classes[service_type]
        return backend_class(backend_details=backend_details or {}, **kwargs)

    @classmethod
    def get_supported_types(cls) -> List[ServiceType]:
        """Get list of supported service types."""
        return list(cls._backend_classes.keys())

    @classmethod
    def register_backend(cls, service_type: ServiceType, backend_class: Type[BaseStorageBackend]):
        """Register a backend class for a service type.

        Args:
            service_type: Provider the backend talks to
            backend_class: Backend class to register
        """
        cls._backend_classes[service_type] = backend_class
