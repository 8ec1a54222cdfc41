"""Sync profile schema."""

from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from ..models import ServiceType


class SyncProfile(BaseModel):
    """Pairing of one remote folder with one local directory."""

    name: str = Field(..., description="Human-readable name for the profile")
    service_type: ServiceType = Field(..., description="Storage provider")
    backend_details: Dict[str, Any] = Field(default_factory=dict, description="Backend-specific settings")
    local_directory: Path = Field(..., description="Directory holding the local copies")
    extensions: Optional[List[str]] = Field(None, description="File extensions to sync (None = all)")
    max_concurrent_operations: Optional[int] = Field(None, description="Overrides the global concurrency cap")

    @field_validator("service_type", mode="before")
    @classmethod
    def parse_service_type(cls, v):
        """Accept service names (``apple_cloud``) as well as their numeric values."""
        if isinstance(v, str) and not v.isdigit():
            try:
                return ServiceType[v.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown service type: {v}")
        return v

    @field_validator("backend_details")
    @classmethod
    def validate_backend_details(cls, v, info: ValidationInfo):
        if info.data.get("service_type") == ServiceType.APPLE_CLOUD and not v.get("root"):
            raise ValueError("Folder-backed services require 'root' in backend_details")
        return v

    @field_validator("max_concurrent_operations")
    @classmethod
    def validate_concurrency(cls, v):
        if v is not None and v < 1:
            raise ValueError("Must allow at least 1 concurrent operation")
        return v


FOLDER_PROFILE_EXAMPLE = SyncProfile(
    name="Documents",
    service_type=ServiceType.APPLE_CLOUD,
    backend_details={"root": "~/Library/Mobile Documents/iCloud~filesync/Documents"},
    local_directory=Path("~/filesync/documents"),
    extensions=[".txt", ".md"],
)
