"""Base model for all Gallerybox Pydantic models.

This module provides a base model class that enforces consistent serialization
behavior across all Gallerybox models.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class GalleryboxBaseModel(BaseModel):
    """Base model class for all Gallerybox Pydantic models.

    Serialization helpers always use field aliases and JSON-compatible output
    (e.g. datetime -> ISO string) so models round-trip through cache sidecars.
    """

    model_config = ConfigDict(
        # Allow extra fields so newer sidecars load in older versions
        extra="allow",
        # Strip whitespace from string fields
        str_strip_whitespace=True,
        # Validate assignment after model creation
        validate_assignment=True,
        populate_by_name=True,
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary with consistent serialization parameters.

        Returns:
            Dictionary representation using JSON-compatible serialization
        """
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
