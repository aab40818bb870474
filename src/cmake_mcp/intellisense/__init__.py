"""Per-source-file compile configurations derived from the project model."""

from .provider import (
    BrowseConfiguration,
    SourceFileConfiguration,
    SourceFileConfigurationProvider,
    get_standard,
)

__all__ = [
    "BrowseConfiguration",
    "SourceFileConfiguration",
    "SourceFileConfigurationProvider",
    "get_standard",
]
