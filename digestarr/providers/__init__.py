"""Source clients for the services a newsletter is built from."""

from digestarr.providers.base import (
    DecodeError,
    NotConfiguredError,
    SourceClient,
    SourceError,
    UpstreamError,
)
from digestarr.providers.radarr import RadarrClient
from digestarr.providers.sonarr import SonarrClient
from digestarr.providers.trakt import TraktClient

__all__ = [
    "DecodeError",
    "NotConfiguredError",
    "RadarrClient",
    "SonarrClient",
    "SourceClient",
    "SourceError",
    "TraktClient",
    "UpstreamError",
]
