"""Network probing services package."""

from .probe_service import ProbeService
from .resolver_service import RemoteTarget, ResolutionError, ResolverService

__all__ = [
    "ProbeService",
    "RemoteTarget",
    "ResolutionError",
    "ResolverService",
]
