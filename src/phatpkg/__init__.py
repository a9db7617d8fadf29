# phatpkg/src/phatpkg/__init__.py
"""
This package combines an Apple Silicon build and an Intel build of the same
macOS application into one installer package that installs only the payload
matching the host it runs on.
"""

from .exceptions import BuildError
from .logbook import LogBook
from .models import Architecture, PackageResult, ResolvedBundle
from .packaging.orchestrator import BuildOrchestrator

__all__ = [
    "Architecture",
    "BuildError",
    "BuildOrchestrator",
    "LogBook",
    "PackageResult",
    "ResolvedBundle",
]
