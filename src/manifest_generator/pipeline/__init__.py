"""
Manifest Generator Pipeline Module.

Request-scoped orchestration of the publishing pipeline.
"""

from .fetcher import LinkFetcher
from .orchestrator import Orchestrator, RunContext, release_local_file

__all__ = ["LinkFetcher", "Orchestrator", "RunContext", "release_local_file"]
