"""Repository replicator.

Creates many copies of source repositories in GitHub organizations:
- configuration loaded from `.env` and a JSON directive file
- structured logging
- throttled, concurrent repository creation with a rollback manifest
"""

__version__ = "0.1.0"

from repo_replicator.config import ReplicatorSettings

__all__ = ["__version__", "ReplicatorSettings"]
