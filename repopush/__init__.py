"""
repopush - publish a local directory tree to GitHub.

This package pushes a working tree to a GitHub repository and can split its
immediate subdirectories into independently hosted "subcontainers" that the
parent references by gitlink. Synchronization is conservative by default:
the remote is fetched but never merged unless automatic pulling is enabled.
"""

__version__ = "1.0.0"
__author__ = "repopush contributors"
__description__ = "Publish directory trees to GitHub with subcontainer reconciliation"

from .cli import main

__all__ = ["main"]
