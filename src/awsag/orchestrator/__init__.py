"""Access grant orchestration.

This package contains the workflow engine that drives access grants and
account assignments through their phases, and the conflict detector that
guards assignment creation.
"""

from .conflicts import ConflictDetector
from .workflow import AssignmentOrchestrator

__all__ = ["AssignmentOrchestrator", "ConflictDetector"]
