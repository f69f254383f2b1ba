"""
Batch orchestration: keys, results, progress, task execution and retries.
"""

from .models import (
    BatchProgress,
    GenerationResult,
    GenerationTask,
    ResultKey,
    ResultStatus,
    TaskKind
)
from .store import ResultStore
from .progress import ProgressTracker
from .runner import TaskRunner
from .batch import BatchCoordinator, build_tasks
from .retry import RetryCoordinator
from .service import BatchOrchestrator

__all__ = [
    'BatchOrchestrator',
    'BatchCoordinator',
    'BatchProgress',
    'GenerationResult',
    'GenerationTask',
    'ProgressTracker',
    'ResultKey',
    'ResultStatus',
    'ResultStore',
    'RetryCoordinator',
    'TaskKind',
    'TaskRunner',
    'build_tasks'
]
