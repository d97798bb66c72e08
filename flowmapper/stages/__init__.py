"""Stages module - the observe/decide/execute/persist pipeline and its controller."""

from .base import BaseStage
from .observe import ObserveStage
from .decide import DecideStage
from .execute import ExecuteStage
from .persist import PersistStage
from .batch_executor import ActionBatchExecutor
from .controller import ExplorationController, apply_update

__all__ = [
    "BaseStage",
    "ObserveStage",
    "DecideStage",
    "ExecuteStage",
    "PersistStage",
    "ActionBatchExecutor",
    "ExplorationController",
    "apply_update",
]
