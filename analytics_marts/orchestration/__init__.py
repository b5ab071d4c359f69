"""
Model Orchestration Module
"""
from .registry import (
    CyclicDependencyError,
    Materialization,
    ModelNode,
    ModelNotFoundError,
    ModelRegistry,
    SelectionError,
    model,
    registry,
)
from .runner import (
    ModelResult,
    ModelStatus,
    ProjectRunner,
    RelationNotFoundError,
    RunContext,
    RunResult,
    load_project,
)
from .sources import SOURCE_TABLES, SourceCatalog, SourceContractError, SourceNotFoundError

__all__ = [
    "CyclicDependencyError",
    "Materialization",
    "ModelNode",
    "ModelNotFoundError",
    "ModelRegistry",
    "SelectionError",
    "model",
    "registry",
    "ModelResult",
    "ModelStatus",
    "ProjectRunner",
    "RelationNotFoundError",
    "RunContext",
    "RunResult",
    "load_project",
    "SOURCE_TABLES",
    "SourceCatalog",
    "SourceContractError",
    "SourceNotFoundError",
]
