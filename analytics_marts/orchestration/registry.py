"""
Model Registry

Models are plain functions registered with the `@model` decorator. A model's
upstream dependencies are its parameter names: each one must name another
model or a raw source. A parameter called `ctx` receives the RunContext.

Example:
    @model(materialized="table", tags=["analytics"])
    def daily_revenue(stg_sales: pl.LazyFrame) -> pl.LazyFrame:
        return stg_sales.group_by("purchase_date").agg(pl.col("net_amount").sum())
"""

import inspect
from dataclasses import dataclass, field
from enum import Enum
from graphlib import CycleError, TopologicalSorter
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import polars as pl
import structlog

from .sources import SOURCE_TABLES

logger = structlog.get_logger(__name__)

CONTEXT_PARAM = "ctx"


class Materialization(str, Enum):
    """Persistence mode of a model's output"""
    VIEW = "view"  # Recomputed whenever referenced
    TABLE = "table"  # Collected and persisted


class ModelNotFoundError(KeyError):
    """Reference to a model or source that does not exist"""


class CyclicDependencyError(ValueError):
    """Model references form a cycle"""


class SelectionError(ValueError):
    """Selector does not match the project"""


@dataclass
class ModelNode:
    """A registered model and its declared configuration"""
    name: str
    func: Callable[..., pl.LazyFrame]
    materialized: Materialization
    depends_on: Tuple[str, ...]
    tags: Tuple[str, ...] = ()
    description: str = ""
    uses_context: bool = False

    def build(self, ctx, inputs: Dict[str, pl.LazyFrame]) -> pl.LazyFrame:
        """Call the model function with its resolved inputs"""
        kwargs = {dep: inputs[dep] for dep in self.depends_on}
        if self.uses_context:
            kwargs[CONTEXT_PARAM] = ctx
        return self.func(**kwargs)


@dataclass
class ModelRegistry:
    """Named models plus the source names they may reference"""
    sources: Set[str] = field(default_factory=lambda: set(SOURCE_TABLES))
    _models: Dict[str, ModelNode] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return name in self._models

    def __iter__(self) -> Iterator[ModelNode]:
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models)

    @property
    def names(self) -> List[str]:
        return list(self._models)

    def register(self, node: ModelNode) -> ModelNode:
        if node.name in self._models:
            raise ValueError(f"Model '{node.name}' is already registered")
        if node.name in self.sources:
            raise ValueError(f"Model '{node.name}' shadows a source of the same name")
        self._models[node.name] = node
        return node

    def model(
        self,
        name: Optional[str] = None,
        materialized: str = "view",
        tags: Iterable[str] = (),
        description: Optional[str] = None,
    ) -> Callable:
        """Decorator registering a function as a model"""
        def decorator(func: Callable[..., pl.LazyFrame]) -> Callable[..., pl.LazyFrame]:
            params = list(inspect.signature(func).parameters)
            doc = inspect.getdoc(func) or ""
            self.register(ModelNode(
                name=name or func.__name__,
                func=func,
                materialized=Materialization(materialized),
                depends_on=tuple(p for p in params if p != CONTEXT_PARAM),
                tags=tuple(tags),
                description=description if description is not None else doc.split("\n")[0],
                uses_context=CONTEXT_PARAM in params,
            ))
            return func

        return decorator

    def get(self, name: str) -> ModelNode:
        try:
            return self._models[name]
        except KeyError:
            raise ModelNotFoundError(f"Model '{name}' not found") from None

    def parents(self, name: str) -> List[str]:
        """Upstream models of `name` (sources excluded)"""
        return [d for d in self.get(name).depends_on if d in self._models]

    def children(self, name: str) -> List[str]:
        return [n.name for n in self if name in n.depends_on]

    def ancestors(self, name: str) -> Set[str]:
        found: Set[str] = set()
        stack = self.parents(name)
        while stack:
            current = stack.pop()
            if current not in found:
                found.add(current)
                stack.extend(self.parents(current))
        return found

    def descendants(self, name: str) -> Set[str]:
        found: Set[str] = set()
        stack = self.children(name)
        while stack:
            current = stack.pop()
            if current not in found:
                found.add(current)
                stack.extend(self.children(current))
        return found

    def validate(self) -> None:
        """Check every reference resolves and the graph is acyclic"""
        for node in self:
            for dep in node.depends_on:
                if dep not in self._models and dep not in self.sources:
                    raise ModelNotFoundError(
                        f"Model '{node.name}' references unknown model or source '{dep}'"
                    )
        self.topological_order()

    def topological_order(self, names: Optional[Iterable[str]] = None) -> List[str]:
        """
        Models in dependency order.

        Registration order breaks ties, so the order is stable across runs.
        Restricting to `names` keeps the relative order of the full graph.
        """
        sorter = TopologicalSorter({n.name: self.parents(n.name) for n in self})
        try:
            order = list(sorter.static_order())
        except CycleError as e:
            raise CyclicDependencyError(f"Dependency cycle: {' -> '.join(e.args[1])}") from e

        if names is None:
            return order
        wanted = set(names)
        return [n for n in order if n in wanted]

    def _resolve_selector(self, selector: str) -> Set[str]:
        with_ancestors = selector.startswith("+")
        with_descendants = selector.endswith("+")
        core = selector.strip("+")

        if core.startswith("tag:"):
            tag = core[len("tag:"):]
            base = {n.name for n in self if tag in n.tags}
            if not base:
                logger.warning("Selector matched no models", selector=selector)
        elif core in self._models:
            base = {core}
        else:
            raise SelectionError(f"Selector '{selector}' does not match any model")

        selected = set(base)
        for name in base:
            if with_ancestors:
                selected |= self.ancestors(name)
            if with_descendants:
                selected |= self.descendants(name)
        return selected

    def select(
        self,
        select: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
    ) -> List[str]:
        """
        Resolve selectors to models in dependency order.

        Selectors: `name`, `tag:<tag>`, `+name` (with ancestors) and
        `name+` (with descendants). No `select` means every model.
        """
        if select:
            chosen: Set[str] = set()
            for selector in select:
                chosen |= self._resolve_selector(selector)
        else:
            chosen = set(self._models)

        for selector in exclude or ():
            chosen -= self._resolve_selector(selector)

        return self.topological_order(chosen)


# Default project registry
registry = ModelRegistry()
model = registry.model
