"""
Project Runner

Executes selected models in dependency order, materializing tables as
parquet and keeping views lazy. A failing model is recorded, and every model
downstream of it is skipped while independent branches keep running.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import time

import polars as pl
import structlog

from analytics_marts.config import get_settings
from analytics_marts.quality.model_tests import MODEL_TESTS
from analytics_marts.quality.validators import (
    ValidationCheck,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
)
from .registry import Materialization, ModelNode, ModelRegistry
from .sources import SourceCatalog

logger = structlog.get_logger(__name__)


class RelationNotFoundError(FileNotFoundError):
    """A referenced table has not been materialized yet"""


class ModelStatus(str, Enum):
    """Outcome of a single model"""
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class RunContext:
    """Run-wide values visible to models"""
    run_started_at: datetime
    vars: Dict[str, Any] = field(default_factory=dict)

    def var(self, name: str, default: Any = None) -> Any:
        return self.vars.get(name, default)


@dataclass
class ModelResult:
    """Result of building one model"""
    name: str
    status: ModelStatus
    materialized: Materialization
    rows: Optional[int] = None
    duration_seconds: float = 0.0
    output_path: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RunResult:
    """Results for every model selected in a run"""
    results: List[ModelResult]
    started_at: datetime
    completed_at: datetime

    @property
    def success(self) -> bool:
        return all(r.status == ModelStatus.SUCCESS for r in self.results)

    @property
    def errors(self) -> List[ModelResult]:
        return [r for r in self.results if r.status == ModelStatus.ERROR]

    @property
    def skipped(self) -> List[ModelResult]:
        return [r for r in self.results if r.status == ModelStatus.SKIPPED]

    def get(self, name: str) -> ModelResult:
        for result in self.results:
            if result.name == name:
                return result
        raise KeyError(name)


def load_project() -> ModelRegistry:
    """The default registry with every project model imported"""
    import analytics_marts.models  # noqa: F401  registers models
    from .registry import registry

    return registry


class ProjectRunner:
    """
    Dependency-ordered model execution.

    Example:
        runner = ProjectRunner(target_path="./data/target")
        result = runner.run(select=["tag:analytics"])
    """

    def __init__(
        self,
        registry: Optional[ModelRegistry] = None,
        sources: Optional[SourceCatalog] = None,
        target_path: Optional[str] = None,
        vars: Optional[Dict[str, Any]] = None,
        fail_fast: Optional[bool] = None,
        run_started_at: Optional[datetime] = None,
    ):
        settings = get_settings()
        self.registry = registry if registry is not None else load_project()
        self.sources = sources or SourceCatalog(raw_path=settings.data_lake.raw_path)
        self.target_path = Path(target_path or settings.data_lake.target_path)
        self.vars = {**settings.project.vars, **(vars or {})}
        self.fail_fast = settings.project.fail_fast if fail_fast is None else fail_fast
        self.run_started_at = run_started_at
        self._relations: Dict[str, pl.LazyFrame] = {}

    def _context(self) -> RunContext:
        return RunContext(
            run_started_at=self.run_started_at or datetime.utcnow().replace(microsecond=0),
            vars=dict(self.vars),
        )

    def relation_path(self, name: str) -> Path:
        return self.target_path / f"{name}.parquet"

    def _write_table(self, df: pl.DataFrame, name: str) -> str:
        """Persist a table, replacing any previous version in one step"""
        self.target_path.mkdir(parents=True, exist_ok=True)
        path = self.relation_path(name)
        tmp_path = path.with_suffix(".parquet.tmp")
        df.write_parquet(tmp_path)
        tmp_path.replace(path)
        return str(path)

    def _resolve(self, name: str, ctx: RunContext) -> pl.LazyFrame:
        """
        Lazy frame for a source or model.

        Models built earlier in the run are reused. Other tables are read
        from the target directory; other views are recomputed.
        """
        if name in self._relations:
            return self._relations[name]

        if name in self.sources:
            lf = self.sources.load(name)
        else:
            node = self.registry.get(name)
            if node.materialized == Materialization.TABLE:
                path = self.relation_path(name)
                if not path.exists():
                    raise RelationNotFoundError(
                        f"Table '{name}' has not been materialized at {path}"
                    )
                lf = pl.scan_parquet(path)
            else:
                lf = self._compile(node, ctx)

        self._relations[name] = lf
        return lf

    def _compile(self, node: ModelNode, ctx: RunContext) -> pl.LazyFrame:
        inputs = {dep: self._resolve(dep, ctx) for dep in node.depends_on}
        return node.build(ctx, inputs)

    def _build(self, node: ModelNode, ctx: RunContext) -> ModelResult:
        started = time.perf_counter()
        lf = self._compile(node, ctx)

        if node.materialized == Materialization.TABLE:
            df = lf.collect()
            output_path = self._write_table(df, node.name)
            self._relations[node.name] = df.lazy()
            rows = len(df)
        else:
            # Resolving the schema surfaces column errors without computing the view
            lf.collect_schema()
            self._relations[node.name] = lf
            output_path = None
            rows = None

        return ModelResult(
            name=node.name,
            status=ModelStatus.SUCCESS,
            materialized=node.materialized,
            rows=rows,
            duration_seconds=time.perf_counter() - started,
            output_path=output_path,
        )

    def run(
        self,
        select: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
        full_refresh: bool = False,
    ) -> RunResult:
        """
        Build the selected models.

        Args:
            select: Selectors (name, tag:<tag>, +name, name+); all models if empty
            exclude: Selectors to remove from the selection
            full_refresh: Drop persisted outputs of selected tables first

        Returns:
            RunResult with one ModelResult per selected model
        """
        self.registry.validate()
        order = self.registry.select(select, exclude)
        ctx = self._context()
        self._relations = {}
        started_at = datetime.utcnow()

        logger.info(f"Running {len(order)} models", full_refresh=full_refresh, vars=ctx.vars)

        if full_refresh:
            for name in order:
                path = self.relation_path(name)
                if self.registry.get(name).materialized == Materialization.TABLE and path.exists():
                    path.unlink()
                    logger.info("Dropped table", model=name)

        results: List[ModelResult] = []
        failed: Dict[str, str] = {}

        for name in order:
            node = self.registry.get(name)
            blocked = [dep for dep in node.depends_on if dep in failed]

            if blocked or (self.fail_fast and failed):
                reason = (
                    f"upstream model '{failed[blocked[0]]}' failed"
                    if blocked else "run stopped after first failure"
                )
                failed[name] = failed[blocked[0]] if blocked else name
                results.append(ModelResult(
                    name=name,
                    status=ModelStatus.SKIPPED,
                    materialized=node.materialized,
                    error=reason,
                ))
                logger.warning("Model skipped", model=name, reason=reason)
                continue

            try:
                result = self._build(node, ctx)
            except Exception as e:
                failed[name] = name
                result = ModelResult(
                    name=name,
                    status=ModelStatus.ERROR,
                    materialized=node.materialized,
                    error=f"{type(e).__name__}: {e}",
                )
                logger.error("Model failed", model=name, error=result.error)
            else:
                logger.info(
                    "Model built",
                    model=name,
                    materialized=node.materialized.value,
                    rows=result.rows,
                    duration=round(result.duration_seconds, 3),
                )

            results.append(result)

        run_result = RunResult(
            results=results,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )

        logger.info(
            "Run complete",
            succeeded=sum(1 for r in results if r.status == ModelStatus.SUCCESS),
            errors=len(run_result.errors),
            skipped=len(run_result.skipped),
        )

        return run_result

    def ref(self, name: str) -> pl.LazyFrame:
        """Resolve a model or source outside of a run"""
        self._relations = {}
        return self._resolve(name, self._context())

    def test(
        self,
        select: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
    ) -> Dict[str, ValidationResult]:
        """
        Run data tests for the selected models.

        Views are recomputed from their inputs; tables are read from the
        target directory, so they must have been built.
        """
        self.registry.validate()
        order = [n for n in self.registry.select(select, exclude) if n in MODEL_TESTS]
        ctx = self._context()
        self._relations = {}
        frames: Dict[str, pl.DataFrame] = {}

        def ref(name: str) -> pl.DataFrame:
            if name not in frames:
                frames[name] = self._resolve(name, ctx).collect()
            return frames[name]

        results: Dict[str, ValidationResult] = {}
        for name in order:
            logger.info("Testing model", model=name)
            try:
                df = ref(name)
                validator = MODEL_TESTS[name](ref)
            except FileNotFoundError as e:
                results[name] = _missing_relation_result(name, str(e))
                logger.error("Model not available for testing", model=name, error=str(e))
                continue

            results[name] = validator.validate(df)

        return results


def _missing_relation_result(name: str, message: str) -> ValidationResult:
    now = datetime.utcnow()
    return ValidationResult(
        status=ValidationStatus.FAILED,
        total_checks=1,
        passed_checks=0,
        failed_checks=1,
        warning_count=0,
        checks=[ValidationCheck(
            name=f"relation_exists_{name}",
            passed=False,
            severity=ValidationSeverity.ERROR,
            message=message,
        )],
        started_at=now,
        completed_at=now,
    )
