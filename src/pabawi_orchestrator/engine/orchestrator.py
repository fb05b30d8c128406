"""Orchestrator - runs the full validate, compile and apply workflow.

Provides a single entry point for:
1. Validating the host configuration
2. Resolving components and compiling the catalog
3. Converging the catalog through a resource applier

Validation and compile errors are raised before the applier is called, so a
run either starts with a complete catalog or touches nothing.
"""
import logging
from dataclasses import replace
from typing import Any, Optional, Sequence

from ..appliers.base import ResourceApplier
from ..utils.audit_log import AuditTrail
from ..utils.logging_config import timed_section
from .compiler import DEFAULT_ORDERING, CatalogCompiler
from .executor import ConvergenceExecutor
from .graph import DependencyGraph
from .registry import ComponentRegistry
from .schema import Catalog, ExecuteOptions, OrderingRule, RunReport, ValidatedConfig
from .validator import ConfigValidator

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Main entry point for converging a host configuration.

    Usage:
        orchestrator = Orchestrator()
        report = orchestrator.apply({
            "proxy_manage": True,
            "install_class": "pabawi::install::docker",
            "integrations": ["bolt", "puppetdb"],
        }, InMemoryApplier(), dry_run=True)
    """

    def __init__(
        self,
        registry: Optional[ComponentRegistry] = None,
        audit_log_path: Optional[str] = None,
        explicit_order: Sequence[OrderingRule] = DEFAULT_ORDERING,
    ):
        """
        Initialize the orchestrator.

        Args:
            registry: Component registry (built-in components by default)
            audit_log_path: Directory for the audit log (optional)
            explicit_order: Role-level ordering rules
        """
        self.registry = registry if registry is not None else ComponentRegistry.create_default()
        self.validator = ConfigValidator()
        self.compiler = CatalogCompiler(self.registry, explicit_order)
        audit_trail = AuditTrail(audit_log_path) if audit_log_path else None
        self.executor = ConvergenceExecutor(audit_trail)

    def validate(self, raw: Any) -> ValidatedConfig:
        """
        Validate a raw configuration.

        Raises:
            ConfigValidationError: The first problem found
        """
        config, _ = self._validate(raw)
        return config

    def _validate(self, raw: Any) -> tuple[ValidatedConfig, list[str]]:
        with timed_section("validate"):
            result = self.validator.check(raw)
        for warning in result.warnings:
            logger.warning(warning)
        if not result.valid:
            for error in result.errors:
                logger.error(f"Validation failed: {error}")
            raise result.errors[0]
        return result.config, result.warnings

    def compile(self, raw: Any) -> Catalog:
        """
        Validate and compile a raw configuration.

        Raises:
            ConfigValidationError: Validation failed
            CompileError: Compilation failed
        """
        catalog, _ = self.compile_with_graph(raw)
        return catalog

    def compile_with_graph(self, raw: Any) -> tuple[Catalog, DependencyGraph]:
        config, warnings = self._validate(raw)
        with timed_section("compile"):
            catalog, graph = self.compiler.compile_with_graph(config)
        if warnings:
            catalog = replace(catalog, warnings=tuple(warnings) + catalog.warnings)
        return catalog, graph

    def apply(
        self,
        raw: Any,
        applier: ResourceApplier,
        dry_run: bool = False,
        audit_context: str = "",
        user: Optional[str] = None,
        options: Optional[ExecuteOptions] = None,
    ) -> RunReport:
        """
        Validate, compile and converge a configuration.

        Args:
            raw: Configuration mapping (as loaded from YAML)
            applier: Applier that converges individual resources
            dry_run: If True, report what would change without changing it
            audit_context: Description for the audit log
            user: User identifier for the audit log
            options: Full execution options; overrides the three above

        Returns:
            RunReport of the run

        Raises:
            ConfigValidationError: Validation failed (nothing applied)
            CompileError: Compilation failed (nothing applied)
        """
        catalog = self.compile(raw)
        if options is None:
            options = ExecuteOptions(dry_run=dry_run, audit_context=audit_context, user=user)
        return self.executor.apply(catalog, applier, options)

    def preview(self, raw: Any) -> str:
        """Describe the component order and resources a configuration compiles to."""
        catalog, graph = self.compile_with_graph(raw)
        lines = [graph.describe(), "", f"Resources ({len(catalog)}):"]
        for i, entry in enumerate(catalog.entries, start=1):
            lines.append(f"  {i}. {entry.id} [{entry.owner}]")
        for ref in catalog.unresolved:
            lines.append(f"Unresolved: {ref.identifier} ({ref.field})")
        for warning in catalog.warnings:
            lines.append(f"Warning: {warning}")
        return "\n".join(lines)
