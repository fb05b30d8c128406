"""Orchestration engine - declarative host convergence.

The engine turns a host configuration into converged resources:
- Validate the configuration before anything is resolved
- Resolve named components from a registry
- Order components in a dependency graph and compile a flat catalog
- Apply the catalog through a resource applier and report every outcome

Usage:
    from pabawi_orchestrator.engine import Orchestrator
    from pabawi_orchestrator.appliers import InMemoryApplier

    orchestrator = Orchestrator()
    report = orchestrator.apply({
        "proxy_class": "pabawi::proxy::nginx",
        "integrations": ["bolt"],
    }, InMemoryApplier(), dry_run=True)
"""

from .orchestrator import Orchestrator
from .schema import (
    ResourceKind,
    ParamSpec,
    ComponentSpec,
    ComponentRef,
    BuildOutput,
    ComponentInstance,
    ResourceDecl,
    OrderingRule,
    ValidatedConfig,
    ValidationResult,
    Catalog,
    CatalogEntry,
    UnresolvedReference,
    Outcome,
    OutcomeStatus,
    ExecuteOptions,
    ResourceResult,
    RunReport,
    resource_id,
)
from .naming import integration_identifier, is_valid_identifier
from .validator import ConfigValidator
from .registry import ComponentRegistry
from .graph import DependencyGraph, DependencyGraphBuilder
from .compiler import CatalogCompiler, DEFAULT_ORDERING
from .executor import ConvergenceExecutor

__all__ = [
    # Main entry point
    "Orchestrator",
    # Schema classes
    "ResourceKind",
    "ParamSpec",
    "ComponentSpec",
    "ComponentRef",
    "BuildOutput",
    "ComponentInstance",
    "ResourceDecl",
    "OrderingRule",
    "ValidatedConfig",
    "ValidationResult",
    "Catalog",
    "CatalogEntry",
    "UnresolvedReference",
    "Outcome",
    "OutcomeStatus",
    "ExecuteOptions",
    "ResourceResult",
    "RunReport",
    "resource_id",
    # Naming
    "integration_identifier",
    "is_valid_identifier",
    # Components (for advanced use)
    "ConfigValidator",
    "ComponentRegistry",
    "DependencyGraph",
    "DependencyGraphBuilder",
    "CatalogCompiler",
    "DEFAULT_ORDERING",
    "ConvergenceExecutor",
]
