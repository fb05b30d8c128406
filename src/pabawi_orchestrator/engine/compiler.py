"""Catalog compiler: turns a validated configuration into an ordered catalog.

Resolution policy depends on how a component was referenced:
- Explicit single-valued fields (proxy_class, install_class) and component
  depends_on references must resolve; an unknown name aborts compilation.
- Entries of the open-ended integrations list that do not resolve are
  recorded as unresolved and skipped; the rest of the catalog compiles.
"""
import logging
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

from ..errors import (
    CompileError,
    ConflictingInstance,
    DanglingReference,
    DuplicateResource,
    UnknownComponent,
)
from .graph import DependencyGraph, DependencyGraphBuilder, topological_order
from .registry import ComponentRegistry
from .schema import (
    TAG_PREFIX,
    BuildOutput,
    Catalog,
    CatalogEntry,
    ComponentInstance,
    ComponentRef,
    ComponentSpec,
    OrderingRule,
    ResourceDecl,
    UnresolvedReference,
    ValidatedConfig,
)

logger = logging.getLogger(__name__)

ROLE_PROXY = "proxy"
ROLE_INSTALL = "install"
ROLE_INTEGRATION = "integration"
ROLE_DEPENDENCY = "dependency"

DEFAULT_ORDERING = (OrderingRule(before=ROLE_PROXY, after=ROLE_INSTALL),)


@dataclass(frozen=True)
class Declaration:
    """A component requested by the configuration."""
    name: str
    params: Mapping[str, Any]
    role: str
    field: str
    required: bool = True


class CatalogCompiler:
    """Compile validated configurations into catalogs."""

    def __init__(
        self,
        registry: ComponentRegistry,
        explicit_order: Sequence[OrderingRule] = DEFAULT_ORDERING,
    ):
        """
        Initialize the compiler.

        Args:
            registry: Registry used to resolve component names
            explicit_order: Role-level ordering rules
        """
        self.registry = registry
        self.explicit_order = tuple(explicit_order)
        self.graph_builder = DependencyGraphBuilder()

    def compile(self, config: ValidatedConfig) -> Catalog:
        """
        Compile a validated configuration into a catalog.

        Raises:
            CompileError: Unknown explicit component, cycle, duplicate
                resource, bad parameters or dangling reference
        """
        catalog, _ = self.compile_with_graph(config)
        return catalog

    def compile_with_graph(self, config: ValidatedConfig) -> tuple[Catalog, DependencyGraph]:
        """Compile and also return the component graph (for previews)."""
        warnings: list[str] = []
        unresolved: list[UnresolvedReference] = []
        instances: dict[str, ComponentInstance] = {}
        declared_by: dict[str, str] = {}

        for decl in self.declarations(config):
            if not self.registry.has(decl.name):
                if decl.required:
                    raise UnknownComponent(decl.name, field=decl.field)
                logger.warning(f"Skipping unresolved component {decl.name} ({decl.field})")
                warnings.append(f"Component {decl.name} listed in {decl.field} is not registered")
                unresolved.append(UnresolvedReference(
                    name=decl.name.rsplit("::", 1)[-1],
                    identifier=decl.name,
                    field=decl.field,
                ))
                continue
            self._instantiate(decl.name, decl.params, decl.role, decl.field, instances, declared_by)

        ordered = sorted(instances.values(), key=lambda inst: inst.position)
        self._check_duplicates(ordered)
        expanded = self._resolve_references(ordered)

        graph = self.graph_builder.build(expanded, self.explicit_order)
        entries = self._flatten(graph, {inst.identifier: inst for inst in expanded})

        logger.info(
            f"Compiled catalog: {len(entries)} resources from {len(graph.order)} components"
        )

        catalog = Catalog(
            entries=tuple(entries),
            components=graph.order,
            warnings=tuple(warnings),
            unresolved=tuple(unresolved),
        )
        return catalog, graph

    def declarations(self, config: ValidatedConfig) -> list[Declaration]:
        """Components requested by the configuration, in declaration order."""
        result: list[Declaration] = []
        if config.proxy_manage:
            result.append(Declaration(
                config.proxy_class, config.proxy_params, ROLE_PROXY, "proxy_class"
            ))
        if config.install_manage:
            result.append(Declaration(
                config.install_class, config.install_params, ROLE_INSTALL, "install_class"
            ))
        for entry in config.integrations:
            result.append(Declaration(
                entry.identifier,
                entry.params,
                ROLE_INTEGRATION,
                f"integrations.{entry.name}",
                required=False,
            ))
        return result

    def _instantiate(
        self,
        name: str,
        params: Optional[Mapping[str, Any]],
        role: str,
        source: str,
        instances: dict[str, ComponentInstance],
        declared_by: dict[str, str],
    ) -> ComponentInstance:
        """Create (or reuse) the single instance for a component name."""
        if not self.registry.has(name):
            raise UnknownComponent(name, field=source)
        spec = self.registry.resolve(name)

        existing = instances.get(name)
        if existing is not None:
            if params is None or spec.bind(params) == dict(existing.params):
                return existing
            raise ConflictingInstance(name, declared_by[name], source)

        bound = spec.bind(params)
        output = self._build(spec, bound)
        instance = ComponentInstance(
            spec=spec,
            params=MappingProxyType(bound),
            role=role,
            position=len(instances),
            output=output,
        )
        instances[name] = instance
        declared_by[name] = source
        logger.debug(
            f"Built {name} ({role}): {len(output.resources)} resources, "
            f"{len(output.depends_on)} dependencies"
        )

        for ref in output.depends_on:
            self._instantiate(ref.name, ref.params, ROLE_DEPENDENCY, name, instances, declared_by)

        return instance

    def _build(self, spec: ComponentSpec, params: dict[str, Any]) -> BuildOutput:
        """Invoke a build function exactly once and normalize its result."""
        result = spec.build(MappingProxyType(params))
        if isinstance(result, tuple) and len(result) == 2:
            resources, depends_on = result
            result = BuildOutput(resources=list(resources), depends_on=list(depends_on))
        if not isinstance(result, BuildOutput):
            raise CompileError(
                f"Build function of {spec.name} returned {type(result).__name__}, "
                f"expected BuildOutput"
            )
        refs = [
            ref if isinstance(ref, ComponentRef) else ComponentRef(ref)
            for ref in result.depends_on
        ]
        return BuildOutput(resources=list(result.resources), depends_on=refs)

    def _check_duplicates(self, instances: Sequence[ComponentInstance]) -> None:
        """Resource identifiers are unique across the whole catalog."""
        owners: dict[str, str] = {}
        for inst in instances:
            for resource in inst.resources:
                rid = resource.id
                if rid in owners:
                    raise DuplicateResource(rid, owners[rid], inst.identifier)
                owners[rid] = inst.identifier

    def _resolve_references(
        self,
        instances: Sequence[ComponentInstance],
    ) -> list[ComponentInstance]:
        """Expand tag subscriptions and check every referenced id exists."""
        known = {resource.id for inst in instances for resource in inst.resources}
        tagged: dict[str, list[str]] = {}
        for inst in instances:
            for resource in inst.resources:
                for tag in resource.tags:
                    tagged.setdefault(tag, []).append(resource.id)

        expanded: list[ComponentInstance] = []
        for inst in instances:
            resources: list[ResourceDecl] = []
            for resource in inst.resources:
                for target in resource.requires:
                    if target not in known:
                        raise DanglingReference(target, resource.id)

                subscribe: list[str] = []
                for target in resource.subscribe:
                    if target.startswith(TAG_PREFIX):
                        matches = tagged.get(target[len(TAG_PREFIX):], [])
                        subscribe.extend(m for m in matches if m != resource.id)
                    elif target not in known:
                        raise DanglingReference(target, resource.id)
                    else:
                        subscribe.append(target)

                resources.append(replace(resource, subscribe=tuple(dict.fromkeys(subscribe))))

            output = BuildOutput(resources=resources, depends_on=list(inst.output.depends_on))
            expanded.append(replace(inst, output=output))
        return expanded

    def _flatten(
        self,
        graph: DependencyGraph,
        instances: Mapping[str, ComponentInstance],
    ) -> list[CatalogEntry]:
        """Components in graph order, resources in intra-component order."""
        entries: list[CatalogEntry] = []
        for identifier in graph.order:
            inst = instances[identifier]
            by_id = {resource.id: resource for resource in inst.resources}
            predecessors = {
                rid: [t for t in resource.follows if t in by_id]
                for rid, resource in by_id.items()
            }
            for rid in topological_order(list(by_id), predecessors):
                entries.append(CatalogEntry(resource=by_id[rid], owner=identifier))
        return entries
