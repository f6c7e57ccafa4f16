# pkgdag/modules/resolver.py
"""
Builds the package dependency graph from a directory of build documents
and answers queries on it.

  load_graph(directory)      -> PackageGraph
  GraphBuilder(...).build()  -> PackageGraph
  PackageGraph.sorted() / nodes() / dependencies_of() / make_target()
  PackageGraph.subgraph_with_roots() / subgraph_with_leaves()

Edges point from a package to what it needs: package -> requirement,
subpackage -> origin, alias -> provider.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from pkgdag.modules import recipe as _recipe
from pkgdag.modules import targets as _targets
from pkgdag.modules.config import config as default_config
from pkgdag.modules.errors import DuplicateNameError, NotFoundError
from pkgdag.modules.graph import DependencyGraph
from pkgdag.modules.logger import Logger


@dataclass(frozen=True)
class BootstrapWarning:
    """A requirement edge dropped because it would close a cycle."""
    package: str
    dependency: str

    @property
    def message(self) -> str:
        return (f"package {self.package!r} dependency on {self.dependency!r} would introduce a cycle, "
                f"so {self.dependency!r} needs to be provided via bootstrapping")


class PackageGraph:
    """A built graph plus the configs and aliases of its vertices."""

    def __init__(self,
                 graph: DependencyGraph,
                 configs: Dict[str, _recipe.PackageConfig],
                 aliases: Optional[Dict[str, str]] = None,
                 bootstrap_warnings: Optional[List[BootstrapWarning]] = None,
                 alias_configs: Optional[Dict[str, _recipe.PackageConfig]] = None):
        self.graph = graph
        self.configs = configs              # name -> authoritative config (origin config for subpackages)
        self.aliases = aliases or {}        # provided name -> declaring package
        self.alias_configs = alias_configs or {}  # provided name -> placeholder (the declaring package's config)
        self.bootstrap_warnings = bootstrap_warnings or []

    # -------------------------
    # lookups
    # -------------------------
    def contains(self, name: str) -> bool:
        return name in self.graph

    __contains__ = contains

    def config(self, name: str) -> Optional[_recipe.PackageConfig]:
        """Authoritative config for name; a subpackage yields its origin's config."""
        return self.configs.get(name)

    def is_subpackage(self, name: str) -> bool:
        c = self.config(name)
        return c is not None and c.name != name

    def is_alias(self, name: str) -> bool:
        return name in self.aliases and name not in self.configs

    def provider_of(self, name: str) -> Optional[str]:
        return self.aliases.get(name) if self.is_alias(name) else None

    def nodes(self) -> List[str]:
        return self.graph.vertices()

    def edges(self):
        return self.graph.edges()

    def dependencies_of(self, name: str) -> List[str]:
        return self.graph.successors(name)

    def dependents_of(self, name: str) -> List[str]:
        return self.graph.predecessors(name)

    def sorted(self) -> List[str]:
        """
        All names in topological order: every package appears before the
        packages it depends on. Raises CycleError if the graph has a cycle.
        """
        return self.graph.topo_sort()

    def build_order(self) -> List[str]:
        """sorted() reversed: requirements before the packages that need them."""
        return list(reversed(self.sorted()))

    def make_target(self, name: str, arch: str) -> str:
        """Artifact path for name; an alias resolves to its provider's artifact."""
        c = self.config(name)
        target = name  # may be a subpackage of c
        if c is None and self.is_alias(name):
            c = self.alias_configs.get(name)
            target = self.aliases[name]
        if c is None:
            raise NotFoundError(name, what="config for package")
        return _targets.make_target(target, c.version, c.epoch, arch)

    # -------------------------
    # subgraphs
    # -------------------------
    def _require(self, names: Iterable[str]) -> List[str]:
        names = list(names)
        for name in names:
            if name not in self.graph:
                raise NotFoundError(name)
        return names

    def _extract(self, starts: List[str], forward: bool) -> "PackageGraph":
        sub = DependencyGraph()
        configs: Dict[str, _recipe.PackageConfig] = {}
        aliases: Dict[str, str] = {}
        alias_configs: Dict[str, _recipe.PackageConfig] = {}

        visited = set()
        stack = list(reversed(starts))
        while stack:
            key = stack.pop()
            if key in visited:
                continue
            visited.add(key)
            sub.add_vertex(key)
            if key in self.configs:
                configs[key] = self.configs[key]
            if key in self.aliases:
                aliases[key] = self.aliases[key]
            if key in self.alias_configs:
                alias_configs[key] = self.alias_configs[key]

            neighbours = self.graph.successors(key) if forward else self.graph.predecessors(key)
            for other in neighbours:
                sub.add_vertex(other)
                if forward:
                    sub.add_edge(key, other)
                else:
                    sub.add_edge(other, key)
                if other not in visited:
                    stack.append(other)

        return PackageGraph(sub, configs, aliases, alias_configs=alias_configs)

    def subgraph_with_roots(self, roots: Iterable[str]) -> "PackageGraph":
        """Every package needed (transitively) to build the given roots."""
        return self._extract(self._require(roots), forward=True)

    def subgraph_with_leaves(self, leaves: Iterable[str]) -> "PackageGraph":
        """Every package that (transitively) depends on the given leaves."""
        return self._extract(self._require(leaves), forward=False)


class GraphBuilder:
    """
    Two-pass construction of a PackageGraph.

    The first pass parses every document and claims names; the second wires
    edges in discovery order. A requirement edge that would close a cycle is
    dropped and reported as a BootstrapWarning. Structural edges (subpackage,
    alias) that would close a cycle make the graph invalid.
    """

    def __init__(self,
                 pipeline_requirements: Optional[Mapping[str, List[str]]] = None,
                 logger: Optional[Logger] = None,
                 settings=None):
        settings = settings or default_config
        if pipeline_requirements is None:
            pipeline_requirements = settings.getmapping("pipelines")
        self.pipeline_requirements = pipeline_requirements
        self.log = logger or Logger("resolver", settings=settings)

        self.graph = DependencyGraph()
        self.configs: Dict[str, _recipe.PackageConfig] = {}
        self.aliases: Dict[str, str] = {}
        self.alias_configs: Dict[str, _recipe.PackageConfig] = {}
        self.packages: List[str] = []
        self.warnings: List[BootstrapWarning] = []
        self._problems = []

    # -------------------------
    # first pass
    # -------------------------
    def _claim(self, name: str, config: _recipe.PackageConfig):
        if name in self.configs:
            raise DuplicateNameError(name, path=config.path, first_path=self.configs[name].path)
        self.configs[name] = config

    def add_config(self, config: _recipe.PackageConfig):
        self._claim(config.name, config)
        for sp in config.subpackages:
            self._claim(sp.name, config)
        self.packages.append(config.name)
        self.graph.add_vertex(config.name)

    def _register_aliases(self):
        for name in self.packages:
            for alias in self.configs[name].provided_names():
                if alias in self.configs:
                    continue
                if alias in self.aliases:
                    if self.aliases[alias] != name:
                        self.log.debug(f"{name!r} also provides {alias!r}; keeping {self.aliases[alias]!r}")
                    continue
                self.aliases[alias] = name
                self.alias_configs[alias] = self.configs[name]
                self.graph.add_vertex(alias)

    # -------------------------
    # second pass
    # -------------------------
    def _add_structural_edge(self, src: str, dst: str, kind: str):
        self.graph.add_vertex(src)
        if self.graph.would_create_cycle(src, dst):
            self._problems.append((src, dst, f"{kind} edge would introduce a cycle"))
            return
        self.graph.add_edge(src, dst)

    def _add_requirement(self, package: str, dependency: str):
        self.graph.add_vertex(dependency)
        if self.graph.would_create_cycle(package, dependency):
            warning = BootstrapWarning(package, dependency)
            self.warnings.append(warning)
            self.log.warning(warning.message)
            return
        self.graph.add_edge(package, dependency)

    def _wire(self, name: str):
        c = self.configs[name]
        for sp in c.subpackages:
            self._add_structural_edge(sp.name, name, "subpackage")
        for alias in c.provided_names():
            if self.aliases.get(alias) == name and alias not in self.configs:
                self._add_structural_edge(alias, name, "provides")

        requirements = list(c.requirements)
        for req in c.pipeline_requirements(self.pipeline_requirements):
            if req not in requirements:
                requirements.append(req)
        for req in requirements:
            self._add_requirement(name, req)

    def build(self) -> PackageGraph:
        self._register_aliases()
        for name in self.packages:
            self._wire(name)
        self.graph.validate(extra=self._problems)
        self.log.debug(f"graph built: {len(self.graph)} nodes, {len(self.graph.edges())} edges, "
                       f"{len(self.warnings)} bootstrap warnings")
        return PackageGraph(self.graph, dict(self.configs), dict(self.aliases), list(self.warnings),
                            alias_configs=dict(self.alias_configs))

    # -------------------------
    # inputs
    # -------------------------
    def load_paths(self, paths: Iterable[str]) -> "GraphBuilder":
        for path in paths:
            self.add_config(_recipe.load_config(path))
        return self

    def load_directory(self, directory: str, suffix: Optional[str] = None) -> "GraphBuilder":
        suffix = suffix or ".yaml"
        return self.load_paths(_recipe.iter_config_paths(directory, suffix))


def load_graph(directory: str, settings=None, logger: Optional[Logger] = None) -> PackageGraph:
    """Parse every build document in directory and return the wired graph."""
    settings = settings or default_config
    suffix = settings.get("graph", "config_suffix", fallback=".yaml")
    builder = GraphBuilder(logger=logger, settings=settings)
    builder.load_directory(directory, suffix=suffix)
    return builder.build()
