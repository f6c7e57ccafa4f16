# pkgdag/modules/graph.py

import heapq
from typing import Dict, Iterable, List, Optional, Set, Tuple

from pkgdag.modules.errors import CycleError, ValidationError


class DependencyGraph:
    """
    Directed graph of package names.
    An edge src -> dst means "src requires dst to be built first".

    The store itself does not refuse cycles; callers check
    would_create_cycle() before inserting and validate() afterwards.
    """

    def __init__(self):
        self.graph: Dict[str, Set[str]] = {}   # {package: {dependencies}}
        self.back: Dict[str, Set[str]] = {}    # {package: {dependents}}

    def copy(self) -> "DependencyGraph":
        g = DependencyGraph()
        g.graph = {k: set(v) for k, v in self.graph.items()}
        g.back = {k: set(v) for k, v in self.back.items()}
        return g

    # -------------------------
    # mutation
    # -------------------------
    def add_vertex(self, name: str):
        self.graph.setdefault(name, set())
        self.back.setdefault(name, set())

    def add_edge(self, src: str, dst: str):
        """Record src -> dst. Endpoints are not created; validate() reports strays."""
        self.graph.setdefault(src, set()).add(dst)
        self.back.setdefault(dst, set()).add(src)

    def add_package(self, package: str, dependencies: Iterable[str]):
        """Add a package and edges to each of its dependencies."""
        self.add_vertex(package)
        for dep in dependencies:
            self.add_vertex(dep)
            self.add_edge(package, dep)

    # -------------------------
    # lookup
    # -------------------------
    def __contains__(self, name: str) -> bool:
        return name in self.graph and name in self.back

    def __len__(self) -> int:
        return len(self.vertices())

    def vertices(self) -> List[str]:
        return sorted(n for n in self.graph if n in self.back)

    def edges(self) -> List[Tuple[str, str]]:
        return sorted((src, dst) for src, dsts in self.graph.items() for dst in dsts)

    def successors(self, name: str) -> List[str]:
        return sorted(self.graph.get(name, ()))

    def predecessors(self, name: str) -> List[str]:
        return sorted(self.back.get(name, ()))

    def has_path(self, src: str, dst: str) -> bool:
        """True if dst is reachable from src following edges forward."""
        if src == dst:
            return True
        seen = {src}
        stack = [src]
        while stack:
            node = stack.pop()
            for nxt in self.graph.get(node, ()):
                if nxt == dst:
                    return True
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        return False

    def would_create_cycle(self, src: str, dst: str) -> bool:
        return self.has_path(dst, src)

    # -------------------------
    # ordering / checks
    # -------------------------
    def topo_sort(self) -> List[str]:
        """
        Kahn's algorithm with ties broken by name.
        For every edge src -> dst, src comes before dst: dependents first,
        their requirements later. Reverse the result for a build order.
        """
        nodes = self.vertices()
        in_deg = {n: 0 for n in nodes}
        for src, dst in self.edges():
            if src in in_deg and dst in in_deg:
                in_deg[dst] += 1
        heap = [n for n, deg in in_deg.items() if deg == 0]
        heapq.heapify(heap)
        ordered = []
        while heap:
            n = heapq.heappop(heap)
            ordered.append(n)
            for m in self.graph.get(n, ()):
                if m not in in_deg:
                    continue
                in_deg[m] -= 1
                if in_deg[m] == 0:
                    heapq.heappush(heap, m)
        if len(ordered) != len(nodes):
            raise CycleError(n for n, deg in in_deg.items() if deg > 0)
        return ordered

    def detect_cycles(self) -> List[Tuple[str, str]]:
        """Edges that close a cycle (back edges of an iterative DFS), sorted."""
        WHITE, GREY, BLACK = 0, 1, 2
        color = {n: WHITE for n in self.graph}
        back_edges = []
        for start in sorted(self.graph):
            if color[start] != WHITE:
                continue
            color[start] = GREY
            stack = [(start, iter(self.successors(start)))]
            while stack:
                node, it = stack[-1]
                nxt = next(it, None)
                if nxt is None:
                    color[node] = BLACK
                    stack.pop()
                    continue
                state = color.get(nxt, BLACK)
                if state == GREY:
                    back_edges.append((node, nxt))
                elif state == WHITE:
                    color[nxt] = GREY
                    stack.append((nxt, iter(self.successors(nxt))))
        return sorted(back_edges)

    def validate(self, extra: Optional[Iterable[Tuple[str, str, str]]] = None):
        """Raise ValidationError listing every stray edge endpoint and cycle edge."""
        problems = list(extra or ())
        for src, dst in self.edges():
            if src not in self:
                problems.append((src, dst, f"{src!r} not found"))
            if dst not in self:
                problems.append((src, dst, f"{dst!r} not found"))
        for src, dst in self.detect_cycles():
            problems.append((src, dst, "edge closes a cycle"))
        if problems:
            raise ValidationError(problems)
