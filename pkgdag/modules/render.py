# pkgdag/modules/render.py
"""
Output formats for a PackageGraph: make targets (text) and graphviz DOT.
"""

from typing import Optional, TextIO, Tuple

from pkgdag.modules.logger import Logger


def write_text(graph, arch: str, stream: TextIO) -> int:
    """Write one make target per node in sorted() order. Returns lines written."""
    seen = set()
    for node in graph.sorted():
        target = graph.make_target(node, arch)
        # an alias resolves to its provider's target
        if target in seen:
            continue
        seen.add(target)
        stream.write(f"{target}\n")
    return len(seen)


def _quote(name: str) -> str:
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'


def to_dot(graph, name: str = "dag") -> str:
    lines = [f"digraph {_quote(name)} {{"]
    for node in graph.nodes():
        deps = graph.dependencies_of(node)
        if not deps:
            lines.append(f"  {_quote(node)};")
        for dep in deps:
            lines.append(f"  {_quote(node)} -> {_quote(dep)};")
    lines.append("}")
    return "\n".join(lines) + "\n"


def write_dot(graph, output: str, log: Optional[Logger] = None) -> str:
    with open(output, "w", encoding="utf-8") as fh:
        fh.write(to_dot(graph))
    if log:
        log.info(f"Graph exported to {output}")
    return output


def summarize(graph, log: Optional[Logger] = None) -> Tuple[int, int]:
    nodes = len(graph.nodes())
    edges = len(graph.edges())
    if log:
        log.info(f"nodes: {nodes}")
        log.info(f"edges: {edges}")
    return nodes, edges
