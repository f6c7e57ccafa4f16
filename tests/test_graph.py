import pytest

from pkgdag.modules.errors import CycleError, ValidationError
from pkgdag.modules.graph import DependencyGraph


def diamond():
    g = DependencyGraph()
    g.add_package("app", ["libb", "liba"])
    g.add_package("liba", ["libc"])
    g.add_package("libb", ["libc"])
    g.add_vertex("libc")
    return g


def test_lookups_are_sorted():
    g = diamond()
    assert g.vertices() == ["app", "liba", "libb", "libc"]
    assert g.successors("app") == ["liba", "libb"]
    assert g.predecessors("libc") == ["liba", "libb"]
    assert g.successors("unknown") == []
    assert ("app", "liba") in g.edges()
    assert len(g) == 4


def test_topo_sort_puts_dependents_first():
    g = diamond()
    order = g.topo_sort()
    assert order == ["app", "liba", "libb", "libc"]
    pos = {n: i for i, n in enumerate(order)}
    for src, dst in g.edges():
        assert pos[src] < pos[dst]


def test_topo_sort_breaks_ties_by_name():
    g = DependencyGraph()
    for name in ["zeta", "alpha", "mid"]:
        g.add_vertex(name)
    g.add_package("beta", ["zeta"])
    assert g.topo_sort() == ["alpha", "beta", "mid", "zeta"]
    assert g.topo_sort() == g.copy().topo_sort()


def test_topo_sort_raises_on_cycle():
    g = DependencyGraph()
    g.add_package("a", ["b"])
    g.add_package("b", ["a"])
    g.add_package("c", ["a"])
    with pytest.raises(CycleError) as exc:
        g.topo_sort()
    assert exc.value.nodes == ["a", "b"]


def test_reachability():
    g = diamond()
    assert g.has_path("app", "libc")
    assert not g.has_path("libc", "app")
    assert g.would_create_cycle("libc", "app")
    assert g.would_create_cycle("app", "app")
    assert not g.would_create_cycle("app", "libc")


def test_detect_cycles_reports_back_edges():
    g = diamond()
    assert g.detect_cycles() == []
    g.add_edge("libc", "app")
    assert g.detect_cycles() == [("libc", "app")]


def test_validate_lists_every_problem():
    g = diamond()
    g.validate()
    g.add_edge("app", "ghost")
    g.add_edge("phantom", "libc")
    with pytest.raises(ValidationError) as exc:
        g.validate()
    pairs = [(src, dst) for src, dst, _ in exc.value.problems]
    assert ("app", "ghost") in pairs
    assert ("phantom", "libc") in pairs
    assert "'app' -> 'ghost'" in str(exc.value)


def test_copy_is_independent():
    g = diamond()
    c = g.copy()
    c.add_package("extra", ["app"])
    assert "extra" in c
    assert "extra" not in g
    assert g.predecessors("app") == []
