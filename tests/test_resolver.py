import io

import pytest

from pkgdag.modules import render
from pkgdag.modules.errors import DuplicateNameError, NotFoundError, ParseError, ValidationError
from pkgdag.modules.recipe import parse_config
from pkgdag.modules.resolver import BootstrapWarning, GraphBuilder, load_graph


@pytest.fixture()
def world(config_dir, doc):
    """
    gcc needs binutils and glibc; glibc needs gcc (bootstrap).
    openssl provides libssl; curl needs libssl and zlib.
    zlib has range-expanded subpackages.
    """
    return config_dir({
        "binutils": doc("binutils", "2.40", 1),
        "curl": doc("curl", "8.0.1", 0, deps=["libssl", "zlib", "busybox"]),
        "gcc": doc("gcc", "13.1.0", 2, deps=["binutils", "glibc"], subpackages=["libstdc++"]),
        "glibc": doc("glibc", "2.37", 0, deps=["gcc"]),
        "openssl": doc("openssl", "3.1.0", 1, provides=["libssl=3.1.0"], deps=["gcc"]),
        "zlib": doc("zlib", "1.2.13", 0, deps=["gcc"],
                    subpackages=[{"name": "zlib-${{range.key}}", "range": "parts"}],
                    data=[{"name": "parts", "items": {"dev": "headers", "static": "archive"}}]),
    })


@pytest.fixture()
def graph(world, settings, logger):
    return load_graph(world, settings=settings, logger=logger)


def closure(g, start):
    seen, stack = set(), [start]
    while stack:
        n = stack.pop()
        if n not in seen:
            seen.add(n)
            stack.extend(g.dependencies_of(n))
    return seen


def test_nodes_and_dependencies(graph):
    assert graph.nodes() == sorted([
        "binutils", "busybox", "curl", "gcc", "glibc", "libssl", "libstdc++",
        "openssl", "zlib", "zlib-dev", "zlib-static",
    ])
    assert graph.dependencies_of("curl") == ["busybox", "libssl", "zlib"]
    assert graph.dependencies_of("libssl") == ["openssl"]
    assert graph.dependencies_of("zlib-dev") == ["zlib"]
    assert graph.dependencies_of("libstdc++") == ["gcc"]
    assert graph.dependencies_of("nope") == []
    assert graph.dependents_of("gcc") == ["libstdc++", "openssl", "zlib"]


def test_cycle_second_direction_is_dropped(graph, log_stream):
    # gcc.yaml sorts before glibc.yaml, so gcc -> glibc is kept
    assert graph.bootstrap_warnings == [BootstrapWarning("glibc", "gcc")]
    assert ("gcc", "glibc") in graph.edges()
    assert ("glibc", "gcc") not in graph.edges()
    assert "needs to be provided via bootstrapping" in log_stream.getvalue()

    order = graph.sorted()
    assert set(order) == set(graph.nodes())
    pos = {n: i for i, n in enumerate(order)}
    for src, dst in graph.edges():
        assert pos[src] < pos[dst]


def test_transitive_cycle_and_self_requirement(config_dir, doc, settings, logger):
    d = config_dir({
        "bar": doc("bar", deps=["baz"]),
        "baz": doc("baz", deps=["qux"]),
        "qux": doc("qux", deps=["bar", "qux"]),
    })
    g = load_graph(d, settings=settings, logger=logger)
    assert g.bootstrap_warnings == [BootstrapWarning("qux", "bar"), BootstrapWarning("qux", "qux")]
    assert g.sorted() == ["bar", "baz", "qux"]
    assert g.build_order() == ["qux", "baz", "bar"]


def test_sorted_is_deterministic(world, settings, logger):
    first = load_graph(world, settings=settings, logger=logger).sorted()
    for _ in range(3):
        assert load_graph(world, settings=settings, logger=logger).sorted() == first


def test_duplicate_package_name_fails_whole_load(config_dir, doc, settings, logger):
    d = config_dir({"a": doc("dup"), "b": doc("dup"), "c": doc("fine")})
    with pytest.raises(DuplicateNameError) as exc:
        load_graph(d, settings=settings, logger=logger)
    assert exc.value.name == "dup"
    assert exc.value.first_path.endswith("a.yaml")


def test_subpackage_cannot_reuse_a_package_name(config_dir, doc, settings, logger):
    d = config_dir({"a": doc("a", subpackages=["b"]), "b": doc("b")})
    with pytest.raises(DuplicateNameError):
        load_graph(d, settings=settings, logger=logger)


def test_malformed_document_fails_whole_load(config_dir, doc, settings, logger):
    d = config_dir({"a": doc("a"), "broken": "package:\n  version: 1\n"})
    with pytest.raises(ParseError):
        load_graph(d, settings=settings, logger=logger)


def test_config_and_subpackage_queries(graph):
    assert graph.config("libstdc++").name == "gcc"
    assert graph.is_subpackage("libstdc++")
    assert not graph.is_subpackage("gcc")
    assert not graph.is_subpackage("busybox")
    assert graph.config("busybox") is None


def test_make_target(graph):
    assert graph.make_target("gcc", "x86_64") == "packages/x86_64/gcc-13.1.0-r2.apk"
    # queried subpackage name, origin version
    assert graph.make_target("libstdc++", "aarch64") == "packages/aarch64/libstdc++-13.1.0-r2.apk"
    # alias resolves to its provider
    assert graph.make_target("libssl", "x86_64") == "packages/x86_64/openssl-3.1.0-r1.apk"
    with pytest.raises(NotFoundError):
        graph.make_target("busybox", "x86_64")
    with pytest.raises(NotFoundError):
        graph.make_target("nonexistent", "x86_64")


def test_provides_alias(graph):
    assert graph.is_alias("libssl")
    assert graph.provider_of("libssl") == "openssl"
    assert graph.provider_of("openssl") is None


def test_literal_package_shadows_alias(config_dir, doc, settings, logger):
    d = config_dir({
        "a-ssl": doc("a-ssl", provides=["libssl=1"]),
        "libssl": doc("libssl", "9"),
        "z-ssl": doc("z-ssl", provides=["libssl=2", "tls=2"]),
        "zz-ssl": doc("zz-ssl", provides=["tls=3"]),
    })
    g = load_graph(d, settings=settings, logger=logger)
    assert not g.is_alias("libssl")
    assert g.dependencies_of("libssl") == []
    assert g.make_target("libssl", "x86_64") == "packages/x86_64/libssl-9-r0.apk"
    # first declaring package in discovery order wins
    assert g.provider_of("tls") == "z-ssl"
    assert g.dependencies_of("tls") == ["z-ssl"]


def test_pipeline_requirements_add_edges(config_dir, doc, settings, logger):
    d = config_dir({
        "app": doc("app", pipeline=[{"uses": "go/build", "with": {"packages": "."}}]),
        "go": doc("go"),
    })
    builder = GraphBuilder(pipeline_requirements={"go/build": ["go", "busybox"]},
                           logger=logger, settings=settings)
    g = builder.load_directory(d).build()
    assert g.dependencies_of("app") == ["busybox", "go"]


def test_structural_cycle_is_a_validation_error(logger, settings):
    builder = GraphBuilder(pipeline_requirements={}, logger=logger, settings=settings)
    builder.add_config(parse_config("package:\n  name: a\nsubpackages:\n  - name: a-dev\n"))
    builder.graph.add_vertex("a-dev")
    builder.graph.add_edge("a", "a-dev")
    with pytest.raises(ValidationError) as exc:
        builder.build()
    assert exc.value.problems[0][:2] == ("a-dev", "a")


def test_subgraph_with_roots_is_dependency_closure(graph):
    for p in graph.nodes():
        sub = graph.subgraph_with_roots([p])
        assert set(sub.nodes()) == closure(graph, p)
        for src, dst in sub.edges():
            assert (src, dst) in graph.edges()


def test_subgraph_with_roots_copies_configs(graph):
    sub = graph.subgraph_with_roots(["curl"])
    assert sub.nodes() == sorted(["busybox", "binutils", "curl", "gcc", "glibc", "libssl", "openssl", "zlib"])
    assert sub.make_target("libssl", "x86_64") == "packages/x86_64/openssl-3.1.0-r1.apk"
    assert sub.config("zlib-dev") is None
    assert sub.bootstrap_warnings == []


def test_subgraph_with_leaves_keeps_edge_direction(graph):
    sub = graph.subgraph_with_leaves(["openssl"])
    assert sub.nodes() == ["curl", "libssl", "openssl"]
    assert sub.edges() == [("curl", "libssl"), ("libssl", "openssl")]
    assert sub.sorted() == ["curl", "libssl", "openssl"]


def test_roots_and_leaves_are_duals(graph):
    nodes = graph.nodes()
    roots = {n: set(graph.subgraph_with_roots([n]).nodes()) for n in nodes}
    leaves = {n: set(graph.subgraph_with_leaves([n]).nodes()) for n in nodes}
    for a in nodes:
        for b in nodes:
            assert (b in roots[a]) == (a in leaves[b])


def test_subgraph_unknown_names(graph):
    with pytest.raises(NotFoundError):
        graph.subgraph_with_roots(["nonexistent"])
    with pytest.raises(NotFoundError):
        graph.subgraph_with_leaves(["gcc", "nonexistent"])


def test_subgraph_is_independent(graph):
    before = graph.edges()
    sub = graph.subgraph_with_roots(["gcc"])
    sub.graph.add_package("gcc", ["new-dep"])
    assert graph.edges() == before
    assert "new-dep" not in graph


def test_alias_leaf_subgraph_renders_provider_target(graph):
    sub = graph.subgraph_with_leaves(["libssl"])
    assert sub.nodes() == ["curl", "libssl"]
    assert sub.make_target("libssl", "x86_64") == "packages/x86_64/openssl-3.1.0-r1.apk"
    out = io.StringIO()
    render.write_text(sub, "x86_64", out)
    assert out.getvalue().splitlines() == [
        "packages/x86_64/curl-8.0.1-r0.apk",
        "packages/x86_64/openssl-3.1.0-r1.apk",
    ]


def test_make_target_error_names_the_queried_package(graph):
    with pytest.raises(NotFoundError, match="'busybox'"):
        graph.make_target("busybox", "x86_64")


def test_subgraph_configs_are_read_only(graph):
    sub = graph.subgraph_with_roots(["zlib-dev"])
    c = sub.config("zlib")
    assert c is graph.config("zlib")
    with pytest.raises(TypeError):
        c.data["parts"]["extra"] = "x"
    with pytest.raises(TypeError):
        c.data["other"] = {}
    assert dict(graph.config("zlib").data["parts"]) == {"dev": "headers", "static": "archive"}
