# pkgdag/modules/cli.py
"""
Command line for pkgdag.
- Uses rich for tables and panels; machine output (targets, DOT, YAML) goes to stdout as plain text.
- Every command reads a directory of build documents (-d, default ".").

Usage examples:
  pkgdag text                      # all targets, topologically sorted
  pkgdag text gcc                  # gcc and everything it needs
  pkgdag text -D openssl           # everything that needs openssl
  pkgdag dot -o dag.dot busybox
  pkgdag deps gcc
  pkgdag cache -o ./cache --clean
  pkgdag pod --source-image gcr.io/p/dag@sha256:... gcc > pod.yaml
"""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pkgdag.modules import cache as _cache
from pkgdag.modules import pod as _pod
from pkgdag.modules import render as _render
from pkgdag.modules import resolver as _resolver
from pkgdag.modules.config import DagConfig, config as default_config
from pkgdag.modules.errors import DagError, NotFoundError
from pkgdag.modules.logger import Logger
from pkgdag.modules.targets import normalize_arch


def make_console(no_color: bool, quiet: bool) -> Console:
    if no_color:
        return Console(color_system=None, force_terminal=False, markup=False, quiet=quiet)
    return Console(quiet=quiet)


class CLI:
    def __init__(self, console: Console, settings=None, out=None):
        self.console = console
        self.settings = settings or default_config
        self.out = out or sys.stdout
        self.log = Logger("cli", settings=self.settings)

    def _load(self, args: argparse.Namespace):
        return _resolver.load_graph(args.dir, settings=self.settings, logger=self.log)

    def _select(self, g, args: argparse.Namespace):
        """Narrow the graph to the named packages, if any."""
        if not args.packages:
            if args.show_dependents:
                self.log.warning("the 'show dependents' option has no effect without specifying one or more package names")
            return g
        if args.show_dependents:
            return g.subgraph_with_leaves(args.packages)
        return g.subgraph_with_roots(args.packages)

    def _arch(self, args: argparse.Namespace) -> str:
        return normalize_arch(args.arch or self.settings.get("graph", "default_arch", fallback="x86_64"))

    # -----------------------
    # text
    # -----------------------
    def cmd_text(self, args: argparse.Namespace) -> int:
        g = self._select(self._load(args), args)
        _render.write_text(g, self._arch(args), self.out)
        return 0

    # -----------------------
    # dot
    # -----------------------
    def cmd_dot(self, args: argparse.Namespace) -> int:
        g = self._select(self._load(args), args)
        _render.summarize(g, self.log)
        if args.out == "-":
            self.out.write(_render.to_dot(g))
        else:
            _render.write_dot(g, args.out, self.log)
        return 0

    # -----------------------
    # deps
    # -----------------------
    def cmd_deps(self, args: argparse.Namespace) -> int:
        g = self._load(args)
        if not g.contains(args.package):
            raise NotFoundError(args.package)
        c = g.config(args.package)
        tbl = Table(title=f"{args.package}")
        tbl.add_column("Key", style="bold")
        tbl.add_column("Value", overflow="fold")
        if c is not None:
            tbl.add_row("origin", c.name)
            tbl.add_row("version", f"{c.version}-r{c.epoch}")
        elif g.is_alias(args.package):
            tbl.add_row("provided by", g.provider_of(args.package))
        else:
            tbl.add_row("origin", "- (no config in this directory)")
        deps = g.dependencies_of(args.package)
        rdeps = g.dependents_of(args.package)
        tbl.add_row("dependencies", ", ".join(deps) if deps else "-")
        tbl.add_row("dependents", ", ".join(rdeps) if rdeps else "-")
        dropped = [w.dependency for w in g.bootstrap_warnings if w.package == args.package]
        if dropped:
            tbl.add_row("bootstrap", ", ".join(dropped))
        self.console.print(tbl)
        return 0

    # -----------------------
    # cache
    # -----------------------
    def cmd_cache(self, args: argparse.Namespace) -> int:
        g = self._load(args)
        configs = {c.name: c for c in g.configs.values()}
        sc = _cache.SourceCache(out_dir=args.out, workers=args.workers, dry_run=args.dry_run,
                                logger=self.log, settings=self.settings)
        ordered = [configs[name] for name in sorted(configs)]
        report = sc.cache_all(ordered)
        summary = (f"URIs: {report.count}\nalready cached: {report.cached}\n"
                   f"downloaded: {report.downloaded} ({report.bytes} bytes)\ntook: {report.elapsed:.1f}s")
        if args.clean:
            removed = sc.clean(keep=_cache.entries_for(ordered))
            summary += f"\nremoved: {len(removed)}"
        self.console.print(Panel(summary, title="cache", style="green"))
        return 0

    # -----------------------
    # pod
    # -----------------------
    def cmd_pod(self, args: argparse.Namespace) -> int:
        arch = self._arch(args)
        g = self._load(args)
        targets, deps = _pod.plan_targets(g, arch, args.packages)
        repo = args.repository_url or self.settings.get("pod", "repository_url")
        script = _pod.render_build_script(targets, deps, arch, repo)
        manifest = _pod.make_pod(
            script,
            source_image=args.source_image,
            arch=arch,
            namespace=args.namespace,
            sdk_image=args.sdk_image,
            cpu=args.cpu,
            ram=args.ram,
            service_account=args.service_account,
            cache_bundle=args.cache_bundle,
            bucket=args.bucket,
            secret_key=args.secret_key,
            settings=self.settings,
        )
        self.out.write(_pod.dump_pod(manifest))
        return 0


# -----------------------
# CLI wiring and argparse setup
# -----------------------
def _graph_args(p: argparse.ArgumentParser, packages: bool = True):
    p.add_argument("-d", "--dir", default=".", help="directory to search for build configs")
    if packages:
        p.add_argument("packages", nargs="*", help="package names (default: the whole graph)")


def build_argparser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="pkgdag", description="package build graph tool")
    ap.add_argument("--no-color", action="store_true", help="Disable color output")
    ap.add_argument("--quiet", action="store_true", help="Quiet mode; less output")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    ap.add_argument("--conf", help="Path to pkgdag.conf")
    sub = ap.add_subparsers(dest="command", required=True)

    p_text = sub.add_parser("text", help="Print make targets in topological order")
    _graph_args(p_text)
    p_text.add_argument("-a", "--arch", help="architecture to build for")
    p_text.add_argument("-D", "--show-dependents", action="store_true",
                        help="show packages that depend on these packages, instead of these packages' dependencies")

    p_dot = sub.add_parser("dot", help="Write the graph in graphviz DOT format")
    _graph_args(p_dot)
    p_dot.add_argument("-o", "--out", default="dag.dot", help="output file ('-' for stdout)")
    p_dot.add_argument("-D", "--show-dependents", action="store_true")

    p_deps = sub.add_parser("deps", help="Show direct dependencies and dependents of a package")
    _graph_args(p_deps, packages=False)
    p_deps.add_argument("package")

    p_cache = sub.add_parser("cache", help="Fetch and cache remote sources of all packages")
    _graph_args(p_cache, packages=False)
    p_cache.add_argument("-o", "--out", help="cache directory")
    p_cache.add_argument("--workers", type=int, help="parallel downloads")
    p_cache.add_argument("--dry-run", action="store_true")
    p_cache.add_argument("--clean", action="store_true", help="remove cached files no package refers to")

    p_pod = sub.add_parser("pod", help="Print a kubernetes pod manifest that builds the targets")
    _graph_args(p_pod)
    p_pod.add_argument("-a", "--arch", help="architecture to build for")
    p_pod.add_argument("--source-image", required=True, help="image holding the build configs (init container)")
    p_pod.add_argument("-n", "--namespace")
    p_pod.add_argument("--cpu")
    p_pod.add_argument("--ram")
    p_pod.add_argument("--service-account")
    p_pod.add_argument("--sdk-image")
    p_pod.add_argument("--repository-url", help="where prebuilt dependencies are downloaded from")
    p_pod.add_argument("--cache-bundle", help="image that populates the source cache")
    p_pod.add_argument("--bucket", help="upload packages/* to this GCS location")
    p_pod.add_argument("--secret-key", action="store_true", help="mount the melange signing key into /var/secrets")
    return ap


COMMANDS = {
    "text": CLI.cmd_text,
    "dot": CLI.cmd_dot,
    "deps": CLI.cmd_deps,
    "cache": CLI.cmd_cache,
    "pod": CLI.cmd_pod,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_argparser()
    args = parser.parse_args(argv)

    settings = DagConfig([args.conf]) if args.conf else default_config
    console = make_console(args.no_color, args.quiet)
    cli = CLI(console=console, settings=settings)
    if args.verbose:
        cli.log.set_level("debug")
    elif args.quiet:
        cli.log.set_level("error")

    try:
        return COMMANDS[args.command](cli, args)
    except (DagError, ValueError, OSError) as e:
        cli.log.error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
