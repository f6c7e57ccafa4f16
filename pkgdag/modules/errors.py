# pkgdag/modules/errors.py
"""
Error taxonomy shared by the graph engine and its collaborators.

Fatal while loading: LoadError (ParseError, DuplicateNameError), ValidationError.
Local to a query: NotFoundError.
Internal invariant: CycleError.
"""

from typing import Iterable, List, Tuple


class DagError(Exception):
    pass


class LoadError(DagError):
    """A document could not be turned into a package config."""

    def __init__(self, message: str, path: str = None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class ParseError(LoadError):
    pass


class DuplicateNameError(LoadError):
    def __init__(self, name: str, path: str = None, first_path: str = None):
        self.name = name
        self.first_path = first_path
        msg = f"duplicate package config found for {name!r}"
        if first_path:
            msg += f" (already declared in {first_path})"
        super().__init__(msg, path)


class ValidationError(DagError):
    """One or more edges of a built graph are invalid."""

    def __init__(self, problems: Iterable[Tuple[str, str, str]]):
        # problems: (src, dst, reason)
        self.problems: List[Tuple[str, str, str]] = list(problems)
        lines = [f"{src!r} -> {dst!r}: {reason}" for src, dst, reason in self.problems]
        super().__init__("invalid graph:\n  " + "\n  ".join(lines))


class NotFoundError(DagError):
    def __init__(self, name: str, what: str = "package"):
        self.name = name
        super().__init__(f"{what} {name!r} not found in graph")


class CycleError(DagError):
    def __init__(self, nodes: Iterable[str]):
        self.nodes = sorted(nodes)
        super().__init__("dependency cycle among: " + ", ".join(self.nodes))


class ChecksumError(DagError):
    pass


class FetchError(DagError):
    pass
