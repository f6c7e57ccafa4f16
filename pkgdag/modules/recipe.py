# pkgdag/modules/recipe.py
"""
Package config loader: one YAML build document -> PackageConfig.

Recognised fields:
  package.name / package.version / package.epoch
  package.dependencies.provides      ["name=version", ...]
  environment.contents.packages      build-time requirements
  pipeline[].uses / pipeline[].with  fetch steps and other pipeline references
  subpackages[].name / .range        literal or range-expanded subpackages
  data[].name / data[].items         tables used by subpackage ranges

Everything else in the document is ignored.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml

from pkgdag.modules.errors import ParseError

RANGE_KEY = "${{range.key}}"
RANGE_VALUE = "${{range.value}}"

PACKAGE_NAME = "${{package.name}}"
PACKAGE_VERSION = "${{package.version}}"
PACKAGE_EPOCH = "${{package.epoch}}"


@dataclass(frozen=True)
class Subpackage:
    name: str


@dataclass(frozen=True)
class PipelineStep:
    uses: str = ""
    with_: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class FetchURI:
    uri: str
    expected_sha256: str = ""
    expected_sha512: str = ""


@dataclass(frozen=True)
class PackageConfig:
    name: str
    version: str = ""
    epoch: str = "0"
    requirements: Tuple[str, ...] = ()
    subpackages: Tuple[Subpackage, ...] = ()
    pipeline: Tuple[PipelineStep, ...] = ()
    data: Mapping[str, Mapping[str, str]] = field(default_factory=lambda: MappingProxyType({}))
    provides: Tuple[str, ...] = ()
    path: Optional[str] = None

    def provided_names(self) -> List[str]:
        """Virtual names from the provides list, without their '=version' part."""
        names = []
        for entry in self.provides:
            name = entry.split("=", 1)[0].strip()
            if name and name not in names:
                names.append(name)
        return names

    def subpackage_names(self) -> List[str]:
        return [sp.name for sp in self.subpackages]

    def uris(self) -> List[FetchURI]:
        uris = []
        for step in self.pipeline:
            if step.uses == "fetch":
                uris.append(FetchURI(
                    uri=step.with_.get("uri", ""),
                    expected_sha256=step.with_.get("expected-sha256", ""),
                    expected_sha512=step.with_.get("expected-sha512", ""),
                ))
        return uris

    def pipeline_requirements(self, mapping: Mapping[str, List[str]]) -> List[str]:
        """Extra build requirements implied by the pipelines this package uses."""
        reqs: List[str] = []
        for step in self.pipeline:
            for req in mapping.get(step.uses, ()):
                if req not in reqs:
                    reqs.append(req)
        return reqs


def substitute(text: str, config: PackageConfig) -> str:
    """Replace ${{package.*}} variables in text with values from config."""
    return (text.replace(PACKAGE_NAME, config.name)
                .replace(PACKAGE_VERSION, config.version)
                .replace(PACKAGE_EPOCH, config.epoch))


# -------------------------
# field helpers
# -------------------------
def _mapping(value: Any, where: str, path: Optional[str]) -> Dict[str, Any]:
    if value is None or value == "":
        return {}
    if not isinstance(value, dict):
        raise ParseError(f"{where} must be a mapping", path)
    return value


def _sequence(value: Any, where: str, path: Optional[str]) -> List[Any]:
    if value is None or value == "":
        return []
    if not isinstance(value, list):
        raise ParseError(f"{where} must be a list", path)
    return value


def _string(value: Any, where: str, path: Optional[str]) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ParseError(f"{where} must be a string", path)
    return value


def _expand_subpackages(raw: List[Any], data: Mapping[str, Mapping[str, str]],
                        package: str, path: Optional[str]) -> Tuple[Subpackage, ...]:
    expanded: List[Subpackage] = []
    for i, item in enumerate(raw):
        sp = _mapping(item, f"subpackages[{i}]", path)
        template = _string(sp.get("name"), f"subpackages[{i}].name", path)
        template = template.replace(PACKAGE_NAME, package)
        range_name = _string(sp.get("range"), f"subpackages[{i}].range", path)
        if not range_name:
            if not template:
                raise ParseError(f"empty subpackage name for {package!r}", path)
            expanded.append(Subpackage(name=template))
            continue
        if range_name not in data:
            raise ParseError(f"subpackage range {range_name!r} has no matching data table", path)
        for key, value in data[range_name].items():
            name = template.replace(RANGE_KEY, key).replace(RANGE_VALUE, value)
            if not name:
                raise ParseError(f"empty subpackage name for {package!r} (range {range_name!r})", path)
            expanded.append(Subpackage(name=name))
    return tuple(sorted(expanded, key=lambda s: s.name))


# -------------------------
# parsing
# -------------------------
def parse_config(data: Union[bytes, str], path: Optional[str] = None) -> PackageConfig:
    """Parse one build document. Raises ParseError on anything unusable."""
    try:
        # BaseLoader keeps every scalar a string: "1.10" must not become 1.1
        doc = yaml.load(data, Loader=yaml.BaseLoader)
    except yaml.YAMLError as e:
        raise ParseError(f"unable to decode: {e}", path) from e

    doc = _mapping(doc, "document", path)
    pkg = _mapping(doc.get("package"), "package", path)
    name = _string(pkg.get("name"), "package.name", path).strip()
    if not name:
        raise ParseError("no package name", path)
    version = _string(pkg.get("version"), "package.version", path)
    epoch = _string(pkg.get("epoch"), "package.epoch", path) or "0"

    deps = _mapping(pkg.get("dependencies"), "package.dependencies", path)
    provides = tuple(
        _string(p, "package.dependencies.provides[]", path)
        for p in _sequence(deps.get("provides"), "package.dependencies.provides", path)
    )

    env = _mapping(doc.get("environment"), "environment", path)
    contents = _mapping(env.get("contents"), "environment.contents", path)
    requirements = []
    for req in _sequence(contents.get("packages"), "environment.contents.packages", path):
        req = _string(req, "environment.contents.packages[]", path).strip()
        if not req:
            raise ParseError(f"empty package name in environment packages for {name!r}", path)
        requirements.append(req)

    pipeline = []
    for i, item in enumerate(_sequence(doc.get("pipeline"), "pipeline", path)):
        step = _mapping(item, f"pipeline[{i}]", path)
        with_ = _mapping(step.get("with"), f"pipeline[{i}].with", path)
        pipeline.append(PipelineStep(
            uses=_string(step.get("uses"), f"pipeline[{i}].uses", path),
            with_=MappingProxyType(
                {str(k): _string(v, f"pipeline[{i}].with.{k}", path) for k, v in with_.items()}),
        ))

    tables: Dict[str, Dict[str, str]] = {}
    for i, item in enumerate(_sequence(doc.get("data"), "data", path)):
        table = _mapping(item, f"data[{i}]", path)
        table_name = _string(table.get("name"), f"data[{i}].name", path)
        items = _mapping(table.get("items"), f"data[{i}].items", path)
        tables[table_name] = {str(k): _string(v, f"data[{i}].items.{k}", path) for k, v in items.items()}

    subpackages = _expand_subpackages(_sequence(doc.get("subpackages"), "subpackages", path),
                                      tables, name, path)

    return PackageConfig(
        name=name,
        version=version,
        epoch=epoch,
        requirements=tuple(requirements),
        subpackages=subpackages,
        pipeline=tuple(pipeline),
        data=MappingProxyType({k: MappingProxyType(v) for k, v in tables.items()}),
        provides=provides,
        path=path,
    )


def load_config(path: str) -> PackageConfig:
    with open(path, "rb") as fh:
        return parse_config(fh.read(), path=path)


def iter_config_paths(directory: str, suffix: str = ".yaml") -> Iterator[str]:
    """Regular files ending in suffix directly inside directory, in lexical order."""
    entries = sorted(os.scandir(directory), key=lambda e: e.name)
    for entry in entries:
        if entry.name.endswith(suffix) and entry.is_file(follow_symlinks=False):
            yield entry.path
