import io

import pytest
import yaml

from pkgdag.modules.config import DagConfig
from pkgdag.modules.logger import Logger


def package_doc(name, version="1.0", epoch=0, deps=(), subpackages=(), provides=(),
                pipeline=None, data=None):
    doc = {"package": {"name": name, "version": version, "epoch": epoch}}
    if provides:
        doc["package"]["dependencies"] = {"provides": list(provides)}
    if deps:
        doc["environment"] = {"contents": {"packages": list(deps)}}
    if pipeline:
        doc["pipeline"] = pipeline
    if subpackages:
        doc["subpackages"] = [sp if isinstance(sp, dict) else {"name": sp} for sp in subpackages]
    if data:
        doc["data"] = data
    return yaml.safe_dump(doc, sort_keys=False)


@pytest.fixture()
def settings(tmp_path):
    conf = tmp_path / "pkgdag.conf"
    conf.write_text(
        "[logging]\n"
        "level = debug\n"
        "color_output = false\n"
        f"[cache]\nout_dir = {tmp_path / 'cache'}\nworkers = 2\ntimeout = 5\n",
        encoding="utf-8",
    )
    return DagConfig([str(conf)])


@pytest.fixture()
def log_stream():
    return io.StringIO()


@pytest.fixture()
def logger(settings, log_stream):
    return Logger("test", settings=settings, stream=log_stream)


@pytest.fixture()
def config_dir(tmp_path):
    """Write {filename_stem: yaml_text} into a fresh directory and return its path."""
    root = tmp_path / "configs"
    root.mkdir()

    def _write(docs):
        for stem, text in docs.items():
            (root / f"{stem}.yaml").write_text(text, encoding="utf-8")
        return str(root)

    return _write


@pytest.fixture()
def doc():
    return package_doc
