# pkgdag/modules/cache.py

"""
Source cache for the fetch steps of a set of package configs.

Every `uses: fetch` pipeline step names a URI and an expected sha256 or
sha512 digest. Files are stored content-addressed as
<out_dir>/sha256:<hex> (or sha512:<hex>) so one cache directory can be
shared by every package and bundled as-is for remote builds.

Behaviour:
 - file present with the right digest: skipped
 - file present with another digest: downloaded again
 - digest mismatch after download: ChecksumError, file removed
 - fetch step without a digest: ChecksumError
 - downloads run on a thread pool; dry-run only logs
"""

import hashlib
import os
import shutil
import tempfile
import time
import urllib.error
import urllib.request
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Iterable, List, Optional

from pkgdag.modules import recipe as _recipe
from pkgdag.modules.config import config as default_config
from pkgdag.modules.errors import ChecksumError, DagError, FetchError
from pkgdag.modules.logger import Logger


@dataclass(frozen=True)
class CacheEntry:
    package: str
    uri: str
    algorithm: str
    digest: str

    @property
    def filename(self) -> str:
        return f"{self.algorithm}:{self.digest}"


@dataclass
class CacheReport:
    count: int = 0
    cached: int = 0
    downloaded: int = 0
    bytes: int = 0
    elapsed: float = 0.0


def entries_for(configs: Iterable[_recipe.PackageConfig]) -> List[CacheEntry]:
    """Resolve every fetch step into a CacheEntry, one per distinct file."""
    entries: List[CacheEntry] = []
    seen = set()
    for cfg in configs:
        for fetch in cfg.uris():
            uri = _recipe.substitute(fetch.uri, cfg)
            if fetch.expected_sha256:
                entry = CacheEntry(cfg.name, uri, "sha256", fetch.expected_sha256.lower())
            elif fetch.expected_sha512:
                entry = CacheEntry(cfg.name, uri, "sha512", fetch.expected_sha512.lower())
            else:
                raise ChecksumError(f"invalid checksum provided for {uri} (package {cfg.name!r})")
            if entry.filename in seen:
                continue
            seen.add(entry.filename)
            entries.append(entry)
    return entries


class SourceCache:
    def __init__(self,
                 out_dir: Optional[str] = None,
                 workers: Optional[int] = None,
                 timeout: Optional[int] = None,
                 dry_run: bool = False,
                 logger: Optional[Logger] = None,
                 settings=None):
        settings = settings or default_config
        self.out_dir = os.path.abspath(out_dir or settings.get("cache", "out_dir", fallback="./cache"))
        self.workers = workers or settings.getint("cache", "workers", fallback=4)
        self.timeout = timeout or settings.getint("cache", "timeout", fallback=60)
        self.dry_run = dry_run
        self.log = logger or Logger("cache", settings=settings)

    def _hash_file(self, file_path: str, algorithm: str = "sha256") -> str:
        h = hashlib.new(algorithm)
        with open(file_path, "rb") as f:
            while True:
                chunk = f.read(8192)
                if not chunk:
                    break
                h.update(chunk)
        return h.hexdigest()

    def path_for(self, entry: CacheEntry) -> str:
        return os.path.join(self.out_dir, entry.filename)

    def is_cached(self, entry: CacheEntry) -> bool:
        path = self.path_for(entry)
        if not os.path.isfile(path):
            return False
        got = self._hash_file(path, entry.algorithm)
        if got == entry.digest:
            return True
        self.log.warning(f"Caching {entry.uri}: found {path} in cache with hash mismatch (got {got}), redownloading")
        return False

    # ------------------------
    # Fetch
    # ------------------------
    def fetch(self, entry: CacheEntry) -> int:
        """Download one entry into the cache. Returns bytes written."""
        dest = self.path_for(entry)
        if self.dry_run:
            self.log.info(f"[DRY-RUN] would cache {entry.uri} -> {dest}")
            return 0

        fd, tmpname = tempfile.mkstemp(dir=self.out_dir, prefix=".partial-")
        os.close(fd)
        h = hashlib.new(entry.algorithm)
        size = 0
        try:
            self.log.info(f"Caching {entry.uri} -> {dest}")
            try:
                with urllib.request.urlopen(entry.uri, timeout=self.timeout) as r, open(tmpname, "wb") as out:
                    while True:
                        chunk = r.read(65536)
                        if not chunk:
                            break
                        out.write(chunk)
                        h.update(chunk)
                        size += len(chunk)
            except (urllib.error.URLError, OSError, ValueError) as e:
                raise FetchError(f"fetching {entry.uri}: {e}") from e

            got = h.hexdigest()
            if got != entry.digest:
                self.log.error(f"CHECKSUM MISMATCH {entry.uri}: got {got}, want {entry.digest}")
                raise ChecksumError(f"checksum mismatch for {entry.uri}: got {got}, want {entry.digest}")
            os.replace(tmpname, dest)
        finally:
            if os.path.exists(tmpname):
                os.remove(tmpname)
        return size

    def cache_all(self, configs: Iterable[_recipe.PackageConfig]) -> CacheReport:
        start = time.time()
        entries = entries_for(configs)
        report = CacheReport(count=len(entries))
        if not self.dry_run:
            os.makedirs(self.out_dir, exist_ok=True)

        pending = []
        for entry in entries:
            if self.is_cached(entry):
                report.cached += 1
                self.log.info(f"Caching {entry.uri}: found {self.path_for(entry)} already in cache")
            else:
                pending.append(entry)

        failures = []
        with ThreadPoolExecutor(max_workers=max(1, self.workers)) as ex:
            future_to_entry = {ex.submit(self.fetch, entry): entry for entry in pending}
            for fut in as_completed(future_to_entry):
                entry = future_to_entry[fut]
                try:
                    size = fut.result()
                except DagError as e:
                    self.log.error(f"Failed caching {entry.uri} ({entry.package}): {e}")
                    failures.append(e)
                    continue
                if not self.dry_run:
                    report.downloaded += 1
                    report.bytes += size

        report.elapsed = time.time() - start
        if failures:
            raise failures[0]
        self.log.success(f"Cached {report.count} URIs ({report.bytes} bytes downloaded) in {report.elapsed:.1f}s")
        return report

    def clean(self, keep: Iterable[CacheEntry] = ()) -> List[str]:
        """Remove every cache file not named by keep. Returns removed paths."""
        wanted = {e.filename for e in keep}
        removed = []
        if not os.path.isdir(self.out_dir):
            return removed
        for fn in sorted(os.listdir(self.out_dir)):
            if fn in wanted:
                continue
            fp = os.path.join(self.out_dir, fn)
            if self.dry_run:
                self.log.info(f"[DRY-RUN] would remove {fp}")
                continue
            if os.path.isdir(fp):
                shutil.rmtree(fp)
            else:
                os.remove(fp)
            removed.append(fp)
            self.log.info(f"Removed {fp}")
        return removed
