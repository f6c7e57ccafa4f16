# pkgdag/modules/pod.py
"""
Kubernetes pod manifest for running a build of graph targets remotely.

Only the manifest is produced here; creating the pod and following it is
left to kubectl or another client.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from pkgdag.modules.config import config as default_config

# buckets that need a real signing key
REAL_BUCKETS = (
    "wolfi-production-registry-source",
    "wolfi-registry-source",  # staging
)

GSUTIL_IMAGE = "gcr.io/google.com/cloudsdktool/google-cloud-cli:slim"


def plan_targets(graph, arch: str, packages: Optional[Iterable[str]] = None) -> Tuple[List[str], List[str]]:
    """
    Targets to build and prebuilt dependencies to download.

    No packages: every node in sorted() order and nothing to download.
    Otherwise: the named packages, plus their direct dependencies as
    repository paths (the target without its "packages/" prefix).
    """
    packages = list(packages or [])
    if not packages:
        return [graph.make_target(n, arch) for n in graph.sorted()], []

    targets = [graph.make_target(p, arch) for p in packages]
    deps = set()
    for p in packages:
        for d in graph.dependencies_of(p):
            deps.add(graph.make_target(d, arch)[len("packages/"):])
    return targets, sorted(deps)


def render_build_script(targets: List[str], deps: List[str], arch: str, repository_url: str) -> str:
    lines = [
        "set -euo pipefail",
        "",
        "# Use or generate secret.",
        "if [[ ! -f /var/secrets/melange.rsa ]]; then",
        '  echo "Generating key..."',
        "  MELANGE=/usr/bin/melange KEY=melange.rsa make melange.rsa",
        "else",
        '  echo "Using secret key..."',
        "  cp /var/secrets/melange.rsa melange.rsa",
        "fi",
        "",
        "# Prepopulate dependencies.",
        f"mkdir -p /workspace/packages/{arch}/",
    ]
    lines += [f"wget -P /workspace/packages/{arch} {repository_url}/{d}" for d in deps]
    lines += [
        f"wget -P /workspace/packages/ {repository_url}/wolfi-signing.rsa.pub",
        f"wget -P /workspace/packages/{arch}/ {repository_url}/{arch}/APKINDEX.tar.gz",
        "",
        "ls -R /workspace/packages",
        "",
        "# Build targets.",
    ]
    lines += [f"MELANGE=/usr/bin/melange KEY=melange.rsa make {t}" for t in targets]
    lines += [
        "rm melange.rsa",
        "",
        "# Trigger gsutil upload step.",
        "touch start-gsutil-cp",
        "echo exiting...",
        "exit 0",
    ]
    return "\n".join(lines) + "\n"


def _workspace_mount() -> Dict[str, str]:
    return {"name": "workspace", "mountPath": "/workspace"}


def _cache_mount() -> Dict[str, str]:
    return {"name": "cache", "mountPath": "/var/cache/melange"}


def make_pod(script: str,
             source_image: str,
             arch: str,
             namespace: Optional[str] = None,
             sdk_image: Optional[str] = None,
             cpu: Optional[str] = None,
             ram: Optional[str] = None,
             service_account: Optional[str] = None,
             cache_bundle: Optional[str] = None,
             bucket: Optional[str] = None,
             secret_key: bool = False,
             settings=None) -> Dict[str, Any]:
    """Pod manifest as a plain dict. Raises ValueError for unsafe bucket use."""
    settings = settings or default_config
    if bucket and not secret_key:
        for real in REAL_BUCKETS:
            if bucket.startswith(real):
                raise ValueError(f"refusing to push to real bucket {bucket} without secret key")

    build = {
        "name": "build",
        "image": sdk_image or settings.get("pod", "sdk_image"),
        "workingDir": "/workspace",
        "volumeMounts": [_workspace_mount(), _cache_mount()],
        "securityContext": {"privileged": True},
        "command": ["sh", "-c", script],
        "resources": {"requests": {
            "cpu": cpu or settings.get("pod", "cpu", fallback="1"),
            "memory": ram or settings.get("pod", "ram", fallback="2Gi"),
            "ephemeral-storage": "1Gi",
        }},
    }
    init = {
        "name": "init",
        "image": source_image,
        "workingDir": "/workspace",
        "volumeMounts": [_workspace_mount()],
        # minimums required by GKE Autopilot
        "resources": {"requests": {"cpu": "1", "memory": "2Gi", "ephemeral-storage": "1Gi"}},
    }
    pod: Dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "generateName": "dag-",
            "namespace": namespace or settings.get("pod", "namespace", fallback="default"),
        },
        "spec": {
            "restartPolicy": "Never",
            "serviceAccountName": service_account or settings.get("pod", "service_account", fallback="default"),
            "initContainers": [init],
            "containers": [build],
            "volumes": [
                {"name": "workspace", "emptyDir": {}},
                {"name": "cache", "emptyDir": {}},
            ],
        },
    }
    spec = pod["spec"]

    # populates the cache volume before the build starts
    if cache_bundle:
        spec["initContainers"].append({
            "name": "populate-cache",
            "image": cache_bundle,
            "workingDir": "/var/cache/melange",
            "volumeMounts": [_cache_mount()],
        })

    if bucket:
        spec["containers"].append({
            "name": "gsutil-cp",
            "image": GSUTIL_IMAGE,
            "workingDir": "/workspace",
            "command": ["sh", "-c", (
                "while true; do\n"
                "  [ -f start-gsutil-cp ] && break\n"
                "  sleep 10\n"
                "done\n"
                f"gsutil -m cp -r ./packages gs://{bucket}/packages\n"
            )],
            "volumeMounts": [_workspace_mount()],
        })

    if secret_key:
        build["volumeMounts"].append({"name": "melange-key", "mountPath": "/var/secrets"})
        spec["volumes"].append({
            "name": "melange-key",
            "csi": {
                "driver": "secrets-store.csi.k8s.io",
                "readOnly": True,
                "volumeAttributes": {"secretProviderClass": "melange-key"},
            },
        })

    if arch == "aarch64":
        spec["nodeSelector"] = {"kubernetes.io/arch": "arm64"}

    return pod


def dump_pod(pod: Dict[str, Any]) -> str:
    return yaml.safe_dump(pod, sort_keys=False, default_flow_style=False)
