# pkgdag/modules/targets.py

ARCH_ALIASES = {
    "amd64": "x86_64",
    "x86_64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}


def normalize_arch(arch: str) -> str:
    """Map docker-style architecture names to the apk ones; unknown names pass through."""
    arch = arch.strip()
    return ARCH_ALIASES.get(arch.lower(), arch)


def make_target(name: str, version: str, epoch: str, arch: str) -> str:
    """make target of the apk built for name, e.g. packages/x86_64/foo-1.2.3-r0.apk"""
    return f"packages/{arch}/{name}-{version}-r{epoch}.apk"
