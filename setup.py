from setuptools import setup, find_packages

setup(
    name="pkgdag",
    version="0.1.0",
    description="Build-order dependency graph for directories of melange package configs.",
    author="pkgdag developers",
    license="Apache-2.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "PyYAML>=6.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "pkgdag=pkgdag.modules.cli:main",
        ],
    },
)
