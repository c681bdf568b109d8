#!/usr/bin/env python3

from setuptools import find_packages, setup

version = {}
with open("./rustsec_osv/_version.py") as f:
    exec(f.read(), version)

with open("./README.md") as f:
    long_description = f.read()

setup(
    name="rustsec-osv",
    version=version["__version__"],
    license="Apache-2.0",
    description="Export RustSec security advisories to the OSV interchange format",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["test", "test.*"]),
    entry_points={
        "console_scripts": [
            "rustsec-osv = rustsec_osv._cli:export",
        ]
    },
    platforms="any",
    python_requires=">=3.9",
    install_requires=[
        "semantic_version>=2.10",
        "toml>=0.10",
        "rich>=12.0",
        "pygit2>=1.14",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-cov",
            "pretend",
            "hypothesis",
            "coverage[toml]",
        ],
        "dev": [
            "flake8",
            "black",
            "isort",
            "mypy",
            "types-toml",
            "rustsec-osv[test]",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Intended Audience :: Developers",
        "Topic :: Security",
    ],
)
