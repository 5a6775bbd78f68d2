[build-system]
requires = ["setuptools>=61"]
build-backend = "setuptools.build_meta"

[project]
name = "kubeplug"
version = "0.1.0"
description = "Building blocks of a kubectl plugin manager: manifests, validation, index scanning, receipts, archive download and an index statistics API"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["kubectl", "plugins", "manifest", "index", "package-manager"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Software Distribution",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
kubeplug-site-api = "kubeplug.site_api:main"

[tool.setuptools.packages.find]
include = ["kubeplug*"]

[tool.pytest.ini_options]
addopts = "-ra"
