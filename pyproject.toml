[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "haxspec"
version = "0.1.0"
description = "Specification helpers for verified programs: contracts, logical quantifiers, protocol state machines, an abstract crypto layer and a snapshot test harness."
requires-python = ">=3.10"
keywords = [
    "verification",
    "contracts",
    "specification",
    "protocol",
    "state-machine",
    "snapshot-testing",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Quality Assurance",
    "Topic :: Software Development :: Testing",
    "Topic :: Security :: Cryptography",
]
dependencies = [
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
haxspec-harness = "haxspec.harness:main"

[tool.hatch.build.targets.wheel]
packages = ["haxspec"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
