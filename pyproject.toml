[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ckbtestkit"
version = "0.1.0"
description = "Helpers for CKB integration tests: JSON-RPC in both dialects, subscriptions, p2p message framing and chain queries"
requires-python = ">=3.10"
dependencies = [
    "requests",
]
keywords = ["ckb", "blockchain", "integration-testing", "json-rpc", "snappy", "testkit"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
    "Framework :: AsyncIO",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["ckbtestkit"]

[tool.hatch.build.targets.sdist]
include = ["ckbtestkit", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
