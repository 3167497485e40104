[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "elasticpool"
version = "0.1.0"
description = "An elastic thread pool that grows under load, shrinks when idle, and runs delayed and periodic tasks."
requires-python = ">=3.10"
dependencies = []
keywords = ["thread pool", "worker pool", "concurrency", "timer", "scheduling"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["elasticpool"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
