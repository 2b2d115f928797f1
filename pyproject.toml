[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hookbroker"
version = "0.2.0"
description = "Priority-ordered webhook job dispatching with a worker pool, recovery sweeps and a small HTTP broker demo"
requires-python = ">=3.10"
dependencies = []
keywords = ["webhook", "broker", "dispatcher", "priority-queue", "workers"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
hookbroker = "hookbroker.server:main"

[tool.hatch.build.targets.wheel]
packages = ["hookbroker"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
