[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "concurkit"
version = "0.1.0"
description = "Thread-safe building blocks: RCU map, broadcast ring, channels, deferred release, hazard pointers and cooperative tasks"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "concurrency",
    "threads",
    "rcu",
    "hazard-pointers",
    "channel",
    "broadcast",
    "hashmap",
    "coroutines",
]
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

[project.scripts]
concurkit-broadcast-stress = "concurkit.broadcast_stress:main"
concurkit-channel = "concurkit.channel:main"
concurkit-coro = "concurkit.coro:main"
concurkit-fiber = "concurkit.fiber:main"
concurkit-hazard = "concurkit.hazard:main"
concurkit-ordered-list = "concurkit.ordered_list:main"

[tool.hatch.build.targets.wheel]
packages = ["concurkit"]

[tool.hatch.build.targets.sdist]
include = ["concurkit", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
