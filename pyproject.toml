[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "oamtraits"
version = "0.1.0"
description = "Reconcilers and renderers for OAM scaling traits (Autoscaler, CronHPA, HPA, MetricHPA) over a pluggable cluster client"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "oam",
    "kubernetes",
    "autoscaling",
    "hpa",
    "keda",
    "cronhpa",
    "prometheus",
    "controller",
    "reconciler",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
oamtraits-uischema = "oamtraits.uischema:main"

[tool.hatch.build.targets.wheel]
packages = ["oamtraits"]

[tool.hatch.build.targets.sdist]
include = ["oamtraits", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
