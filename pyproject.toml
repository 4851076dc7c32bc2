[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "errbeacon"
version = "0.1.0"
description = "Error-report envelope delivery: server rate limits, a background send worker, an HTTP transport and client defaults read from the environment."
requires-python = ">=3.10"
dependencies = []
keywords = ["error-reporting", "rate-limiting", "transport", "envelope", "telemetry"]
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
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["errbeacon"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
