[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "veinlog"
version = "0.1.0"
description = "Event-driven database logger, content sets and customer data entity for component-based measurement systems"
requires-python = ">=3.10"
dependencies = []
keywords = ["logging", "events", "customer-data", "content-sets", "measurement"]
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
packages = ["veinlog"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
