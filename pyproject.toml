[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "jetchannel"
version = "0.1.0"
description = "Naming, stream and consumer configuration, resource manifests and dispatch logic for JetStream-backed event channels"
requires-python = ">=3.10"
dependencies = []
keywords = ["jetstream", "nats", "channel", "eventing", "dispatcher", "kubernetes"]
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
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["jetchannel"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
