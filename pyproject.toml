[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pancake-chat"
version = "0.1.0"
description = "Client-side core of a small instant-messaging system: wire protocol, local chat history, voice-call state and message timelines."
requires-python = ">=3.10"
dependencies = []
keywords = ["chat", "messaging", "protocol", "sqlite", "voice-call"]
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
    "Topic :: Communications :: Chat",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pancake_chat"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
