[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mcpserver"
version = "0.1.0"
description = "A Model Context Protocol server core: JSON-RPC dispatch for tools, prompts and resources, with sessions, hooks and notifications."
requires-python = ">=3.10"
dependencies = []
keywords = ["mcp", "model-context-protocol", "json-rpc", "server", "tools", "prompts", "resources"]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["mcpserver"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
