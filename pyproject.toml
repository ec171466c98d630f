[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tunnelkit"
version = "0.1.0"
description = "Proxy building blocks: SOCKS5 and TCP forwarders, chained dialers (TLS, WebSocket, trojan, simple-obfs, HTTP CONNECT), and small supporting utilities."
requires-python = ">=3.10"
keywords = [
    "proxy",
    "socks5",
    "tunnel",
    "trojan",
    "simple-obfs",
    "websocket",
    "dialer",
    "lru",
    "trie",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "psutil",
    "websocket-client",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["tunnelkit"]

[tool.hatch.build.targets.sdist]
include = [
    "tunnelkit",
    "tests",
]

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
