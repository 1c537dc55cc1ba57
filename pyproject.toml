[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "proxytools"
version = "0.1.0"
description = "Building blocks for proxy servers: SOCKS5 handshake helpers, sharded maps, blocking queues, worker supervision, dial-failure tracking, a byte cache and a RabbitMQ connection pool."
requires-python = ">=3.10"
keywords = [
    "proxy",
    "socks5",
    "rabbitmq",
    "amqp",
    "concurrency",
    "queue",
    "cache",
    "blacklist",
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
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]
dependencies = [
    "pika",
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["proxytools"]

[tool.hatch.build.targets.sdist]
include = [
    "proxytools",
    "tests",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
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
