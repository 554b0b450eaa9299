[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lbgate"
version = "0.1.0"
description = "HTTP load balancer with round-robin routing, health checks and a Redis-backed per-IP token bucket rate limiter"
requires-python = ">=3.10"
keywords = ["load balancer", "reverse proxy", "rate limiting", "token bucket", "round robin", "redis", "aiohttp"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: System :: Networking",
]
dependencies = [
    "aiohttp>=3.9",
    "redis>=5.0",
    "pyyaml>=6.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[project.scripts]
lbgate = "lbgate.app:main"
lbgate-demo-backend = "lbgate.demo_backend:main"

[tool.hatch.build.targets.wheel]
packages = ["lbgate"]

[tool.hatch.build.targets.sdist]
include = ["lbgate", "tests", "README.md", "pyproject.toml"]

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
ignore_missing_imports = true
