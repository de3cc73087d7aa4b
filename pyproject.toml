[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "eks-pricing-exporter"
version = "0.2.1"
description = "Prometheus exporter that reports the hourly price of every node in an EKS cluster"
requires-python = ">=3.10"
dependencies = [
    "requests",
]
keywords = [
    "prometheus",
    "exporter",
    "kubernetes",
    "eks",
    "aws",
    "pricing",
    "fargate",
    "spot",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
eks-pricing-exporter = "eks_pricing_exporter.exporter:main"

[tool.hatch.build.targets.wheel]
packages = ["eks_pricing_exporter"]

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
