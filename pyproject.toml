[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "splcompiler"
version = "0.1.0"
description = "Compiler back end for x86-64: machine IR, liveness analysis, graph-colouring register allocation, stack frame allocation, NASM output and runtime helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["compiler", "register allocation", "liveness", "x86-64", "nasm", "codegen"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["splcompiler"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
