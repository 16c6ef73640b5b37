[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "llprospero"
version = "0.1.0"
description = "Optimizing passes, a PBM renderer and an x86 AVX backend for implicit-surface expression programs"
requires-python = ">=3.10"
dependencies = []
keywords = ["compiler", "implicit surfaces", "ssa", "register allocation", "x86", "simd", "avx"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
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

[project.scripts]
llp-print = "llprospero.cli:print_main"
llp-interp = "llprospero.cli:interp_main"
llp-memoize = "llprospero.cli:memoize_main"
llp-reassociate = "llprospero.cli:reassociate_main"
llp-reorder = "llprospero.cli:reorder_main"
llp-simplify = "llprospero.cli:simplify_main"
llp-x86 = "llprospero.cli:x86_main"

[tool.setuptools.packages.find]
include = ["llprospero", "llprospero.*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
