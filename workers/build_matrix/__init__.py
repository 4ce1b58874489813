"""
build_matrix — test-then-build orchestration across a compiler build matrix.

Fetches the toolchain installer, activates a compiler, then walks the
(architecture × configuration × build-mode) matrix: tests gate each
configuration, debug builds are hard-fail, plain/release builds are
soft-fail and leave a ``.failed`` marker instead of a binary.
"""

__version__ = "0.3.0"
PACKAGE_NAME = "build_matrix"
REPORT_SCHEMA_VERSION = "0.1"
