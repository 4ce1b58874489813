"""
Gating — which failures abort the run and in which order modes build.

Tests always hard-fail.  A build mode hard-fails when the profile lists
it in ``hard_fail_modes`` (debug by default); everything else soft-fails.
Debug builds run first so they act as a toolchain smoke test before the
best-effort plain/release builds.
"""
from enum import Enum, unique
from typing import Iterable, List

from build_matrix.policy.profile import MatrixProfile


@unique
class FailurePolicy(str, Enum):
    HARD = "HARD"
    SOFT = "SOFT"


TEST_PHASE_POLICY = FailurePolicy.HARD

# lower runs first; unknown modes sort after these
MODE_PRIORITY = {
    "debug": 0,
    "plain": 1,
    "release": 2,
}


def order_build_modes(modes: Iterable[str]) -> List[str]:
    """Stable sort by priority: debug, plain, release, then the rest as declared."""
    fallback = len(MODE_PRIORITY)
    return sorted(modes, key=lambda m: MODE_PRIORITY.get(m, fallback))


def build_policy(build_mode: str, profile: MatrixProfile) -> FailurePolicy:
    if build_mode in profile.hard_fail_modes:
        return FailurePolicy.HARD
    return FailurePolicy.SOFT
