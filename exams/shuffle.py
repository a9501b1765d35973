# exams/shuffle.py
"""
Canonical option ordering and the deterministic shuffle used for exam attempts.

The order a student sees is never stored. It is recomputed from the same
inputs whenever it is needed (resume, grading, review), so everything in this
module must stay pure and pinned:

- ``resolve_base_order`` fixes the reference frame (positions 0..n-1 before
  any shuffling).
- ``derive_seed`` turns the seed inputs into an integer. It is versioned; a
  change to the canonical string or to the generator needs a new version.
- ``shuffle`` runs a Fisher-Yates pass driven by a 31-bit LCG.
"""
import zlib
from dataclasses import dataclass
from functools import lru_cache

SEED_VERSION = "v1"

_LCG_MULTIPLIER = 1103515245
_LCG_INCREMENT = 12345
_LCG_MASK = 0x7FFFFFFF


@dataclass(frozen=True)
class SeedInputs:
    student_id: object
    question_id: object
    attempt_id: object

    def canonical(self):
        return f"{SEED_VERSION}:{self.student_id}-{self.question_id}-{self.attempt_id}"


def resolve_base_order(options):
    """Sort by explicit sequence, ties broken by primary key."""
    return sorted(options, key=lambda option: (option.sequence, option.pk))


def derive_seed(seed_inputs: SeedInputs) -> int:
    return zlib.crc32(seed_inputs.canonical().encode("utf-8"))


def _lcg(seed):
    state = seed & _LCG_MASK
    while True:
        state = (state * _LCG_MULTIPLIER + _LCG_INCREMENT) & _LCG_MASK
        yield state


@lru_cache(maxsize=4096)
def permutation(seed: int, size: int) -> tuple:
    """Index permutation of ``range(size)`` for a given seed."""
    indices = list(range(size))
    draws = _lcg(seed)
    for i in range(size - 1, 0, -1):
        # state < 2**31, so j is always within 0..i
        j = (next(draws) * (i + 1)) >> 31
        indices[i], indices[j] = indices[j], indices[i]
    return tuple(indices)


def shuffle(base_order, seed_inputs: SeedInputs, enabled: bool = True) -> list:
    items = list(base_order)
    if not enabled or len(items) < 2:
        return items
    order = permutation(derive_seed(seed_inputs), len(items))
    return [items[index] for index in order]
