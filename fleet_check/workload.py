"""Seeded, reproducible test data and node-selection streams."""

from __future__ import annotations

import math
import random
import secrets
from typing import List

from .models import MAX_CHUNK_SIZE, Chunk, File

BRANCHES = 128
MINIMUM_BATCH_DEPTH = 2
BATCH_DEPTH_MARGIN = 2


def random_seed() -> int:
    """Non-deterministic 63-bit seed; echo it so the run can be replayed."""
    return secrets.randbits(63)


def pseudo_generators(seed: int, count: int) -> List[random.Random]:
    """Return ``count`` independent streams derived from a single seed.

    The same ``(seed, count)`` always yields the same streams, so content and
    node choices drawn from them are reproducible.
    """
    if count < 0:
        raise ValueError("count must be non-negative")
    master = random.Random(seed)
    return [random.Random(master.getrandbits(63)) for _ in range(count)]


def random_chunk(rng: random.Random) -> Chunk:
    size = rng.randint(1, MAX_CHUNK_SIZE)
    return Chunk(payload=rng.randbytes(size))


def random_file(rng: random.Random, name: str, size: int) -> File:
    return File(name=name, data=rng.randbytes(size))


def chunk_count(content_length: int) -> int:
    """Number of chunks, intermediate ones included, needed to store the content."""
    if content_length <= MAX_CHUNK_SIZE:
        return 1
    total = 0
    level = math.ceil(content_length / MAX_CHUNK_SIZE)
    while level > 1:
        total += level
        level = math.ceil(level / BRANCHES)
    return total + 1


def estimate_batch_depth(content_length: int) -> int:
    depth = int(math.log2(chunk_count(content_length)))
    return max(depth, MINIMUM_BATCH_DEPTH)
