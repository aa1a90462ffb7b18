from __future__ import annotations

import hashlib
import itertools
import re
import time

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")
_sequence = itertools.count()


def id_from_seed(seed: str) -> str:
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    return digest[:4].hex()[:7]


def id_fresh(namespace: str) -> str:
    # time_ns() can repeat on coarse clocks; the counter keeps seeds distinct.
    return id_from_seed(f"{namespace}\x00{time.time_ns()}.{next(_sequence)}")


def slugify(name: str) -> str:
    return _SLUG_SEPARATORS.sub("-", name.lower()).strip("-")
