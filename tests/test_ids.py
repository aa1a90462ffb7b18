from __future__ import annotations

import re

from hourgit.ids import id_fresh, id_from_seed, slugify

ID_PATTERN = re.compile(r"^[0-9a-f]{7}$")
SLUG_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


def test_id_from_seed_is_deterministic() -> None:
    first = id_from_seed("abc12342025-01-02T09:00:00Zmainfeature")
    assert ID_PATTERN.match(first)
    assert first == id_from_seed("abc12342025-01-02T09:00:00Zmainfeature")
    assert first != id_from_seed("abc12342025-01-02T09:00:01Zmainfeature")


def test_id_fresh_differs_between_calls() -> None:
    ids = {id_fresh("log") for _ in range(50)}
    assert len(ids) == 50
    assert all(ID_PATTERN.match(value) for value in ids)


def test_slugify() -> None:
    assert slugify("My Project") == "my-project"
    assert slugify("  Acme -- Billing!! ") == "acme-billing"
    assert slugify("ENG_641/foo") == "eng-641-foo"


def test_slugify_is_idempotent() -> None:
    for name in ("My Project", "__x__", "Déjà vu 2", "a/b/c"):
        slug = slugify(name)
        assert slugify(slug) == slug
        assert SLUG_PATTERN.match(slug)
