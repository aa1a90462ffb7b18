from __future__ import annotations

import sys
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace

from .errors import InvalidInputError


@dataclass(frozen=True)
class PromptKit:
    """Interactive capabilities consumed by commands, swappable for scripted answers."""

    prompt: Callable[[str], str]
    prompt_with_default: Callable[[str, str], str]
    select: Callable[[str, Sequence[str]], int]
    multi_select: Callable[[str, Sequence[str]], list[int]]
    confirm: Callable[[str], bool]

    @classmethod
    def interactive(cls) -> PromptKit:
        return cls(
            prompt=_ask,
            prompt_with_default=_ask_with_default,
            select=_select,
            multi_select=_multi_select,
            confirm=_confirm,
        )

    @classmethod
    def scripted(cls, answers: Iterable[str]) -> PromptKit:
        """Answer prompts from a fixed sequence; confirmations read ``y``/``n``."""
        pending = iter(answers)

        def take(label: str) -> str:
            try:
                return next(pending)
            except StopIteration:
                raise InvalidInputError(f"no scripted answer for '{label}'") from None

        def with_default(label: str, default: str) -> str:
            return take(label).strip() or default

        def select(label: str, options: Sequence[str]) -> int:
            return _parse_choice(take(label), len(options))

        def multi_select(label: str, options: Sequence[str]) -> list[int]:
            return _parse_choices(take(label), len(options))

        def confirm(label: str) -> bool:
            return _is_yes(take(label))

        return cls(
            prompt=take,
            prompt_with_default=with_default,
            select=select,
            multi_select=multi_select,
            confirm=confirm,
        )

    def always_yes(self) -> PromptKit:
        return replace(self, confirm=lambda label: True)


def _require_tty() -> None:
    if not sys.stdin.isatty():
        raise InvalidInputError(
            "input required when running non-interactively (pass flags or --yes)"
        )


def _ask(label: str) -> str:
    _require_tty()
    return input(f"{label}: ").strip()


def _ask_with_default(label: str, default: str) -> str:
    _require_tty()
    answer = input(f"{label} [{default}]: ").strip()
    return answer or default


def _is_yes(answer: str) -> bool:
    return answer.strip().lower() in {"y", "yes"}


def _confirm(label: str) -> bool:
    _require_tty()
    return _is_yes(input(f"{label} [y/N]: "))


def _parse_choice(answer: str, count: int) -> int:
    text = answer.strip()
    if not text.isdigit() or not 1 <= int(text) <= count:
        raise InvalidInputError(f"invalid selection '{answer}' (expected 1-{count})")
    return int(text) - 1


def _parse_choices(answer: str, count: int) -> list[int]:
    parts = [part for part in answer.replace(",", " ").split() if part]
    return sorted({_parse_choice(part, count) for part in parts})


def _print_options(label: str, options: Sequence[str]) -> None:
    print(label)
    for index, option in enumerate(options, start=1):
        print(f"  [{index}] {option}")


def _select(label: str, options: Sequence[str]) -> int:
    _require_tty()
    _print_options(label, options)
    while True:
        try:
            return _parse_choice(input("> "), len(options))
        except InvalidInputError as exc:
            print(exc, file=sys.stderr)


def _multi_select(label: str, options: Sequence[str]) -> list[int]:
    _require_tty()
    _print_options(label, options)
    while True:
        try:
            return _parse_choices(input("Numbers (comma separated): "), len(options))
        except InvalidInputError as exc:
            print(exc, file=sys.stderr)
