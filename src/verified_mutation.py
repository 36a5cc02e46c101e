"""Verify-by-diff for edits the engine may silently ignore.

Keyboard Maestro accepts malformed action or trigger XML without raising:
the script exits cleanly and nothing is created. verify_by_diff() reads an
observable before and after the edit and fails when the expected change
did not happen.

A concurrent external edit of the same macro between the two reads can
mask or fake a change. The engine has no compare-and-swap primitive, so
this window is accepted rather than locked against.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from km_errors import MutationNotAppliedError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def increased(before, after) -> bool:
    return after > before


def decreased(before, after) -> bool:
    return after < before


def changed(before, after) -> bool:
    return after != before


def verify_by_diff(
    observe: Callable[[], T],
    act: Callable[[], R],
    expect: Callable[[T, T], bool] = increased,
    description: str = "Mutation was not applied",
) -> R:
    """Run `act` between two calls to `observe` and check the difference.

    Args:
        observe: Reads the observable (e.g. the action count of a macro).
        act: Performs the edit. Its return value is passed through.
        expect: Predicate over (before, after) that must hold.
        description: Message for the MutationNotAppliedError.

    Raises:
        MutationNotAppliedError: `act` returned normally but `expect` failed.
        Any exception from `observe` or `act` propagates unchanged.
    """
    before = observe()
    result = act()
    after = observe()

    if not expect(before, after):
        logger.warning("%s (before=%r, after=%r)", description, before, after)
        raise MutationNotAppliedError(f"{description} (before: {before}, after: {after})")

    logger.debug("Verified mutation: %r -> %r", before, after)
    return result
