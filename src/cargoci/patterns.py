# patterns.py
# Branch filter patterns, as used by `on.push.branches`.
#
#   *    any run of characters except "/"
#   **   any run of characters, "/" included
#   ?    zero or one of the preceding character
#   +    one or more of the preceding character
#   [..] one character from the set / range
#   !    (leading) negates the pattern; the last matching pattern wins
from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

from .errors import PatternError

REF_PREFIX = "refs/heads/"


def branch_name(ref: str) -> str:
    """'refs/heads/feature/x' -> 'feature/x'; plain names pass through."""
    if ref.startswith(REF_PREFIX):
        return ref[len(REF_PREFIX):]
    return ref


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern:
    if not pattern:
        raise PatternError("empty branch pattern")

    out: list[str] = []
    # whether the last emitted atom can take a ? or + quantifier
    quantifiable = False
    i, n = 0, len(pattern)

    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                out.append(".*")
                i += 2
            else:
                out.append("[^/]*")
                i += 1
            quantifiable = False
        elif c in "?+":
            if not quantifiable:
                raise PatternError(f"{c!r} has nothing to repeat in {pattern!r}")
            out.append(c)
            quantifiable = False
            i += 1
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                raise PatternError(f"unterminated '[' in {pattern!r}")
            body = pattern[i + 1:end]
            if not body:
                raise PatternError(f"empty character class in {pattern!r}")
            out.append("[" + body.replace("\\", "\\\\") + "]")
            quantifiable = True
            i = end + 1
        elif c == "\\":
            if i + 1 >= n:
                raise PatternError(f"trailing escape in {pattern!r}")
            out.append(re.escape(pattern[i + 1]))
            quantifiable = True
            i += 2
        else:
            out.append(re.escape(c))
            quantifiable = True
            i += 1

    return re.compile("".join(out) + r"\Z")


def split_negation(pattern: str) -> tuple[bool, str]:
    if pattern.startswith("!"):
        return True, pattern[1:]
    return False, pattern


def match_filters(name: str, patterns: Iterable[str]) -> bool:
    """
    Evaluate an ordered filter list against a branch name.

    A positive match includes the branch, a later negative match excludes it
    again (and vice versa). A list of only negative patterns matches nothing.
    """
    name = branch_name(name)
    matched = False
    for p in patterns:
        negated, body = split_negation(p)
        if compile_pattern(body).match(name) is not None:
            matched = not negated
    return matched


def check_patterns(patterns: Iterable[str]) -> list[str]:
    """Return an error message for every pattern that fails to compile."""
    errors: list[str] = []
    for p in patterns:
        _negated, body = split_negation(p)
        try:
            compile_pattern(body)
        except PatternError as e:
            errors.append(str(e))
    return errors
