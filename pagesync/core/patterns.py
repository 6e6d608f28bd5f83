"""
pagesync Glob Patterns

Glob matching for project-relative, ``/``-separated paths.

Supported syntax:
- ``*``      any run of characters inside one path segment
- ``**``     zero or more whole path segments
- ``?``      one character inside a segment
- ``[abc]``  character class, ``[!abc]`` / ``[^abc]`` negated
- ``{a,b}``  alternatives (may nest)

Everything else, including ``.``, matches literally.
"""

from __future__ import annotations

import posixpath
import re
from functools import lru_cache
from typing import Iterable, List, Pattern


def normalize_path(path: str) -> str:
    """
    Normalize a project-relative path for comparison.

    Converts backslashes, strips any leading ``./`` and collapses redundant
    separators, so ``./scripts//a.js`` and ``scripts/a.js`` compare equal.
    """
    path = str(path).replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    if not path:
        return path
    normalized = posixpath.normpath(path)
    return "" if normalized == "." else normalized


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternatives into separate patterns."""
    depth = 0
    start = -1
    for i, ch in enumerate(pattern):
        if ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                body = pattern[start + 1:i]
                options = _split_top_level(body)
                if len(options) < 2:
                    # "{x}" is literal
                    continue
                head, tail = pattern[:start], pattern[i + 1:]
                expanded: List[str] = []
                for option in options:
                    expanded.extend(expand_braces(head + option + tail))
                return expanded
    return [pattern]


def _split_top_level(body: str) -> List[str]:
    parts = []
    depth = 0
    current = []
    for ch in body:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return parts


def _translate_segment(segment: str) -> str:
    if segment == "*":
        return "[^/]+"

    out = []
    i, n = 0, len(segment)
    while i < n:
        ch = segment[i]
        if ch == "*":
            # Collapse runs of stars inside a segment
            while i + 1 < n and segment[i + 1] == "*":
                i += 1
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            j = i + 1
            if j < n and segment[j] in "!^":
                j += 1
            if j < n and segment[j] == "]":
                j += 1
            while j < n and segment[j] != "]":
                j += 1
            if j >= n:
                out.append(re.escape(ch))
            else:
                body = segment[i + 1:j]
                negate = body[:1] in ("!", "^")
                if negate:
                    body = body[1:]
                body = body.replace("\\", "\\\\").replace("[", "\\[")
                if body.startswith("]"):
                    body = "\\" + body
                if negate:
                    out.append(f"[^/{body}]")
                else:
                    out.append(f"(?!/)[{body}]")
                i = j
        else:
            out.append(re.escape(ch))
        i += 1
    return "".join(out)


def translate(pattern: str) -> str:
    """Translate a single brace-free glob into a regular expression."""
    segments = normalize_path(pattern).split("/")
    parts = []
    last = len(segments) - 1
    for index, segment in enumerate(segments):
        if segment == "**":
            if index == last:
                parts.append(".*")
            else:
                parts.append("(?:[^/]+/)*")
            continue
        parts.append(_translate_segment(segment))
        if index != last:
            parts.append("/")
    return "".join(parts)


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> Pattern[str]:
    """Compile a glob (braces included) into one anchored regex."""
    alternatives = [translate(p) for p in expand_braces(pattern)]
    return re.compile(r"\A(?:" + "|".join(alternatives) + r")\Z")


def match_path(path: str, pattern: str) -> bool:
    """Check whether a project-relative path matches a glob."""
    return compile_pattern(pattern).match(normalize_path(path)) is not None


class PatternSet:
    """An ordered, de-duplicated set of glob patterns."""

    def __init__(self, patterns: Iterable[str] = ()):
        self._patterns: List[str] = []
        for pattern in patterns:
            self.add(pattern)

    def add(self, pattern: str) -> None:
        pattern = normalize_path(pattern)
        if pattern and pattern not in self._patterns:
            self._patterns.append(pattern)

    def matches(self, path: str) -> bool:
        path = normalize_path(path)
        return any(compile_pattern(p).match(path) for p in self._patterns)

    @property
    def patterns(self) -> List[str]:
        return list(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def __bool__(self) -> bool:
        return bool(self._patterns)

    def __iter__(self):
        return iter(self._patterns)
