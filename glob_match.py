"""
Shell-style path matching with recursive ``**`` support.

``*`` matches any run of characters inside one path segment and ``**`` matches
across segments. ``**/`` may match zero segments, so ``src/**/*.py`` also
matches ``src/main.py``. A pattern that is only ``*`` or ``**`` matches every
path. Backslashes are treated as ``/`` in both the pattern and the path.
"""

from typing import Iterable, List, Set, Tuple

SEP = "/"


def _normalize(text: str) -> str:
    return text.replace("\\", SEP)


def matches_glob(pattern: str, candidate: str) -> bool:
    """
    Return True if ``candidate`` matches ``pattern``.

    Never raises: this runs inside the file scan filter, so running out of
    memory while normalizing the inputs counts as no match.
    """
    try:
        pattern = _normalize(pattern)
        candidate = _normalize(candidate)
    except MemoryError:
        return False

    if pattern in ("*", "**"):
        return True

    p_len = len(pattern)
    t_len = len(candidate)

    # Depth-first search over (pattern index, candidate index) states. Each
    # state is expanded at most once, which keeps runs of ** from blowing up.
    stack: List[Tuple[int, int]] = [(0, 0)]
    seen: Set[Tuple[int, int]] = set()

    while stack:
        state = stack.pop()
        if state in seen:
            continue
        seen.add(state)
        p, t = state

        if p == p_len:
            if t == t_len:
                return True
            continue

        if pattern.startswith("**", p):
            rest = p + 2
            if rest == p_len:
                return True
            if pattern[rest] == SEP:
                rest += 1
                stack.append((rest, t))
                slash = candidate.find(SEP, t)
                while slash != -1:
                    stack.append((rest, slash + 1))
                    slash = candidate.find(SEP, slash + 1)
            else:
                stack.extend((rest, k) for k in range(t, t_len + 1))
            continue

        if pattern[p] == "*":
            slash = candidate.find(SEP, t)
            stop = t_len if slash == -1 else slash
            stack.extend((p + 1, k) for k in range(t, stop + 1))
            continue

        if t < t_len and pattern[p] == candidate[t]:
            stack.append((p + 1, t + 1))

    return False


def expand_pattern(pattern: str) -> str:
    """Turn a bare extension such as ``.txt`` into ``**/*.txt``."""
    pattern = _normalize(pattern.strip())
    if pattern.startswith(".") and SEP not in pattern and "*" not in pattern:
        return f"**/*{pattern}"
    return pattern


def matches_any(patterns: Iterable[str], candidate: str) -> bool:
    """Check patterns in order, stopping at the first one that matches."""
    return any(matches_glob(pattern, candidate) for pattern in patterns)
