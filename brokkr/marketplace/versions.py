"""Version comparison for installed vs. catalog plugin versions."""


def _segments(version: str) -> list[int]:
    version = (version or "").strip()
    if version[:1] in ("v", "V"):
        version = version[1:]

    parts = []
    for segment in version.split("."):
        try:
            parts.append(int(segment))
        except ValueError:
            parts.append(0)
    return parts


def compare_versions(a: str, b: str) -> int:
    """Compare two dotted version strings numerically.

    A leading "v" is ignored and any segment that is not an integer (or is
    missing) counts as 0, so "v2.0" equals "2.0.0" and "1.10" sorts after
    "1.9".

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b
    """
    left = _segments(a)
    right = _segments(b)

    for i in range(max(len(left), len(right))):
        x = left[i] if i < len(left) else 0
        y = right[i] if i < len(right) else 0
        if x != y:
            return 1 if x > y else -1
    return 0


def is_newer(candidate: str, current: str) -> bool:
    """True if ``candidate`` is strictly newer than ``current``."""
    return compare_versions(candidate, current) > 0
