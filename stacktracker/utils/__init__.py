"""Shared utility helpers used across the services."""


def uniq(values) -> list:
    """Distinct values, keeping the order of first appearance."""
    seen = set()
    out = []
    for v in values or []:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out
