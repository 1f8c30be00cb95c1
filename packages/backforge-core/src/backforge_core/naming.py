"""Canonical-name selection for identifiers that differ only by case.

Preference order, applied as a total ordering so results never depend on
iteration timing:

1. Mixed case (leading capital with at least one lowercase letter) beats
   all-upper and all-lower spellings.
2. The spelling that occurs more often wins.
3. A leading capital wins.
4. A spelling that is not entirely uppercase wins.
5. More capital letters win.
6. The spelling seen first wins.

Dotted names (``IUser.ISummary``) are grouped after canonicalizing their first
segment across every name, so ``Iuser.ISummary`` and ``IUser.ISummary`` fall
in the same group.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from backforge_schemas.naming import DuplicateNameIssue


def is_mixed_case(name: str) -> bool:
    """Return True for names with a leading capital and some lowercase."""
    return name[:1].isupper() and any(char.islower() for char in name)


def preference_key(name: str, count: int = 1) -> tuple[bool, int, bool, bool, int]:
    """Build the sort key ranking a spelling; larger keys are preferred.

    Args:
        name: Spelling to rank.
        count: Number of occurrences of the exact spelling.

    Returns:
        tuple: Comparable preference key.
    """
    return (
        is_mixed_case(name),
        count,
        name[:1].isupper(),
        name != name.upper(),
        sum(1 for char in name if char.isupper()),
    )


def should_prefer(
    candidate: str, current: str, *, candidate_count: int = 1, current_count: int = 1
) -> bool:
    """Return True when ``candidate`` should replace ``current`` as canonical.

    An empty ``current`` always loses. Equal keys keep ``current``.

    Args:
        candidate: Challenging spelling.
        current: Spelling currently considered canonical.
        candidate_count: Occurrences of the challenger.
        current_count: Occurrences of the current spelling.

    Returns:
        bool: Whether the challenger wins.
    """
    if current == "":
        return True
    return preference_key(candidate, candidate_count) > preference_key(
        current, current_count
    )


def choose_canonical(variants: Iterable[str]) -> str:
    """Choose the canonical spelling among case-only variants.

    Args:
        variants: Spellings, repeated as often as they occur.

    Returns:
        str: Canonical spelling.

    Raises:
        ValueError: If no variants are given.
    """
    counts = Counter(variants)
    if not counts:
        raise ValueError("choose_canonical requires at least one variant")
    canonical = ""
    for variant, count in counts.items():
        if should_prefer(
            variant,
            canonical,
            candidate_count=count,
            current_count=counts.get(canonical, 0),
        ):
            canonical = variant
    return canonical


def find_duplicate_names(
    names: Iterable[str], *, path: str = "$input"
) -> list[DuplicateNameIssue]:
    """Report every name colliding case-insensitively with a canonical form.

    Args:
        names: Names to check, in declaration order.
        path: Path prefix for issue locations.

    Returns:
        list[DuplicateNameIssue]: One issue per non-canonical variant.
    """
    ordered = list(names)

    namespace_variants: dict[str, list[str]] = {}
    for name in ordered:
        namespace = name.split(".", 1)[0]
        namespace_variants.setdefault(namespace.lower(), []).append(namespace)
    namespace_canonicals = {
        lowered: choose_canonical(variants)
        for lowered, variants in namespace_variants.items()
    }

    def normalize(name: str) -> str:
        namespace, dot, rest = name.partition(".")
        return f"{namespace_canonicals[namespace.lower()]}{dot}{rest}"

    groups: dict[str, list[str]] = {}
    for name in ordered:
        groups.setdefault(normalize(name).lower(), []).append(name)

    issues: list[DuplicateNameIssue] = []
    for members in groups.values():
        distinct = list(dict.fromkeys(members))
        if len(distinct) < 2:
            continue
        canonical = normalize(choose_canonical(members))
        for variant in distinct:
            if variant == canonical:
                continue
            issues.append(
                DuplicateNameIssue(
                    path=f"{path}.{variant}",
                    value=variant,
                    canonical=canonical,
                    expected=f'"{canonical}" (canonical form)',
                    message=(
                        "Case-insensitive duplicate name detected. "
                        f'Use "{canonical}" instead of "{variant}"'
                    ),
                )
            )
    return issues
