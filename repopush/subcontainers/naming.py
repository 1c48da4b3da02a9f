"""Repository naming for subcontainers."""

import re
from typing import Dict, Iterable, Optional


NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")
FALLBACK_NAME = "subfolder"


def sanitize_repo_name(subdirectory: str) -> str:
    """
    Derive a repository name from a subdirectory path.

    Lowercases, turns every run of non-alphanumeric characters (path
    separators, underscores and spaces included) into a single hyphen and
    strips leading and trailing hyphens.

        >>> sanitize_repo_name("My Cool App")
        'my-cool-app'
        >>> sanitize_repo_name("my--cool__app")
        'my-cool-app'
    """
    name = NON_ALPHANUMERIC.sub("-", subdirectory.lower()).strip("-")
    return name or FALLBACK_NAME


def is_temporary(name: str, prefix: str) -> bool:
    return bool(prefix) and name.startswith(prefix)


def _is_candidate(name: str, base: str) -> bool:
    if name == base:
        return True
    suffix = name[len(base) + 1:] if name.startswith(f"{base}-") else ""
    return suffix.isdigit() and int(suffix) >= 2


def assign_repository_names(subdirectories: Iterable[str],
                            previous: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Assign a distinct repository name to every subdirectory.

    Names come from sanitize_repo_name. When several subdirectories sanitize
    to the same name, the first in sorted order gets the plain name and the
    others get ``-2``, ``-3``, ... A subdirectory keeps the name recorded for
    it in the previous table while that name is still one of its candidates,
    so names never move between subdirectories from one run to the next.

    Args:
        subdirectories: Subdirectory names to assign
        previous: Previous subdirectory -> repository name table

    Returns:
        Mapping of subdirectory -> repository name
    """
    previous = previous or {}
    ordered = sorted(set(subdirectories))
    bases = {subdirectory: sanitize_repo_name(subdirectory) for subdirectory in ordered}
    assigned: Dict[str, str] = {}
    taken = set()

    for subdirectory in ordered:
        recorded = previous.get(subdirectory)
        if recorded and recorded not in taken and _is_candidate(recorded, bases[subdirectory]):
            assigned[subdirectory] = recorded
            taken.add(recorded)

    for subdirectory in ordered:
        if subdirectory in assigned:
            continue
        base = bases[subdirectory]
        if base not in taken:
            assigned[subdirectory] = base
            taken.add(base)

    for subdirectory in ordered:
        if subdirectory in assigned:
            continue
        base = bases[subdirectory]
        counter = 2
        while f"{base}-{counter}" in taken:
            counter += 1
        assigned[subdirectory] = f"{base}-{counter}"
        taken.add(assigned[subdirectory])

    return assigned
