"""
Unique profile names within a single generation run.
"""

from typing import Dict, Iterable, Optional, Set

__all__ = ['ProfileNameConflictResolver']


class ProfileNameConflictResolver:
    """
    Hands out profile names that have not been claimed yet in this run.

    The resolver is seeded with the names already present in the config file.
    A name that is already taken gets a ``_N`` suffix.
    """

    def __init__(self, existing_names: Optional[Iterable[str]] = None):
        self._claimed: Set[str] = set(existing_names or [])
        self._conflicts: Dict[str, int] = {}

    def claim(self, name: str) -> None:
        """Mark ``name`` as used without resolving it."""
        self._claimed.add(name)

    def is_claimed(self, name: str) -> bool:
        return name in self._claimed

    def resolve(self, desired_name: str) -> str:
        """
        Claim ``desired_name`` or the first free ``desired_name_N``.

        Args:
            desired_name: The name produced by the naming pattern

        Returns:
            str: A name unique within this run
        """
        if desired_name not in self._claimed:
            self._claimed.add(desired_name)
            return desired_name

        counter = self._conflicts.get(desired_name, 0) + 1
        unique_name = f"{desired_name}_{counter}"
        while unique_name in self._claimed:
            counter += 1
            unique_name = f"{desired_name}_{counter}"

        self._conflicts[desired_name] = counter
        self._claimed.add(unique_name)
        return unique_name

    def get_conflict_count(self, name: str) -> int:
        return self._conflicts.get(name, 0)

    def get_all_conflicts(self) -> Dict[str, int]:
        return dict(self._conflicts)
