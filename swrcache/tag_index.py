"""
Secondary index from tag to cache keys.

Not thread-safe on its own: the store mutates it inside its own lock.
"""
from collections import defaultdict
from typing import Dict, Iterable, Set


class TagIndex:
    """Maps each tag to the set of keys whose entries carry it."""

    def __init__(self):
        self._keys_by_tag: Dict[str, Set[str]] = defaultdict(set)

    def add(self, key: str, tags: Iterable[str]) -> None:
        for tag in tags:
            self._keys_by_tag[tag].add(key)

    def discard(self, key: str, tags: Iterable[str]) -> None:
        for tag in tags:
            keys = self._keys_by_tag.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            # Drop empty buckets so tags() only reports live tags
            if not keys:
                del self._keys_by_tag[tag]

    def keys_for(self, tags: Iterable[str]) -> Set[str]:
        """Union of keys registered under any of the given tags."""
        result: Set[str] = set()
        for tag in tags:
            keys = self._keys_by_tag.get(tag)
            if keys:
                result |= keys
        return result

    def tags(self) -> Set[str]:
        return set(self._keys_by_tag)

    def clear(self) -> None:
        self._keys_by_tag.clear()

    def __len__(self) -> int:
        return len(self._keys_by_tag)
