from collections.abc import Iterator, Mapping, MutableMapping
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")
T = TypeVar("T")


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    Simple in-memory key/value database.

    Stands in for the document store behind the schedule API. Writes that
    must be all-or-nothing go through put_many.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def put_many(self, items: Mapping[K, V]) -> None:
        # a single dict.update, callers validate before calling
        self._store.update(items)

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def delete(self, key: K) -> None:
        self._store.pop(key, None)

    def all(self) -> list[V]:
        return list(self._store.values())

    def all_of(self, kind: type[T]) -> list[T]:
        return [v for v in self._store.values() if isinstance(v, kind)]

    def clear(self) -> None:
        self._store.clear()

    def __iter__(self) -> Iterator[V]:
        return iter(self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def replace_if_version(self, key: K, value: V, expected_version: int) -> bool:
        """
        Compare-and-set on the stored value's `version` attribute.
        Returns True if the value was written, False if the stored version
        differs or the key is missing.
        """
        current = self._store.get(key)
        if current is None:
            return False
        if getattr(current, "version", None) != expected_version:
            return False
        self._store[key] = value
        return True
