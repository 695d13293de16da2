"""Shared behavior of the dense, index-addressed DG containers."""
import numpy as np

from .errors import IndexRangeError


class Container:
    """Fixed-size collection indexed by a dense integer id in [0, count).

    Subclasses list their numpy storage in `_array_fields`; equality compares
    the count and every listed array.
    """

    _array_fields = ()

    def __init__(self, count: int):
        if count < 0:
            raise ValueError(f"Container size must be non-negative, got {count}")
        self._count = int(count)

    def __len__(self):
        return self._count

    def eachindex(self):
        return range(self._count)

    def check_index(self, index):
        if not 0 <= index < self._count:
            raise IndexRangeError(
                f"Index {index} out of range for {type(self).__name__} with {self._count} entries"
            )

    def __eq__(self, other):
        if type(self) is not type(other) or len(self) != len(other):
            return False
        return all(np.array_equal(getattr(self, name), getattr(other, name))
                   for name in self._array_fields)

    __hash__ = None

    def __repr__(self):
        return f"{type(self).__name__}({self._count})"
