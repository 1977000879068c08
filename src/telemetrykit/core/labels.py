"""Immutable label sets used as series keys and structured log fields."""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from telemetrykit.core.errors import LabelSetTooLarge

LabelValue = str | int | float | bool | None

MAX_LABELS = 64

_PRIMITIVES = (str, int, float, bool, type(None))


def _coerce(value: Any) -> LabelValue:
    if isinstance(value, _PRIMITIVES):
        return value
    return str(value)


@dataclass(frozen=True)
class LabelSet(Mapping[str, LabelValue]):
    """An order-independent, hashable mapping of label name to value.

    Items are stored sorted by key, so two label sets built from the same
    content in any order compare and hash equal. Every derivation returns a
    new instance.

    Attributes:
        pairs: Sorted ``(key, value)`` pairs.
    """

    pairs: tuple[tuple[str, LabelValue], ...] = ()

    @classmethod
    def of(
        cls, mapping: Mapping[str, Any] | None = None, **labels: Any
    ) -> "LabelSet":
        """Build a label set from a mapping and/or keyword arguments.

        Args:
            mapping: Optional mapping of label names to values.
            **labels: Additional labels; these win over ``mapping``.

        Returns:
            A new LabelSet.

        Raises:
            LabelSetTooLarge: If more than ``MAX_LABELS`` entries are given.
        """
        if isinstance(mapping, LabelSet) and not labels:
            return mapping
        merged: dict[str, Any] = dict(mapping or {})
        merged.update(labels)
        if len(merged) > MAX_LABELS:
            raise LabelSetTooLarge(
                f"label set has {len(merged)} entries, maximum is {MAX_LABELS}"
            )
        return cls(tuple(sorted((str(k), _coerce(v)) for k, v in merged.items())))

    @classmethod
    def empty(cls) -> "LabelSet":
        return _EMPTY

    def __getitem__(self, key: str) -> LabelValue:
        for k, v in self.pairs:
            if k == key:
                return v
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return (k for k, _ in self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self.pairs)
        return f"LabelSet({inner})"

    def keys_tuple(self) -> tuple[str, ...]:
        return tuple(k for k, _ in self.pairs)

    def to_dict(self) -> dict[str, LabelValue]:
        return dict(self.pairs)

    def with_labels(self, **labels: Any) -> "LabelSet":
        """Return a copy with the given labels added or replaced."""
        return LabelSet.of(self.to_dict(), **labels)

    def merge(
        self, other: Mapping[str, Any], prefer: Literal["self", "other"] = "other"
    ) -> "LabelSet":
        """Merge with another mapping.

        Args:
            other: Labels to merge in.
            prefer: Which side wins when both define a key.

        Returns:
            A new LabelSet.
        """
        if prefer == "other":
            return LabelSet.of({**self.to_dict(), **dict(other)})
        return LabelSet.of({**dict(other), **self.to_dict()})

    def without(self, *keys: str) -> "LabelSet":
        drop = set(keys)
        return LabelSet(tuple(item for item in self.pairs if item[0] not in drop))


_EMPTY = LabelSet()
