"""Multi-valued attribute containers produced by the mapping engine."""

from __future__ import annotations

from typing import Iterable, Optional


class MultiValue(list):
    """Ordered string values for one attribute.

    ``override`` marks values that replace, rather than extend, whatever a
    previous merge already collected under the same name.
    """

    def __init__(self, values: Iterable[str] = (), override: bool = False) -> None:
        super().__init__(values)
        self.override = override

    @classmethod
    def single(cls, value: str, override: bool = False) -> "MultiValue":
        return cls([value], override=override)

    def unique(self) -> "MultiValue":
        """Copy without duplicates, keeping first occurrences."""
        return MultiValue(dict.fromkeys(self), override=self.override)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MultiValue):
            return list.__eq__(self, other) and self.override == other.override
        return list.__eq__(self, other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"MultiValue({list.__repr__(self)}, override={self.override})"


class TargetAttrValueMap(dict):
    """Attribute name to :class:`MultiValue` map with override-aware merging."""

    def add(self, name: str, values: Optional[Iterable[str]], override: bool = False) -> None:
        if values is None:
            return
        incoming = values if isinstance(values, MultiValue) else MultiValue(values, override)
        if override or name not in self:
            self[name] = MultiValue(incoming, override=incoming.override or override)
        else:
            self[name].extend(incoming)

    def add_single(self, name: str, value: Optional[str], override: bool = False) -> None:
        if value is None:
            return
        self.add(name, MultiValue.single(value, override), override)

    def merge(self, other: "TargetAttrValueMap") -> "TargetAttrValueMap":
        """Fold ``other`` into this map in place and return ``self``."""
        for name, values in other.items():
            if name in self and not values.override:
                self[name].extend(values)
            else:
                self[name] = MultiValue(values, override=values.override)
        return self

    @classmethod
    def single_item(
        cls, name: str, values: Optional[Iterable[str]], override: bool = False
    ) -> "TargetAttrValueMap":
        result = cls()
        result.add(name, values, override)
        return result


__all__ = ["MultiValue", "TargetAttrValueMap"]
