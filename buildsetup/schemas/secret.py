"""Secret values and the references that stand in for them."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

MASK = "********"


@dataclass(frozen=True)
class Secret:
    """Sensitive configuration value that never renders itself."""

    _value: str = field(repr=False)

    def reveal(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"Secret({MASK!r})"

    def __str__(self) -> str:
        return MASK


@dataclass(frozen=True)
class SecretRef:
    """Handle to a configuration secret, passed by key instead of by value."""

    key: str

    def to_dict(self) -> Dict[str, Any]:
        return {"secret": self.key}


__all__ = ["MASK", "Secret", "SecretRef"]
