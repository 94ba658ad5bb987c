"""Parser configuration."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from ulog_codec.errors import InvalidConfigurationError


@dataclass(frozen=True)
class ParserConfig:
    """Options controlling what the engine yields.

    Attributes:
        include_header: Yield the FileHeader message.
        include_timestamp: Keep the top-level ``timestamp`` field in decoded
            data records (it is always available as ``LoggedData.timestamp``).
        include_padding: Keep ``_padding*`` bytes as raw fields.
        subscription_allow_list: Names of the subscriptions to decode. Data for
            any other subscription is yielded as ``Ignored``. None decodes all.
        max_nesting_depth: Limit on nested format recursion.
    """

    include_header: bool = False
    include_timestamp: bool = True
    include_padding: bool = False
    subscription_allow_list: frozenset[str] | None = None
    max_nesting_depth: int = 32

    def __post_init__(self) -> None:
        allow_list = self.subscription_allow_list
        if allow_list is not None:
            if isinstance(allow_list, str):
                raise InvalidConfigurationError(
                    "subscription_allow_list must be a collection of names, not a string"
                )
            object.__setattr__(self, "subscription_allow_list", frozenset(allow_list))
        if self.max_nesting_depth < 1:
            raise InvalidConfigurationError(
                f"max_nesting_depth must be at least 1, got {self.max_nesting_depth}"
            )

    @classmethod
    def round_trip(cls, **overrides: Any) -> ParserConfig:
        """Configuration that keeps every byte needed to re-encode the log."""
        options: dict[str, Any] = {
            "include_header": True,
            "include_timestamp": True,
            "include_padding": True,
        }
        options.update(overrides)
        return cls(**options)

    def with_allow_list(self, names: Iterable[str]) -> ParserConfig:
        """Return a copy restricted to the given subscription names."""
        return replace(self, subscription_allow_list=frozenset(names))
