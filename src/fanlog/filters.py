"""Path-based redaction of structured log context.

This module scrubs sensitive fields from the context of a log call before any
sink receives it. Fields are addressed by path patterns:

- ``user.address`` - the ``address`` key under ``user``
- ``*.password`` - ``password`` under any top-level key (depth 1 only)
- ``headers["x-api-key"]`` - bracket notation for keys containing dots
- ``items[*].token`` - ``[*]`` is the bracket form of the wildcard

A matched field is either removed or censored (replaced by a placeholder),
depending on the policy mode.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .config import RedactionMode, RedactionSettings
from .exceptions import PolicyResolutionError

WILDCARD = "*"


@dataclass(frozen=True)
class PathSegment:
    """One step of a redaction path."""

    key: str
    wildcard: bool = False


@dataclass(frozen=True)
class RedactionPath:
    """A parsed redaction path pattern."""

    raw: str
    segments: tuple[PathSegment, ...]

    def __str__(self) -> str:
        return self.raw


def _read_identifier(raw: str, pos: int) -> tuple[PathSegment, int]:
    end = pos
    while end < len(raw) and raw[end] not in ".[]":
        end += 1
    key = raw[pos:end]
    if not key:
        raise PolicyResolutionError(
            f"Empty segment at position {pos} in redaction path", path=raw
        )
    if key == WILDCARD:
        return PathSegment(key=key, wildcard=True), end
    if WILDCARD in key:
        raise PolicyResolutionError(
            "Wildcards must cover a whole segment", path=raw
        )
    return PathSegment(key=key), end


def _read_bracket(raw: str, pos: int) -> tuple[PathSegment, int]:
    if raw.startswith("[*]", pos):
        return PathSegment(key=WILDCARD, wildcard=True), pos + 3

    quote = raw[pos + 1 : pos + 2]
    if quote not in ("'", '"'):
        raise PolicyResolutionError(
            "Bracket segments must be quoted keys or [*]", path=raw
        )
    end = raw.find(quote, pos + 2)
    if end == -1:
        raise PolicyResolutionError("Unterminated quoted segment", path=raw)
    if raw[end + 1 : end + 2] != "]":
        raise PolicyResolutionError("Unterminated bracket segment", path=raw)
    return PathSegment(key=raw[pos + 2 : end]), end + 2


def parse_path(raw: str) -> RedactionPath:
    """Parse a redaction path pattern.

    Args:
    ----
        raw: Path pattern such as ``user.address`` or ``*.password``

    Returns:
    -------
        The parsed path

    Raises:
    ------
        PolicyResolutionError: If the pattern is malformed

    """
    if not isinstance(raw, str) or not raw.strip():
        raise PolicyResolutionError("Redaction path must be a non-empty string", path=str(raw))

    segments: list[PathSegment] = []
    pos = 0
    while True:
        if raw.startswith("[", pos):
            segment, pos = _read_bracket(raw, pos)
        else:
            segment, pos = _read_identifier(raw, pos)
        segments.append(segment)

        if pos == len(raw):
            break
        if raw[pos] == ".":
            pos += 1
            if pos == len(raw) or raw[pos] in ".[]":
                raise PolicyResolutionError(
                    f"Expected a key after '.' at position {pos - 1}", path=raw
                )
        elif raw[pos] != "[":
            raise PolicyResolutionError(
                f"Unexpected {raw[pos]!r} at position {pos}", path=raw
            )

    return RedactionPath(raw=raw, segments=tuple(segments))


def _apply(
    node: Any,
    segments: tuple[PathSegment, ...],
    mode: RedactionMode,
    placeholder: str,
) -> Any:
    """Return ``node`` with one path applied; containers on the path are copied."""
    head, rest = segments[0], segments[1:]

    if isinstance(node, Mapping):
        if head.wildcard:
            keys = list(node)
        elif head.key in node:
            keys = [head.key]
        else:
            return node

        updated = dict(node)
        for key in keys:
            if rest:
                updated[key] = _apply(node[key], rest, mode, placeholder)
            elif mode is RedactionMode.REMOVE:
                del updated[key]
            else:
                updated[key] = placeholder
        return updated

    if isinstance(node, list | tuple) and head.wildcard:
        if rest:
            return [_apply(item, rest, mode, placeholder) for item in node]
        if mode is RedactionMode.REMOVE:
            return []
        return [placeholder] * len(node)

    # Unresolvable path: nothing to redact
    return node


@dataclass(frozen=True)
class RedactionPolicy:
    """Ordered redaction paths plus what to do with matches.

    Built once at logger construction and never mutated afterwards.
    """

    paths: tuple[RedactionPath, ...] = ()
    mode: RedactionMode = RedactionMode.REMOVE
    placeholder: str = "[REDACTED]"

    @classmethod
    def from_paths(
        cls,
        paths: Iterable[str],
        mode: RedactionMode | str = RedactionMode.REMOVE,
        placeholder: str = "[REDACTED]",
    ) -> "RedactionPolicy":
        """Parse path strings into a policy, dropping exact duplicates."""
        parsed: list[RedactionPath] = []
        seen: set[str] = set()
        for raw in paths:
            path = parse_path(raw)
            if path.raw not in seen:
                seen.add(path.raw)
                parsed.append(path)
        return cls(paths=tuple(parsed), mode=RedactionMode(mode), placeholder=placeholder)

    @classmethod
    def from_settings(cls, settings: RedactionSettings) -> "RedactionPolicy":
        """Build a policy from the redaction section of the logger settings."""
        return cls.from_paths(settings.paths, mode=settings.mode, placeholder=settings.placeholder)

    def redact(self, context: Mapping[str, Any] | None) -> dict[str, Any] | None:
        """Apply every path to a context mapping.

        The input is left untouched; a redacted copy is returned. Paths that
        do not resolve are skipped.
        """
        if context is None:
            return None
        result: Any = dict(context)
        for path in self.paths:
            result = _apply(result, path.segments, self.mode, self.placeholder)
        return result


def redact(context: Mapping[str, Any] | None, policy: RedactionPolicy) -> dict[str, Any] | None:
    """Redact ``context`` according to ``policy``."""
    return policy.redact(context)


class RedactionFilter:
    """Structlog processor applying a RedactionPolicy to the record context.

    The context of a call lives under the ``data`` key of the event dict;
    everything else (message, level, timestamp) is left alone.
    """

    def __init__(self, policy: RedactionPolicy, context_key: str = "data") -> None:
        """Initialize the redaction filter.

        Args:
        ----
            policy: Redaction policy to apply
            context_key: Event dict key holding the call context

        """
        self.policy = policy
        self.context_key = context_key

    def __call__(
        self, logger: Any, name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        """Process log event dict for structlog integration."""
        context = event_dict.get(self.context_key)
        if isinstance(context, Mapping) and self.policy.paths:
            event_dict[self.context_key] = self.policy.redact(context)
        return event_dict


def create_redaction_filter(
    paths: Iterable[str],
    mode: RedactionMode | str = RedactionMode.REMOVE,
    placeholder: str = "[REDACTED]",
) -> RedactionFilter:
    """Create a redaction filter from raw path strings.

    Raises
    ------
        PolicyResolutionError: If any path is malformed

    """
    return RedactionFilter(RedactionPolicy.from_paths(paths, mode=mode, placeholder=placeholder))
