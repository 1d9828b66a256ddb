"""
``${name}`` / ``${name:default}`` placeholder substitution.

Rules:

* placeholders nest: ``${a.${env}}`` resolves ``${env}`` first, then the
  resulting name.
* a name is first looked up verbatim; if that fails and it contains
  ``:``, the text before the first ``:`` is looked up and the rest is the
  default value.
* resolved values and defaults are themselves parsed for placeholders.
* a placeholder that cannot be resolved and has no default raises
  :class:`PlaceholderError`; so does a circular reference.

Example::

    resolver = AliasingResolver(environment)
    replace_placeholders("CREATE SCHEMA ${app.schema:public};", resolver)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from prealembic.environment import Environment

PLACEHOLDER_PREFIX = "${"
PLACEHOLDER_SUFFIX = "}"
VALUE_SEPARATOR = ":"
_SIMPLE_PREFIX = "{"

#: The migration tool's bookkeeping schema defaults to its default schema,
#: so scripts may always refer to the former.
DEFAULT_ALIASES: dict[str, str] = {
    "alembic.version-table-schema": "alembic.default-schema",
}

Resolver = Callable[[str], "str | None"]


class PlaceholderError(ValueError):
    """Unresolvable or circular placeholder."""


class AliasingResolver:
    """Resolve names against an :class:`Environment`, with fallback aliases.

    If a name is absent from the environment and has an entry in
    *aliases*, the aliased name is looked up instead.
    """

    def __init__(self, environment: Environment | None, aliases: Mapping[str, str] | None = None):
        self.environment = environment
        self.aliases = dict(DEFAULT_ALIASES if aliases is None else aliases)

    def __call__(self, name: str) -> str | None:
        if self.environment is None:
            return None
        value = self.environment.get_property(name)
        if value is None and name in self.aliases:
            value = self.environment.get_property(self.aliases[name])
        return value


def _find_placeholder_end(buf: str, start: int) -> int:
    index = start + len(PLACEHOLDER_PREFIX)
    nested = 0
    while index < len(buf):
        if buf.startswith(PLACEHOLDER_SUFFIX, index):
            if nested > 0:
                nested -= 1
                index += len(PLACEHOLDER_SUFFIX)
            else:
                return index
        elif buf.startswith(_SIMPLE_PREFIX, index):
            nested += 1
            index += len(_SIMPLE_PREFIX)
        else:
            index += 1
    return -1


def _parse(value: str, resolve: Resolver, visited: set[str]) -> str:
    start = value.find(PLACEHOLDER_PREFIX)
    if start == -1:
        return value

    result = value
    while start != -1:
        end = _find_placeholder_end(result, start)
        if end == -1:
            break

        original = result[start + len(PLACEHOLDER_PREFIX):end]
        if original in visited:
            raise PlaceholderError(f"Circular placeholder reference '{original}' in property definitions")
        visited.add(original)

        placeholder = _parse(original, resolve, visited)
        resolved = resolve(placeholder)
        if resolved is None:
            sep = placeholder.find(VALUE_SEPARATOR)
            if sep != -1:
                resolved = resolve(placeholder[:sep])
                if resolved is None:
                    resolved = placeholder[sep + len(VALUE_SEPARATOR):]

        if resolved is None:
            raise PlaceholderError(f"Could not resolve placeholder '{placeholder}' in value \"{value}\"")

        resolved = _parse(resolved, resolve, visited)
        result = result[:start] + resolved + result[end + len(PLACEHOLDER_SUFFIX):]
        start = result.find(PLACEHOLDER_PREFIX, start + len(resolved))

        visited.discard(original)

    return result


def replace_placeholders(text: str, resolve: Resolver) -> str:
    """Replace every placeholder in *text* using *resolve*.

    Raises :class:`PlaceholderError` for unresolvable or circular
    placeholders.
    """
    return _parse(text, resolve, set())
