"""
SQL Safety Utilities for MedSync

Table and column names in a received snapshot come from another device and end
up inside SQL text (identifiers cannot be bound as parameters). Every name must
pass through here before it reaches a statement.

Usage:
    from medsync.sql_safety import validate_identifier, quote_identifier

    table = validate_identifier(name, allowed=TRACKED_TABLES, context="table name")
    column_sql = quote_identifier("full_name")
"""

import re
from typing import Iterable, Optional


# Plain ASCII identifier: letter or underscore first, then letters/digits/underscores
SAFE_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# Record columns are short; anything longer is not one of ours
MAX_IDENTIFIER_LENGTH = 64


class SQLInjectionError(ValueError):
    """A name is not safe to place inside SQL text"""


def validate_identifier(
    name: str,
    allowed: Optional[Iterable[str]] = None,
    context: str = "identifier"
) -> str:
    """
    Check a table or column name before it is spliced into SQL.

    Args:
        name: Name received from the datastore or a peer
        allowed: Exact set of accepted names; when given, the pattern check is skipped
        context: What the name is, used in error messages ("table name", ...)

    Returns:
        `name`, unchanged

    Raises:
        SQLInjectionError: empty, too long, not allowed, or not a plain identifier
    """
    if not isinstance(name, str) or not name:
        raise SQLInjectionError(f"{context} must be a non-empty string")

    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise SQLInjectionError(
            f"{context} is longer than {MAX_IDENTIFIER_LENGTH} characters: {name[:20]!r}..."
        )

    if allowed is not None:
        accepted = sorted(allowed)
        if name not in accepted:
            raise SQLInjectionError(
                f"{context} {name!r} is not one of {', '.join(accepted)}"
            )
        return name

    if SAFE_NAME.fullmatch(name) is None:
        raise SQLInjectionError(
            f"{context} {name!r} may only contain letters, digits and underscores "
            "and cannot start with a digit"
        )

    return name


def quote_identifier(name: str) -> str:
    """Wrap a name in double quotes, doubling any embedded quote"""
    return '"' + name.replace('"', '""') + '"'


def validate_and_quote(
    name: str,
    allowed: Optional[Iterable[str]] = None,
    context: str = "identifier"
) -> str:
    """validate_identifier followed by quote_identifier"""
    return quote_identifier(validate_identifier(name, allowed=allowed, context=context))
