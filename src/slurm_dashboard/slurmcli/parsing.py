"""Tokenizers for Slurm command-line output.

Two shapes of text come out of the Slurm tools: ``Key=Value`` dumps
(``scontrol --oneliner``) and whitespace-separated tables with a header line
(``sinfo -o``, ``squeue -o``). Both are turned into plain ``dict[str, str]``
rows here; typing and defaults are applied by the models in ``types``.
"""

import re
from collections.abc import Iterator, Sequence

import structlog

logger = structlog.get_logger(__name__)

NULL_TOKEN = "(null)"

_LEADING_DIGITS = re.compile(r"\d+")


def parse_key_values(line: str) -> dict[str, str]:
    """Split a ``Key=Value`` dump line into a mapping.

    Tokens without ``=`` (continuations of values containing spaces, such as
    ``OS=Linux 5.14.0``) are skipped. The first occurrence of a key wins.

    Args:
        line: One line of ``scontrol show ... --oneliner`` output.

    Returns:
        Dictionary mapping keys to raw string values.
    """
    fields: dict[str, str] = {}
    for token in line.split():
        key, sep, value = token.partition("=")
        if not sep or not key:
            continue
        fields.setdefault(key, value)
    return fields


def iter_table_rows(
    text: str,
    columns: Sequence[str],
    min_columns: int,
    *,
    rest_column: bool = False,
) -> Iterator[dict[str, str]]:
    """Yield the data rows of a whitespace-separated table.

    The first line is always treated as a header and skipped. Rows are split
    on every run of whitespace and extra fields past ``columns`` are ignored.
    With ``rest_column`` the row is split at most ``len(columns) - 1`` times
    instead, so the last column keeps any remaining text (free-form fields
    such as a pending reason).

    Args:
        text: Raw command output including the header line.
        columns: Column names, in output order.
        min_columns: Rows with fewer fields are dropped.
        rest_column: Fold trailing text into the last column.

    Yields:
        Mapping from column name to raw value for each accepted row. Columns
        missing from a short row are absent from the mapping.
    """
    maxsplit = len(columns) - 1 if rest_column else -1
    for line in text.splitlines()[1:]:
        parts = line.strip().split(maxsplit=maxsplit)
        if len(parts) < min_columns:
            if parts:
                logger.debug(
                    "Dropping short table row",
                    fields=len(parts),
                    min_fields=min_columns,
                )
            continue
        yield dict(zip(columns, parts))


def leading_int(value: object) -> int:
    """Return the integer formed by the leading digits of ``value``, else 0.

    ``"4096M"`` gives 4096, ``"N/A"`` or ``None`` gives 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str) and (match := _LEADING_DIGITS.match(value)):
        return int(match.group())
    return 0


def split_list(value: str | None) -> tuple[str, ...]:
    """Split a comma-separated Slurm list, treating ``(null)`` as empty."""
    if not value or value == NULL_TOKEN:
        return ()
    return tuple(item for item in value.split(",") if item)
