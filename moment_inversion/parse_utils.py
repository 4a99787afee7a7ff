"""Parsing utilities for whitespace-separated pick files."""


class ParseError(Exception):
    """Error for parsing files in moment inversion."""

    pass


def split_fields(line: str, count: int, label: str | None = None) -> list[str]:
    """Split a line into exactly `count` whitespace separated fields.

    Parameters
    ----------
    line : str
        The line to split.
    count : int
        The number of fields expected on the line.
    label : str | None
        A human friendly label for the line (for debugging purposes), or
        None for no label. Defaults to None.

    Raises
    ------
    ParseError
        If the line does not contain exactly `count` fields.

    Returns
    -------
    list[str]
        The fields of the line.
    """
    fields = line.split()
    if len(fields) != count:
        if label:
            raise ParseError(
                f'Expecting {count} fields ({label}), got {len(fields)}: "{line.strip()}"'
            )
        else:
            raise ParseError(
                f'Expecting {count} fields, got {len(fields)}: "{line.strip()}"'
            )
    return fields


def read_float(value: str, label: str | None = None) -> float:
    """Read a float from a field.

    Parameters
    ----------
    value : str
        The field to read.
    label : str | None
        A human friendly label for the floating point (for debugging
        purposes), or None for no label. Defaults to None.

    Raises
    ------
    ParseError
        If there is an error reading the float value from the field.

    Returns
    -------
    float
        The float read from the field.
    """
    try:
        return float(value)
    except ValueError:
        if label:
            raise ParseError(f'Expecting float ({label}), got: "{value}"')
        else:
            raise ParseError(f'Expecting float, got: "{value}"')


def read_int(value: str, label: str | None = None) -> int:
    """Read a int from a field.

    Parameters
    ----------
    value : str
        The field to read.
    label : str
        Human readable string label for identifying the value in an error
        message.

    Raises
    ------
    ParseError
        If there is an error reading the int value from the field.

    Returns
    -------
    int
        The int read from the field.
    """
    try:
        return int(value)
    except ValueError:
        if label:
            raise ParseError(f'Expecting int ({label}), got: "{value}"')
        else:
            raise ParseError(f'Expecting int, got: "{value}"')
