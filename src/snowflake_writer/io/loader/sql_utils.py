def quote_identifier(name: str) -> str:
    """
    Quote a Snowflake identifier with double quotes and escape internal quotes.

    Args:
        name: Identifier to quote (table, column, stage or schema name)

    Returns:
        Properly quoted identifier

    Raises:
        ValueError: If name is empty or longer than Snowflake allows
    """
    if not name or not isinstance(name, str):
        raise ValueError("Identifier name must be non-empty string")

    if len(name) > 255:  # Snowflake limit
        raise ValueError("Identifier too long (max 255 characters)")

    escaped = name.replace('"', '""')
    return f'"{escaped}"'


def quote_literal(value: str) -> str:
    """
    Quote a string literal, backslash-escaping backslashes and single quotes.

    Examples:
        >>> quote_literal("it's")
        "'it\\\\'s'"
    """
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"

