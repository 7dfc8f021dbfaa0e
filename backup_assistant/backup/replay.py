"""Splitting of SQL dumps into executable statements."""

from typing import Iterator, List


def iter_sql_statements(text: str, backslash_escapes: bool = False) -> Iterator[str]:
    """
    Yield the statements of ``text`` without their terminating semicolons.

    Semicolons inside quoted strings and identifiers are not terminators.
    ``--`` line comments and ``/* */`` block comments are dropped. Set
    ``backslash_escapes`` for dialects (MySQL) where a backslash escapes the
    next character inside a string literal.
    """
    buffer: List[str] = []
    i = 0
    length = len(text)
    quote = None

    while i < length:
        char = text[i]

        if quote:
            buffer.append(char)
            if backslash_escapes and char == "\\" and quote != "`" and i + 1 < length:
                buffer.append(text[i + 1])
                i += 2
                continue
            if char == quote:
                # A doubled quote is an escaped quote, not the end.
                if i + 1 < length and text[i + 1] == quote:
                    buffer.append(text[i + 1])
                    i += 2
                    continue
                quote = None
            i += 1
            continue

        if char in ("'", '"', "`"):
            quote = char
            buffer.append(char)
        elif char == "-" and text.startswith("--", i):
            end = text.find("\n", i)
            i = length if end == -1 else end
            continue
        elif char == "/" and text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = length if end == -1 else end + 2
            continue
        elif char == ";":
            statement = "".join(buffer).strip()
            if statement:
                yield statement
            buffer = []
        else:
            buffer.append(char)
        i += 1

    statement = "".join(buffer).strip()
    if statement:
        yield statement


def split_sql_statements(text: str, backslash_escapes: bool = False) -> List[str]:
    """List form of iter_sql_statements."""
    return list(iter_sql_statements(text, backslash_escapes))
