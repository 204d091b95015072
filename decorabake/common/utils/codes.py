from sqlalchemy import func


def next_code(session, column, prefix: str, width: int = 4) -> str:
    """Next sequential human-readable code, e.g. ORD-0042 after ORD-0041.

    Codes under the prefix whose suffix is not purely numeric (imported or
    hand-entered ones such as ORD-LEGACY-IMPORT) are skipped.
    """
    rows = (
        session.query(column)
        .filter(column.like(f"{prefix}%"))
        .order_by(func.length(column).desc(), column.desc())
    )
    number = 0
    for (code,) in rows:
        suffix = code[len(prefix):]
        if suffix.isdigit():
            number = max(number, int(suffix))
    return f"{prefix}{number + 1:0{width}d}"
