"""Plain-text table formatting for CLI output."""


def format_table(headers, rows):
    """Return the lines of a left-aligned text table.

    Column widths fit the longest cell; a dashed rule separates the header.
    """
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    def _line(cells):
        return "  ".join(str(c).ljust(w) for c, w in zip(cells, widths)).rstrip()

    lines = [_line(headers), "  ".join("-" * w for w in widths)]
    lines += [_line(row) for row in rows]
    return lines
