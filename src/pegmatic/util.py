def line_col(text: str, ix: int) -> tuple[int, int]:
    """1-based line and column of offset `ix` in `text`."""
    line = text.count("\n", 0, ix) + 1
    return line, ix - (text.rfind("\n", 0, ix) + 1) + 1


def line_at(text: str, ix: int) -> str:
    start = text.rfind("\n", 0, ix) + 1
    end = text.find("\n", ix)
    return text[start:] if end == -1 else text[start:end]
