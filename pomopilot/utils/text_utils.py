def truncate(text: str, max_len: int = 64) -> str:
    return text if len(text) <= max_len else text[:max_len - 1] + "…"


def single_line(text: str) -> str:
    return " ".join(text.split())
