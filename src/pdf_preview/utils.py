_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_size(num_bytes: int) -> str:
    """Human readable size with binary units, e.g. 20971520 -> "20 MB"."""
    if num_bytes <= 0:
        return "0 Bytes"
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    # "1.50" -> "1.5", "20.00" -> "20"
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_UNITS[unit]}"
