"""Output helpers shared by CLI commands."""


def format_size(size_bytes: float) -> str:
    """Format size in human readable format."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} TB"


def format_change(change_bytes: int | None) -> str:
    """Signed size delta, or N/A for the first sample."""
    if change_bytes is None:
        return "N/A"
    sign = "+" if change_bytes >= 0 else "-"
    return f"{sign}{format_size(abs(change_bytes))}"
