"""clipops.common: shared helpers for command building and manifests.

Contains: path variable resolution, number formatting for filter
arguments, filter value and path escaping, and the position tables shared
by the overlay and text builders.
"""

import re


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return str(paths[key])
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Number formatting ──────────────────────────────────────────────

def fmt_num(value: float, places: int = 3) -> str:
    """Format a number for an ffmpeg argument without trailing zeros.

    >>> fmt_num(2.0)
    '2'
    >>> fmt_num(0.25)
    '0.25'
    """
    text = f"{float(value):.{places}f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


# ── Filter escaping ────────────────────────────────────────────────

def escape_filter_value(value: str) -> str:
    """Escape a value for use inside a single-quoted filter option.

    The graph parser strips the quotes and keeps everything inside them
    literally; the option parser then unescapes backslash sequences. A
    quote cannot appear inside a quoted section, so it is written as
    close-quote, an escaped backslash and quote, reopen-quote.
    """
    escaped = str(value).replace("\\", "\\\\").replace(":", r"\:")
    return escaped.replace("'", r"'\\\''")


def escape_filter_path(path: str) -> str:
    """Escape a file path for use as a quoted filter option value."""
    return escape_filter_value(str(path).replace("\\", "/"))


# ── Position tables ────────────────────────────────────────────────
# Overlay coordinates use the main (W, H) and overlay (w, h) sizes with
# a 10 px margin. Text coordinates use the frame (w, h) and rendered
# text size (text_w, text_h).

OVERLAY_POSITIONS = {
    "top-left": "10:10",
    "top-right": "W-w-10:10",
    "bottom-left": "10:H-h-10",
    "bottom-right": "W-w-10:H-h-10",
    "center": "(W-w)/2:(H-h)/2",
}

TEXT_POSITIONS = {
    "top-left": ("10", "10"),
    "top-center": ("(w-text_w)/2", "10"),
    "top-right": ("w-text_w-10", "10"),
    "center": ("(w-text_w)/2", "(h-text_h)/2"),
    "bottom-left": ("10", "h-text_h-10"),
    "bottom-center": ("(w-text_w)/2", "h-text_h-10"),
    "bottom-right": ("w-text_w-10", "h-text_h-10"),
}
