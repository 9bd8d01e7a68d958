"""
Output Sinks
============
Where a finished document goes: a timestamped file in the per-tool config
directory, optionally the clipboard, optionally the user's editor.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from pathlib import Path
from typing import Mapping, Optional

import pyperclip

logger = logging.getLogger(__name__)

TOOL_NAME = "tweetingest"
RESULTS_SAVED_MARKER = "TWEETS_SAVED:"


def resolve_output_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """``$TWEETINGEST_OUTPUT_DIR``, else ``$XDG_CONFIG_HOME/tweetingest``,
    else ``~/.config/tweetingest``."""
    environ = os.environ if environ is None else environ
    explicit = environ.get("TWEETINGEST_OUTPUT_DIR")
    if explicit:
        return Path(explicit).expanduser()
    xdg = environ.get("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / TOOL_NAME


def output_filename(subject: str, unix_ms: Optional[int] = None) -> str:
    if unix_ms is None:
        unix_ms = int(time.time() * 1000)
    return f"{TOOL_NAME}-{subject}-{unix_ms}.md"


def write_document(
    markdown: str,
    subject: str,
    output_dir: Optional[Path] = None,
    unix_ms: Optional[int] = None,
) -> Path:
    """Write ``markdown`` and return the absolute path of the new file."""
    output_dir = Path(output_dir) if output_dir else resolve_output_dir()
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / output_filename(subject, unix_ms)
    path.write_text(markdown, encoding="utf-8")
    logger.info(f"Document written: {path}")
    return path.resolve()


def copy_to_clipboard(text: str) -> bool:
    """Copy ``text``; a missing clipboard backend is reported, not raised."""
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        logger.warning(f"Clipboard unavailable: {e}")
        return False
    return True


def open_in_editor(path: Path, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Open ``path`` in ``$VISUAL`` / ``$EDITOR`` and wait for it to exit."""
    environ = os.environ if environ is None else environ
    editor = environ.get("VISUAL") or environ.get("EDITOR")
    if not editor:
        logger.debug("No $VISUAL/$EDITOR set — not opening editor")
        return False
    try:
        result = subprocess.run([*shlex.split(editor), str(path)], check=False)
    except OSError as e:
        logger.warning(f"Could not start editor {editor!r}: {e}")
        return False
    return result.returncode == 0
