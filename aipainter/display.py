"""Inline preview of downloaded generations."""

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

PREVIEW_COLUMNS = 80


def supports_inline_images(environ) -> bool:
    """iTerm2, WezTerm and Kitty speak a graphics protocol term-image can use."""
    if environ.get("TERM_PROGRAM") in ("iTerm.app", "WezTerm") or "ITERM_SESSION_ID" in environ:
        return True
    return environ.get("TERM") == "xterm-kitty" or "KITTY_WINDOW_ID" in environ


class TerminalDisplay:
    """Draws the images of one generation below the CLI output."""

    def __init__(self, environ: Optional[dict] = None):
        self.enabled = supports_inline_images(os.environ if environ is None else environ)

    def show_generation(self, image_paths: Iterable[Path], columns: int = PREVIEW_COLUMNS) -> list[Path]:
        """
        Draw every downloaded image of a generation.

        Args:
            image_paths: Files saved by the download step, in output order
            columns: Preview width in terminal columns

        Returns:
            The paths that were not drawn. All of them when the terminal has
            no inline image support.
        """
        paths = [Path(p) for p in image_paths]
        if not self.enabled:
            return paths
        return [path for path in paths if not self._draw(path, columns)]

    def _draw(self, path: Path, columns: int) -> bool:
        from term_image.image import from_file

        try:
            image = from_file(str(path))
            image.set_size(columns=columns)
            image.draw()
        except Exception as e:
            # term-image raises its own hierarchy plus PIL errors for bad files
            logger.debug("Inline preview of %s failed: %s", path, e)
            return False
        return True


display = TerminalDisplay()
