"""Label store: maps model output indices to human-readable tags."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from tagserve.ml.errors import LabelFileNotFoundError, LabelIndexError, LabelLookupError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class LabelStore:
    """Immutable, ordered list of labels, one per output class index.

    The file is read and decoded in one piece before any lookup, so a file
    that fails to decode fails every lookup, not only those past the bad
    line.
    """

    __slots__ = ("_labels", "_path")

    def __init__(self, labels: tuple[str, ...] | list[str], path: Path | None = None) -> None:
        self._labels: tuple[str, ...] = tuple(labels)
        self._path = path

    @classmethod
    def load(cls, path: str | Path) -> LabelStore:
        """Read a newline-delimited UTF-8 tags file.

        Raises:
            LabelFileNotFoundError: If the file cannot be opened.
            LabelLookupError: If the file is not valid UTF-8.
        """
        path = Path(path)
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise LabelFileNotFoundError(f"Could not open tags file: {path}") from exc

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise LabelLookupError(f"Tags file is not valid UTF-8: {path}") from exc

        labels = _split_lines(text)
        logger.debug("Loaded %d labels from %s", len(labels), path)
        return cls(labels, path=path)

    @property
    def path(self) -> Path | None:
        """File the labels were read from, if any."""
        return self._path

    def lookup(self, index: int) -> str:
        """Return the label at a zero-based class index.

        Raises:
            LabelIndexError: If the index has no corresponding line.
        """
        if index < 0 or index >= len(self._labels):
            raise LabelIndexError(f"No label for class index {index} ({len(self._labels)} labels available)")
        return self._labels[index]

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __contains__(self, label: object) -> bool:
        return label in self._labels

    def __repr__(self) -> str:
        return f"LabelStore(labels={len(self._labels)}, path={self._path!s})"


def _split_lines(text: str) -> tuple[str, ...]:
    # Only "\n" ends a line; other Unicode line breaks belong to the label.
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return tuple(line[:-1] if line.endswith("\r") else line for line in lines)
