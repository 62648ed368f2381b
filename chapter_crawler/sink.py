"""
Output sink: one append-only UTF-8 text file per traversal run.

Every write is flushed immediately so an interrupted run keeps everything
extracted up to that point.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .errors import SinkCreationError
from .titles import clean_file_name

logger = logging.getLogger(__name__)

TEXT_EXTENSION = ".txt"


class OutputSink:
    """Append-only writer for units, continuation pages and error placeholders."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._file = None
        self.lines_written = 0

    @classmethod
    def for_document(cls, title: str, output_dir: Union[str, Path] = ".") -> "OutputSink":
        """Sink named after the sanitized document title."""
        return cls(Path(output_dir) / f"{clean_file_name(title)}{TEXT_EXTENSION}")

    def open(self) -> "OutputSink":
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, 'w', encoding='utf-8')
        except OSError as e:
            raise SinkCreationError(f"cannot create {self.path}: {e}") from e
        logger.info(f"[SINK] Writing to {self.path.absolute()}")
        return self

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    @property
    def closed(self) -> bool:
        return self._file is None

    def __enter__(self) -> "OutputSink":
        if self._file is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _append(self, chunk: str) -> None:
        if self._file is None:
            raise ValueError("sink is not open")
        self._file.write(chunk)
        self._file.flush()
        self.lines_written += chunk.count('\n')

    def write_unit(self, title: str, content: str) -> None:
        """First page of a unit: title, blank line, content."""
        self._append(f"{title}\n\n{content}\n\n")

    def write_continuation(self, content: str) -> None:
        """Further page of the current unit: content only."""
        self._append(f"{content}\n\n")

    def write_error(self, description: str, url: Optional[str] = None) -> None:
        """Inline placeholder for a unit or page that could not be extracted."""
        self._append(f"【错误】{description} (URL: {url or ''})\n\n")
