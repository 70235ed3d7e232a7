from __future__ import annotations

import codecs
from itertools import islice
from pathlib import Path
from typing import Iterator, List


class EncodingLineReader:
    """
    Reads text files under a fixed character encoding. Every call to
    `read_lines` re-opens the file, so the returned iterator can be restarted
    by simply calling it again.
    """

    def __init__(self, encoding: str = "ISO-8859-1"):
        # Fail early on unknown encodings instead of on the first document.
        codecs.lookup(encoding)
        self.encoding = encoding

    def read_lines(self, path: Path) -> Iterator[str]:
        with Path(path).open("r", encoding=self.encoding, errors="strict", newline=None) as f:
            for line in f:
                yield line.rstrip("\n")

    def head(self, path: Path, count: int) -> List[str]:
        lines = self.read_lines(path)
        try:
            return list(islice(lines, count))
        finally:
            lines.close()
