"""Common base for configuration bitstream parsers."""

from __future__ import annotations

from pathlib import Path


class ParseError(ValueError):
    """Raised when a bitstream file cannot be parsed."""


def reverse_byte(value):
    """Return ``value`` (0..255) with its eight bits in reverse order."""
    if not 0 <= value <= 0xFF:
        raise ValueError(f"byte out of range: {value!r}")
    return int(f"{value:08b}"[::-1], 2)


class BitstreamParser:
    """Holds a file's raw content and the configuration data extracted from it.

    The base class treats the content as raw binary data.  ``raw`` may be
    given as ``bytes`` or ``str``; text is kept with a one-to-one byte
    mapping (latin-1) so that binary content survives unchanged.
    """

    def __init__(self, raw, verbose=False):
        if isinstance(raw, (bytes, bytearray)):
            raw = bytes(raw).decode("latin-1")
        self.raw = raw
        self.verbose = verbose
        self.data = bytearray()
        self.bit_length = 0
        self.header = {}

    @classmethod
    def from_file(cls, path):
        """Build a parser from the content of the file at ``path``."""
        return cls(Path(path).read_bytes())

    def parse(self):
        """Take the whole content as configuration data."""
        self.data = bytearray(self.raw.encode("latin-1"))
        self.bit_length = len(self.data) * 8

    def header_value(self, key):
        """Return the header field ``key``; raise KeyError when absent."""
        try:
            return self.header[key]
        except KeyError:
            raise KeyError(f"no header field {key!r}") from None

    def _lines(self):
        """Split the content on newlines the way line-oriented readers do."""
        lines = self.raw.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        return lines


class EfinixHexParser(BitstreamParser):
    """Reader for Efinix ``.hex`` files: one hexadecimal byte per line."""

    def parse(self):
        data = bytearray()
        for line in self._lines():
            try:
                value = int(line.strip(), 16)
            except ValueError:
                raise ParseError(f"invalid hex line: {line!r}") from None
            data.append(value & 0xFF)
        self.data = data
        self.bit_length = len(data) * 8