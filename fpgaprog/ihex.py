"""Intel HEX reader grouping consecutive data records into sections."""

from __future__ import annotations

from dataclasses import dataclass, field

from fpgaprog.bitstream import BitstreamParser, ParseError, reverse_byte


@dataclass
class IhexSection:
    """A run of contiguous data starting at ``addr``."""

    addr: int
    data: bytearray = field(default_factory=bytearray)

    @property
    def length(self):
        return len(self.data)


def _field(line, start, width):
    text = line[start:start + width]
    if len(text) != width:
        raise ParseError(f"truncated record: {line!r}")
    try:
        return int(text, 16)
    except ValueError:
        raise ParseError(f"invalid hex field in record: {line!r}") from None


class IhexParser(BitstreamParser):
    """Reader for Intel HEX files (record types 00 and 01)."""

    def __init__(self, raw, reverse_order=False, verbose=False):
        super().__init__(raw, verbose)
        self.reverse_order = reverse_order
        self.base_addr = 0
        self.sections = []

    def _store(self, addr, value):
        if addr >= len(self.data):
            self.data.extend(bytes(addr + 1 - len(self.data)))
        self.data[addr] = value

    def parse(self):
        next_addr = 0
        first = True
        current = IhexSection(addr=0)

        for raw_line in self._lines():
            line = raw_line[:-1] if raw_line.endswith("\r") else raw_line
            if line.startswith("#"):
                continue
            if not line.startswith(":"):
                raise ParseError("a line must start with ':'")

            byte_len = _field(line, 1, 2)
            addr = _field(line, 3, 4)
            rtype = _field(line, 7, 2)

            if rtype == 1:
                if current.length:
                    self.sections.append(current)
                return
            if rtype != 0:
                raise ParseError(f"unknown record type {rtype:02x}")

            checksum = _field(line, 9 + byte_len * 2, 2)
            total = byte_len + rtype + (addr & 0xFF) + ((addr >> 8) & 0xFF)
            loc_addr = self.base_addr + addr

            if next_addr != addr or first:
                if not first:
                    self.sections.append(current)
                current = IhexSection(addr=loc_addr & 0xFFFF)
                first = False

            for i in range(byte_len):
                value = _field(line, 9 + 2 * i, 2)
                stored = reverse_byte(value) if self.reverse_order else value
                self._store(loc_addr + i, stored)
                total += value
                current.data.append(stored)

            next_addr = (addr + byte_len) & 0xFFFF
            self.bit_length += byte_len * 8

            if checksum != (-total) & 0xFF:
                raise ParseError("wrong checksum")