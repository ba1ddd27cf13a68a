"""Reader for JEDEC fuse map (``.jed``) files."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from fpgaprog.bitstream import BitstreamParser, ParseError, reverse_byte

log = logging.getLogger(__name__)

STX = "\x02"
ETX = "\x03"

_INT = re.compile(r"\s*([+-]?\d+)")
_HEX = re.compile(r"\s*(?:0[xX])?([0-9a-fA-F]+)")

_BOOT_MODES = {
    0: "Single Boot from Configuration Flash",
    1: "Dual Boot from Configuration Flash then External if there is a failure",
    3: "Single Boot from External Flash",
}


def _scan_int(text):
    match = _INT.match(text)
    return int(match.group(1)) if match else None


def _scan_hex(text):
    match = _HEX.match(text)
    return int(match.group(1), 16) if match else None


def _char(text, index):
    return text[index] if index < len(text) else "\0"


def _pack_lsb_first(bits):
    """Pack up to eight '1'/'0' characters into a byte, first character as bit 0."""
    value = 0
    for position, ch in enumerate(bits):
        if ch == "1":
            value |= 1 << position
    return value & 0xFF


@dataclass
class JedSection:
    """Fuse data introduced by one ``L`` field."""

    offset: int
    data: list = field(default_factory=list)
    length: int = 0
    note: str = ""


class _LineReader:
    """Line reader over the content following STX."""

    def __init__(self, text, pos):
        self.text = text
        self.pos = pos
        self.eof = False

    def skip_rest_of_line(self):
        self.readline()

    def readline(self):
        if self.pos >= len(self.text):
            self.eof = True
            return ""
        end = self.text.find("\n", self.pos)
        if end < 0:
            line = self.text[self.pos:]
            self.pos = len(self.text)
            self.eof = True
        else:
            line = self.text[self.pos:end]
            self.pos = end + 1
        if line.endswith("\r"):
            line = line[:-1]
        return line

    def read_field(self):
        """Collect consecutive lines up to the one ending with '*'."""
        lines = []
        while True:
            line = self.readline()
            if not line:
                break
            if line.endswith("*"):
                lines.append(line[:-1])
                break
            lines.append(line)
        return lines


def _state(value, shift, one, zero):
    return one if (value >> shift) & 0x01 else zero


class JedParser(BitstreamParser):
    """Parse a JEDEC file into fuse sections and check its fuse checksum."""

    def __init__(self, raw, verbose=False):
        super().__init__(raw, verbose)
        self.sections = []
        self.fuselist = ""
        self.fuse_count = 0
        self.pin_count = 0
        self.max_vect_test = 0
        self.features_row = 0
        self.feabits = 0
        self.has_feabits = False
        self.checksum = 0
        self.computed_checksum = 0
        self.user_code = 0
        self.security_settings = 0
        self.default_fuse_state = 0
        self.default_test_condition = 0
        self.arch_code = 0
        self.pinout_code = 0

    def _add_bits(self, section, bits):
        self.fuselist += bits
        packed = bytes(_pack_lsb_first(bits[i:i + 8]) for i in range(0, len(bits), 8))
        section.data.append(packed)
        section.length += len(bits)

    def _add_groups(self, section, groups):
        packed = bytearray()
        for bits in groups:
            self.fuselist += bits
            packed.append(_pack_lsb_first(bits))
            section.length += len(bits)
        section.data.append(bytes(packed))

    def _parse_e_field(self, lines):
        if len(lines) < 2:
            raise ParseError("E field needs a feature row and feabits")
        row = 0
        for position, ch in enumerate(lines[0][1:]):
            if ch == "1":
                row |= 1 << position
        feabits = 0
        for position, ch in enumerate(lines[1]):
            if ch == "1":
                feabits |= 1 << position
        self.features_row = row & 0xFFFFFFFFFFFFFFFF
        self.feabits = feabits & 0xFFFF
        self.has_feabits = True

    def _parse_l_field(self, lines, note):
        offset = _scan_int(lines[0][1:])
        if offset is None:
            raise ParseError(f"invalid fuse offset: {lines[0]!r}")
        section = JedSection(offset=offset, note=note)
        if len(lines) > 1:
            for line in lines[1:]:
                if line:
                    self._add_bits(section, line)
        else:
            self._add_groups(section, lines[0].split()[1:])
        self.sections.append(section)

    def _parse_user_code(self, head):
        kind = _char(head, 1)
        if kind == "H":
            value = _scan_hex(head[2:])
            if value is not None:
                self.user_code = value & 0xFFFFFFFF
        elif kind == "A":
            value = _scan_int(head[2:])
            if value is not None:
                self.user_code = value & 0xFFFFFFFF
        else:
            code = self.user_code
            for ch in head[1:]:
                code = ((code << 1) | (ord(ch) - ord("0"))) & 0xFFFFFFFF
            self.user_code = code

    def _parse_count(self, head):
        qualifier = _char(head, 1)
        if qualifier not in "FPV" or qualifier == "\0":
            raise ParseError(f"unknown 'Q' qualifier: {head!r}")
        count = _scan_int(head[2:])
        if count is None:
            raise ParseError(f"invalid count: {head!r}")
        if qualifier == "F":
            self.fuse_count = count
        elif qualifier == "P":
            self.pin_count = count
        else:
            self.max_vect_test = count

    def parse(self):
        text = self.raw
        start = text.find(STX)
        if start < 0:
            raise ParseError("STX not found: wrong file")
        reader = _LineReader(text, start + 1)
        if _char(text, reader.pos) == "*":
            reader.pos += 1
            reader.skip_rest_of_line()

        note = ""
        while True:
            lines = reader.read_field()
            if not lines:
                if reader.eof:
                    break
                continue
            head = lines[0]
            instr = _char(head, 0)

            if instr == "N":
                note = head[head.find(" ") + 1:]
            elif instr == "Q":
                self._parse_count(head)
            elif instr == "G":
                self.security_settings = (ord(_char(head, 1)) - ord("0")) & 0xFF
            elif instr == "F":
                self.default_fuse_state = (ord(_char(head, 1)) - ord("0")) & 0xFF
            elif instr == "J":
                arch = _scan_int(head[1:])
                if arch is not None:
                    self.arch_code = arch
                pinout = _scan_int(head[3:])
                if pinout is not None:
                    self.pinout_code = pinout
            elif instr == "C":
                value = _scan_hex(head[1:])
                if value is not None:
                    self.checksum = value & 0xFFFF
            elif instr == ETX:
                log.debug("end of fuse map")
                break
            elif instr == "E":
                self._parse_e_field(lines)
            elif instr == "L":
                self._parse_l_field(lines, note)
            elif instr == "U":
                self._parse_user_code(head)
            elif instr == "X":
                value = _scan_int(head[1:])
                if value is not None:
                    self.default_test_condition = value
            else:
                raise ParseError(f"unknown field: {head!r}")

        size = sum(section.length for section in self.sections)

        fuses = self.fuselist
        if len(fuses) % 8:
            fuses += "0" * (8 - len(fuses) % 8)
        computed = 0
        for pos in range(0, len(fuses), 8):
            try:
                byte = int(fuses[pos:pos + 8], 2)
            except ValueError:
                raise ParseError(f"invalid fuse bits: {fuses[pos:pos + 8]!r}") from None
            computed = (computed + reverse_byte(byte)) & 0xFFFF
        self.computed_checksum = computed

        if self.verbose:
            log.info("theorical checksum %x -> %x", self.checksum, computed)
        if self.checksum != computed:
            raise ParseError("wrong checksum")
        if self.fuse_count != size:
            raise ParseError("Not all fuses are programmed")

    def describe(self):
        """Return a human-readable summary of the parsed file."""
        out = []
        fb = self.feabits
        if self.has_feabits:
            out.append("feabits :\n")
            out.append(f"{fb:04x} <-> {fb}\n")
            boot = _BOOT_MODES.get((fb >> 11) & 0x07, "Error")
            out.append(f"\tBoot Mode       : {boot}\n")
            out.append(f"\tMaster Mode SPI : {_state(fb, 11, 'enable', 'disable')}\n")
            out.append(f"\tI2c port        : {_state(fb, 10, 'disable', 'enable')}\n")
            out.append(f"\tSlave SPI port  : {_state(fb, 9, 'disable', 'enable')}\n")
            out.append(f"\tJTAG port       : {_state(fb, 8, 'disable', 'enable')}\n")
            out.append(f"\tDONE            : {_state(fb, 7, 'enable', 'disable')}\n")
            out.append(f"\tINITN           : {_state(fb, 6, 'enable', 'disable')}\n")
            out.append(f"\tPROGRAMN        : {_state(fb, 5, 'disable', 'enable')}\n")
            out.append(f"\tMy_ASSP         : {_state(fb, 4, 'enable', 'disable')}\n")

        out.append(f"Pin Count  : {self.pin_count}\n")
        out.append(f"Fuse Count : {self.fuse_count}\n")

        for index, section in enumerate(self.sections):
            content = "".join(chunk.hex() for chunk in section.data)
            out.append(
                f"area[{index}] {section.offset:4d} {section.length:4d} "
                f"{len(section.data)} {content} {section.note}\n"
            )
            if section.offset == 2656:
                break
        return "".join(out)