"""Reader for Gowin ``.fs`` bitstreams (ASCII '0'/'1' lines)."""

from __future__ import annotations

import logging

from fpgaprog.bitstream import BitstreamParser, ParseError, reverse_byte

log = logging.getLogger(__name__)

# Configuration data line count per device idcode (TN653).
_LINE_COUNT = {
    0x0900281B: 274,   # GW1N-1
    0x0900381B: 274,   # GW1N-1S
    0x0100681B: 274,   # GW1NZ-1
    0x0100181B: 494,   # GW1N-2
    0x1100181B: 494,   # GW1N-2B
    0x0300081B: 494,   # GW1NS-2
    0x0300181B: 494,   # GW1NSx-2C
    0x0100981B: 494,   # GW1NSR-4C
    0x0100381B: 494,   # GW1N-4(ES)
    0x1100381B: 494,   # GW1N-4B
    0x0100481B: 712,   # GW1N-6(9C ES?)
    0x1100481B: 712,   # GW1N-9C
    0x0100581B: 712,   # GW1N-9(ES)
    0x1100581B: 712,   # GW1N-9
    0x0000081B: 1342,  # GW2A-18
    0x0000281B: 2038,  # GW2A-55
}
# Devices whose address length is not a multiple of a byte.
_PADDED = {0x0100481B, 0x1100481B, 0x0100581B, 0x1100581B}


def bits_to_value(bits):
    """Convert a string of '1'/'0' characters to its integer value."""
    value = 0
    for ch in bits:
        value = (value << 1) | (1 if ch == "1" else 0)
    return value


class FsParser(BitstreamParser):
    """Parse an ``.fs`` file and compute its configuration data checksum."""

    def __init__(self, raw, reverse=False, verbose=False):
        super().__init__(raw, verbose)
        self.reverse = reverse
        self.checksum = 0
        self.idcode = 0
        self.compressed = False
        self._end_header = 0
        self._zero8 = 0xFF
        self._zero4 = 0xFF
        self._zero2 = 0xFF
        self._rows = []

    def _parse_header(self):
        line_index = 0
        in_header = True
        for raw_line in self._lines():
            if not raw_line:
                break
            if raw_line[0] == "/":
                continue
            line = raw_line[:-1] if raw_line.endswith("\r") else raw_line
            self._rows.append(line)
            if not in_header:
                continue

            key = bits_to_value(line[:8]) & 0x7F
            val = bits_to_value(line)

            if key == 0x06:
                self.idcode = val & 0xFFFFFFFF
                self.header["idcode"] = f"{self.idcode:08x}"
            elif key == 0x0A:
                self.header["CheckSum"] = f"{val & 0xFFFF:04x}"
            elif key == 0x0B:
                self.header["SecurityBit"] = "ON"
            elif key == 0x10:
                self.header["loading_rate"] = str(0xFF & (val >> 16))
                self.compressed = bool(0x01 & (val >> 13))
                self.header["Compress"] = "ON" if self.compressed else "OFF"
                self.header["ProgramDoneBypass"] = "ON" if 0x01 & (val >> 12) else "OFF"
            elif key == 0x51:
                # replacement bytes for 8x, 4x and 2x 0x00 in compress mode
                self._zero8 = 0xFF & (val >> 16)
                self._zero4 = 0xFF & (val >> 8)
                self._zero2 = 0xFF & val
            elif key == 0x52:
                self.header["SPIAddr"] = f"{val & 0xFFFFFFFF:08x}"
            elif key == 0x3B:
                in_header = False
                self.header["CRCCheck"] = "ON" if 0x01 & (val >> 23) else "OFF"
                self.header["ConfDataLength"] = str(0xFFFF & val)
                self._end_header = line_index

            line_index += 1

    def _expand(self, line, drop):
        if not self.compressed:
            return line[:len(line) - drop] if len(line) >= drop else line
        parts = []
        for i in range(0, len(line) - drop, 8):
            chunk = line[i:i + 8]
            c = bits_to_value(chunk.ljust(8, "0")) & 0xFF
            if c == self._zero8:
                parts.append("0" * 64)
            elif c == self._zero4:
                parts.append("0" * 32)
            elif c == self._zero2:
                parts.append("0" * 16)
            else:
                parts.append(chunk)
        return "".join(parts)

    def parse(self):
        self._parse_header()

        data = bytearray()
        for line in self._rows:
            for i in range(0, len(line), 8):
                byte = bits_to_value(line[i:i + 8].ljust(8, "0")) & 0xFF
                data.append(reverse_byte(byte) if self.reverse else byte)
        self.data = data
        self.bit_length = len(data) * 8

        if self.idcode == 0:
            log.warning("IDCODE not found")

        nb_line = _LINE_COUNT.get(self.idcode)
        padding = 0
        if nb_line is None:
            log.warning("unknown IDCODE")
            nb_line = 0
        elif self.idcode in _PADDED:
            padding = 4 + (5 * 8 if self.compressed else 0)

        conf_len = self.header.get("ConfDataLength")
        if conf_len is None:
            raise ParseError("configuration data length not found")
        nb_line = min(nb_line, int(conf_len))

        rows = self._rows[self._end_header + 1:][:nb_line]
        rows += [""] * (nb_line - len(rows))

        drop = 6 * 8
        if self.header.get("CRCCheck") == "ON":
            drop += 2 * 8

        bits = []
        for line in rows:
            expanded = self._expand(line, drop)
            if padding > len(expanded):
                raise ParseError("configuration line shorter than padding")
            bits.append(expanded[padding:])
        stream = "".join(bits)

        checksum = 0
        for pos in range(0, len(stream), 16):
            checksum = (checksum + bits_to_value(stream[pos:pos + 16].ljust(16, "0"))) & 0xFFFF
        self.checksum = checksum

        if self.verbose:
            log.info("checksum 0x%04x", checksum)