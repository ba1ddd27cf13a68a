"""JTAG probe driving pins one clock edge at a time in FTDI bitbang mode."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fpgaprog.jtag_interface import JtagInterface
from fpgaprog.mpsse import BITMODE_BITBANG, BITMODE_SYNCBB, Mpsse, MpsseError

log = logging.getLogger(__name__)

_MAX_CLOCK_HZ = 3_000_000
_BUFFER_SIZE = 4096
_RX_FIFO = {0x6001: 256, 0x6015: 512}  # FT232R, FT231X


@dataclass(frozen=True)
class JtagPins:
    """Pin masks (``1 << pin``) of the four JTAG signals."""

    tck_pin: int
    tms_pin: int
    tdi_pin: int
    tdo_pin: int


def _bit(data, index):
    return (data[index >> 3] >> (index & 0x07)) & 0x01


def _check_length(data, length):
    if len(data) * 8 < length:
        raise ValueError(f"{length} bits requested but only {len(data) * 8} given")


class FtdiJtagBitBang(JtagInterface):
    """JTAG over an FTDI chip in (synchronous) bitbang mode.

    Each bit takes two pin states: clock low, then clock high.
    """

    def __init__(self, transport, cable, pins, clock_hz, verbose=False):
        self.pins = pins
        self.verbose = verbose
        self._transport = transport
        self.device = Mpsse(transport, cable, clock_hz, verbose)
        self._rx_size = _RX_FIFO.get(self.device.pid, self.device.buffer_size)
        self._buf_size = _BUFFER_SIZE
        self.device.buffer_size = _BUFFER_SIZE
        self._buf = bytearray()
        self._bitmode = 0
        self._curr_tms = 0
        self._out_mask = pins.tck_pin | pins.tms_pin | pins.tdi_pin
        self.set_clock_freq(clock_hz)
        self.device.init(1, self._out_mask, BITMODE_BITBANG)
        self._set_bitmode(BITMODE_BITBANG)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.device.close()

    def set_clock_freq(self, hz):
        requested = hz
        if hz > _MAX_CLOCK_HZ:
            log.warning("Jtag probe limited to 3MHz")
            hz = _MAX_CLOCK_HZ
        log.info("Jtag frequency : requested %dHz -> real %dHz", requested, hz)
        self._transport.set_baudrate(hz)
        self.clock_hz = hz
        return hz

    def _set_bitmode(self, mode):
        if self._bitmode == mode:
            return
        self._bitmode = mode
        self._transport.set_bitmode(self._out_mask, mode)
        self._transport.purge()

    def _send(self, sample):
        self._set_bitmode(BITMODE_SYNCBB if sample else BITMODE_BITBANG)
        pending = bytes(self._buf)
        written = self._transport.write_data(pending)
        if written != len(pending):
            raise MpsseError(f"write failed: {written} of {len(pending)} bytes sent")
        echo = None
        if sample:
            echo = self._transport.read_data(len(pending))
            if len(echo) != len(pending):
                raise MpsseError(f"read failed: {len(echo)} of {len(pending)} bytes")
        self._buf.clear()
        return echo

    def _sample(self, nb_bit):
        """Send the buffer and rebuild the last ``nb_bit`` TDO bits, LSB first."""
        num = len(self._buf)
        echo = self._send(True)
        out = bytearray((nb_bit + 7) // 8)
        tdo = self.pins.tdo_pin
        # TDO is sampled on the rising edge: keep the clock-high states
        for offset, i in enumerate(range(num - nb_bit * 2 + 1, num, 2)):
            out[offset >> 3] = (0x80 if echo[i] & tdo else 0x00) | (out[offset >> 3] >> 1)
        return bytes(out)

    def write_tms(self, tms, length, flush_buffer):
        if length == 0:
            return self.flush() if flush_buffer else 0
        _check_length(tms, length)
        p = self.pins
        if len(self._buf) + 2 > self._buf_size:
            self.flush()
        for i in range(length):
            self._curr_tms = p.tms_pin if _bit(tms, i) else 0
            val = p.tdi_pin | self._curr_tms
            self._buf += bytes([val, val | p.tck_pin])
            if len(self._buf) + 2 > self._buf_size:
                self.flush()
        if flush_buffer:
            self.flush()
        return length

    def write_tdi(self, tx, length, end, read):
        if length == 0:
            return b"" if read else None
        if tx is not None:
            _check_length(tx, length)
        p = self.pins
        xfer_size = self._rx_size if read else self._buf_size
        if length * 2 + 1 < xfer_size:
            per_chunk = length
        else:
            per_chunk = (xfer_size >> 1) // 8 * 8

        if self._buf:
            self.flush()

        received = bytearray()
        pos = 0
        for i in range(length):
            if end and i == length - 1:
                self._curr_tms = p.tms_pin
            val = self._curr_tms
            if tx is not None and _bit(tx, i):
                val |= p.tdi_pin
            self._buf += bytes([val, val | p.tck_pin])
            pos += 1
            if pos == per_chunk:
                pos = 0
                if read:
                    received += self._sample(per_chunk)
                else:
                    self.flush()

        if self._buf:
            if read and len(self._buf) > 1:
                received += self._sample(len(self._buf) // 2)
            else:
                self.flush()

        if not read:
            return None
        size = (length + 7) // 8
        return bytes(received[:size]).ljust(size, b"\0")

    def toggle_clk(self, tms, tdi, count):
        p = self.pins
        val = (p.tms_pin if tms else 0) | (p.tdi_pin if tdi else 0)
        for _ in range(count):
            if len(self._buf) + 2 > self._buf_size:
                self.flush()
            self._buf += bytes([val | p.tck_pin, val])
        self.flush()
        return count

    def buffer_size(self):
        return self._buf_size // 8 // 2

    def is_full(self):
        return len(self._buf) == 8 * self.buffer_size()

    def flush(self):
        if not self._buf:
            return 0
        count = len(self._buf)
        self._send(False)
        return count