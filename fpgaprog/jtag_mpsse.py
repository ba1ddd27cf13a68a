"""JTAG probe built on an FTDI MPSSE engine."""

from __future__ import annotations

import logging

from fpgaprog.jtag_interface import JtagInterface
from fpgaprog.mpsse import (
    BITMODE_MPSSE,
    LOOPBACK_END,
    LOOPBACK_START,
    MPSSE_BITMODE,
    MPSSE_DO_READ,
    MPSSE_DO_WRITE,
    MPSSE_LSB,
    MPSSE_READ_NEG,
    MPSSE_WRITE_NEG,
    MPSSE_WRITE_TMS,
    SET_BITS_HIGH,
    SET_BITS_LOW,
    TYPE_2232H,
    TYPE_232H,
    TYPE_4232H,
    Mpsse,
)

log = logging.getLogger(__name__)

_CH552_PRODUCT = "Sipeed-Debug"
_DIGILENT_PRODUCT = "Digilent USB Device"
_HIGH_SPEED_HZ = 15_000_000
_CLOCK_ONLY_CHIPS = (TYPE_2232H, TYPE_4232H, TYPE_232H)


def _bit(data, index):
    return (data[index >> 3] >> (index & 0x07)) & 0x01


def _check_length(data, length):
    if len(data) * 8 < length:
        raise ValueError(f"{length} bits requested but only {len(data) * 8} given")


class FtdiJtagMpsse(JtagInterface):
    """JTAG shifting through MPSSE commands.

    Writes happen on the falling edge; reads on the rising edge unless
    ``invert_read_edge`` is set or a Digilent cable runs at 15MHz or more.
    """

    def __init__(self, transport, cable, clock_hz, invert_read_edge=False, verbose=False):
        self.transport = transport
        self.verbose = verbose
        self.device = Mpsse(transport, cable, clock_hz, verbose)
        self._ch552 = str(self.device.product).startswith(_CH552_PRODUCT)
        self._write_mode = MPSSE_WRITE_NEG
        self._read_mode = 0
        self._invert_read_edge = invert_read_edge
        self.device.init(5, 0xFB, BITMODE_MPSSE)
        self._config_edge()

    @property
    def clock_hz(self):
        return self.device.clock_hz

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _config_edge(self):
        digilent_fast = (self.device.clock_hz >= _HIGH_SPEED_HZ
                         and str(self.device.product).startswith(_DIGILENT_PRODUCT))
        self._read_mode = MPSSE_READ_NEG if self._invert_read_edge or digilent_fast else 0

    def set_clock_freq(self, hz):
        real = self.device.set_clock(hz)
        self._config_edge()
        return real

    def write_tms(self, tms, length, flush_buffer):
        if length == 0:
            return 0
        _check_length(tms, length)
        dev = self.device
        cmd = MPSSE_WRITE_TMS | MPSSE_LSB | MPSSE_BITMODE | self._write_mode
        per_flush = dev.buffer_size // 3
        pending = 0
        offset = 0
        remaining = length
        while remaining > 0:
            count = min(6, remaining)
            value = 0x80
            for i in range(count):
                value |= _bit(tms, offset + i) << i
            offset += count
            dev.store(bytes([cmd, count - 1, value]))
            pending += 1
            if pending == per_flush:
                pending = 0
                dev.write()
                if self._ch552:
                    self.transport.read_data(length // 8 + 1)
            remaining -= count
        if flush_buffer:
            dev.write()
        if self._ch552:
            self.transport.read_data(length // 8 + 1)
        return length

    def toggle_clk(self, tms, tdi, count):
        if self.transport.chip_type not in _CLOCK_ONLY_CHIPS:
            pattern = bytes([0xFF if tms else 0x00]) * ((count + 7) // 8)
            return self.write_tms(pattern, count, False)
        remaining = count
        while remaining:
            chunk = min(remaining, 0x10000 * 8)
            if chunk > 8:
                cycles8 = chunk // 8
                remaining -= cycles8 * 8
                cycles8 -= 1
                self.device.store(bytes([0x8F, cycles8 & 0xFF, (cycles8 >> 8) & 0xFF]))
            if remaining and remaining < 9:
                self.device.store(bytes([0x8E, remaining - 1]))
                remaining = 0
        return count

    def write_tdi(self, tx, length, end, read):
        if end and length == 0:
            raise ValueError("a shift ending the state needs at least one bit")
        if tx is not None:
            _check_length(tx, length)
        dev = self.device
        real_len = length - 1 if end else length
        nb_byte, nb_bit = real_len >> 3, real_len & 0x07
        xfer = dev.buffer_size - 3
        cmd = MPSSE_LSB
        if tx is not None:
            cmd |= MPSSE_DO_WRITE | self._write_mode
        if read:
            cmd |= MPSSE_DO_READ | self._read_mode

        # a single full byte is cheaper as a bit command
        if nb_byte == 1 and nb_bit == 0:
            nb_byte, nb_bit = 0, 8

        received = bytearray()
        tx_pos = 0
        while nb_byte:
            size = min(nb_byte, xfer)
            dev.store(bytes([cmd, (size - 1) & 0xFF, ((size - 1) >> 8) & 0xFF]))
            if tx is not None:
                dev.store(tx[tx_pos:tx_pos + size])
                tx_pos += size
            if read:
                received += dev.read(size)
            elif self._ch552:
                dev.write()
                self.transport.read_data(size)
            elif not end:
                dev.write()
            nb_byte -= size

        partial = None
        if nb_bit:
            dev.store(bytes([cmd | MPSSE_BITMODE, nb_bit - 1]))
            if tx is not None:
                dev.store(tx[tx_pos])
            if read and (not end or self._ch552):
                partial = dev.read(1)[0] >> (8 - nb_bit)
            elif self._ch552:
                dev.write()
                self.transport.read_data(nb_bit)
            elif not end:
                dev.write()

        last_tdo = 0
        if end:
            last = _bit(tx, real_len) if tx is not None else 0
            tms_cmd = MPSSE_WRITE_TMS | MPSSE_LSB | MPSSE_BITMODE | self._write_mode
            if read:
                tms_cmd |= MPSSE_DO_READ | self._read_mode
            # TMS high moves to EXIT1; TDI travels in bit 7
            dev.store(bytes([tms_cmd, 0x00, 0x81 if last else 0x01]))
            if read:
                partial_pending = nb_bit != 0 and partial is None
                answer = dev.read(2 if partial_pending else 1)
                if partial_pending:
                    partial = answer[0] >> (8 - nb_bit)
                last_tdo = (answer[-1] >> 7) & 0x01
            elif self._ch552:
                dev.write()
                self.transport.read_data(1)
            else:
                dev.write()

        if not read:
            return None
        out = bytearray((length + 7) // 8)
        out[:len(received)] = received
        if partial is not None:
            out[len(received)] = partial & 0xFF
        if end:
            out[real_len >> 3] |= last_tdo << (real_len & 0x07)
        if self.verbose:
            log.debug("tdo %s", out[::-1].hex(" "))
        return bytes(out)

    def buffer_size(self):
        return self.device.buffer_size - 3

    def is_full(self):
        return False

    def flush(self):
        return self.device.write()

    def close(self):
        """Wait for the engine to drain through a loopback echo, then release it."""
        probe = bytes([
            SET_BITS_LOW, 0xFF, 0x00,
            SET_BITS_HIGH, 0xFF, 0x00,
            LOOPBACK_START,
            MPSSE_DO_READ | self._read_mode | MPSSE_DO_WRITE | self._write_mode | MPSSE_LSB,
            0x04, 0x00,
            0xAA, 0x55, 0x00, 0xFF, 0xAA,
            LOOPBACK_END,
        ])
        try:
            self.device.store(probe)
            echo = self.device.read(5)
            if len(echo) != 5:
                log.warning("Loopback failed, expect problems on later runs %d", len(echo))
        finally:
            self.device.close()