"""SPI master on an FTDI MPSSE engine with software chip select."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import IntEnum

from fpgaprog.mpsse import (
    BITMODE_MPSSE,
    INTERFACE_B,
    MPSSE_DO_READ,
    MPSSE_DO_WRITE,
    MPSSE_READ_NEG,
    MPSSE_WRITE_NEG,
    CableConfig,
    Mpsse,
)

log = logging.getLogger(__name__)

# Cable used when none is given: FT2232 interface B.
DEFAULT_CABLE = CableConfig(0x403, 0x6010, INTERFACE_B, 0x08, 0x0B, 0x08, 0x0B)

_DEFAULT_CS = 1 << 3
_DEFAULT_SCK = 1 << 0
_WRITE_ONLY_CHUNK = 4096


@dataclass(frozen=True)
class SpiPins:
    """Pin masks of the SPI signals; zero keeps the default."""

    cs_pin: int = 0
    sck_pin: int = 0
    holdn_pin: int = 0
    wpn_pin: int = 0


class CsMode(IntEnum):
    """Chip select handling: around each transfer, or by the caller."""

    AUTO = 0
    MANUAL = 1


class SpiTimeoutError(TimeoutError):
    """Raised when a polled status never reaches the expected value."""

    def __init__(self, message, status):
        super().__init__(message)
        self.status = status


class FtdiSpi:
    """SPI transfers through MPSSE shift commands, MSB first.

    Modes follow the usual convention: 0 and 1 idle the clock low, 2 and 3
    idle it high; 0 and 2 sample on the first edge, 1 and 3 on the second.
    """

    def __init__(self, transport, cable=None, pins=None, clock_hz=6_000_000, verbose=False):
        pins = pins if pins is not None else SpiPins()
        self.verbose = verbose
        self.device = Mpsse(transport, cable if cable is not None else DEFAULT_CABLE,
                            clock_hz, verbose)
        self.cs_bits = pins.cs_pin or _DEFAULT_CS
        self.clk = pins.sck_pin or _DEFAULT_SCK
        self.holdn = pins.holdn_pin
        self.wpn = 0
        if pins.wpn_pin:
            # the write-protect pin shares the hold slot
            self.holdn = pins.wpn_pin
        self.cs = 0
        self.clk_idle = 0
        self.wr_mode = 0
        self.rd_mode = 0
        self.cs_mode = CsMode.AUTO

        free_pins = self.cs_bits | self.holdn | self.wpn
        self.device.gpio_set_output(free_pins)
        self.device.gpio_set(free_pins)

        self.set_mode(0)
        self.cs_mode = CsMode.AUTO
        self.device.init(1, 0x00, BITMODE_MPSSE)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.device.close()

    def set_mode(self, mode):
        """Select SPI mode 0 to 3 and drive the clock to its idle level."""
        if mode == 0:
            self.clk_idle, self.wr_mode, self.rd_mode = 0, MPSSE_WRITE_NEG, 0
        elif mode == 1:
            self.clk_idle, self.wr_mode, self.rd_mode = 0, 0, MPSSE_READ_NEG
        elif mode == 2:
            self.clk_idle, self.wr_mode, self.rd_mode = self.clk, 0, MPSSE_READ_NEG
        elif mode == 3:
            self.clk_idle, self.wr_mode, self.rd_mode = self.clk, MPSSE_WRITE_NEG, 0
        else:
            raise ValueError(f"invalid SPI mode {mode!r}")
        if self.clk_idle:
            self.device.gpio_set(self.clk)
        else:
            self.device.gpio_clear(self.clk)

    def _conf_cs(self, high):
        # the state is sent twice to give the chip select some hold time
        for _ in range(2):
            if high:
                self.device.gpio_set(self.cs_bits)
            else:
                self.device.gpio_clear(self.cs_bits)

    def set_cs(self):
        """Release chip select (drive it high)."""
        self.cs = self.cs_bits
        self._conf_cs(True)

    def clear_cs(self):
        """Assert chip select (drive it low)."""
        self.cs = 0
        self._conf_cs(False)

    @contextmanager
    def _manual_cs(self):
        self.cs_mode = CsMode.MANUAL
        self.clear_cs()
        try:
            yield
        finally:
            self.set_cs()
            self.cs_mode = CsMode.AUTO

    def transfer(self, tx, read_len=0):
        """Shift ``tx`` out and/or ``read_len`` bytes in, full duplex.

        When both are given ``read_len`` must equal ``len(tx)``.  Returns the
        bytes read, or None when nothing is read.
        """
        if tx is not None:
            tx = bytes(tx)
            if read_len and read_len != len(tx):
                raise ValueError("full-duplex transfer needs read_len == len(tx)")
            length = len(tx)
        else:
            length = read_len
        reading = read_len > 0
        dev = self.device
        max_xfer = dev.buffer_size if reading else _WRITE_ONLY_CHUNK

        cmd = 0
        if reading:
            cmd |= MPSSE_DO_READ | self.rd_mode
        if tx is not None:
            cmd |= MPSSE_DO_WRITE | self.wr_mode

        if self.cs_mode == CsMode.AUTO:
            self.clear_cs()
        dev.write()

        received = bytearray()
        pos = 0
        while pos < length:
            size = min(length - pos, max_xfer)
            frame = bytearray([cmd, (size - 1) & 0xFF, ((size - 1) >> 8) & 0xFF])
            if tx is not None:
                frame += tx[pos:pos + size]
            dev.store(frame)
            if reading:
                received += dev.read(size)
            else:
                dev.write()
            pos += size

        if self.cs_mode == CsMode.AUTO:
            self.set_cs()
        return bytes(received) if reading else None

    def write_then_read(self, tx, read_len):
        """Write ``tx`` then read ``read_len`` bytes under one chip select."""
        with self._manual_cs():
            self.transfer(tx, 0)
            return self.transfer(None, read_len)

    def spi_put(self, cmd, tx=None, read_len=0):
        """Send ``cmd`` followed by ``tx`` (or zeros); return the bytes after cmd."""
        if tx is not None:
            tx = bytes(tx)
            if read_len and read_len != len(tx):
                raise ValueError("read_len must match the length of tx")
            length = len(tx)
        else:
            length = read_len
            tx = bytes(length)
        frame = bytes([cmd & 0xFF]) + tx
        rx = self.transfer(frame, length + 1 if read_len else 0)
        return rx[1:] if rx is not None else None

    def spi_put_raw(self, tx, read_len=0):
        """Transfer ``tx`` as is; return what was read, if anything."""
        return self.transfer(tx, read_len)

    def spi_wait(self, cmd, mask, cond, timeout, verbose=False):
        """Send ``cmd`` then poll its answer until ``answer & mask == cond``.

        Returns the last status read; raises SpiTimeoutError after
        ``timeout`` reads.
        """
        count = 0
        rx = 0
        with self._manual_cs():
            self.transfer(bytes([cmd & 0xFF]))
            while True:
                rx = self.transfer(None, 1)[0]
                count += 1
                if count == timeout:
                    log.warning("timeout: %02x %d", rx, count)
                    break
                if verbose:
                    log.info("%02x %02x %02x %02x", rx, mask, cond, count)
                if rx & mask == cond:
                    break
        if count == timeout:
            raise SpiTimeoutError(f"wait: status 0x{rx:02x} never matched", rx)
        return rx