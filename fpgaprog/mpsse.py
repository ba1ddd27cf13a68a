"""Command buffering, clock setup and GPIO access for FTDI MPSSE engines."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace

log = logging.getLogger(__name__)

# MPSSE opcodes
SET_BITS_LOW = 0x80
GET_BITS_LOW = 0x81
SET_BITS_HIGH = 0x82
GET_BITS_HIGH = 0x83
LOOPBACK_START = 0x84
LOOPBACK_END = 0x85
TCK_DIVISOR = 0x86
SEND_IMMEDIATE = 0x87
DIS_DIV_5 = 0x8A
EN_DIV_5 = 0x8B

# shift command flags
MPSSE_WRITE_NEG = 0x01
MPSSE_BITMODE = 0x02
MPSSE_READ_NEG = 0x04
MPSSE_LSB = 0x08
MPSSE_DO_WRITE = 0x10
MPSSE_DO_READ = 0x20
MPSSE_WRITE_TMS = 0x40

# bit modes
BITMODE_RESET = 0x00
BITMODE_BITBANG = 0x01
BITMODE_MPSSE = 0x02
BITMODE_SYNCBB = 0x04

# chip types
TYPE_AM = "AM"
TYPE_BM = "BM"
TYPE_2232C = "2232C"
TYPE_R = "R"
TYPE_2232H = "2232H"
TYPE_4232H = "4232H"
TYPE_232H = "232H"
TYPE_230X = "230X"

# interfaces
INTERFACE_ANY = 0
INTERFACE_A = 1
INTERFACE_B = 2
INTERFACE_C = 3
INTERFACE_D = 4

_OPEN_BAUDRATE = 115200


class MpsseError(RuntimeError):
    """Raised when the FTDI device does not accept a transfer."""


class FtdiTransport(ABC):
    """An opened FTDI interface: the low-level operations the engine relies on.

    Implementations raise an exception when an operation fails.
    """

    @property
    @abstractmethod
    def chip_type(self):
        """Chip family, one of the ``TYPE_*`` constants."""

    @property
    @abstractmethod
    def max_packet_size(self):
        """USB maximum packet size of the interface."""

    @property
    @abstractmethod
    def product(self):
        """USB iProduct string of the device."""

    @abstractmethod
    def usb_reset(self):
        """Reset the device."""

    @abstractmethod
    def set_bitmode(self, mask, mode):
        """Select the bit mode with ``mask`` as output pins."""

    @abstractmethod
    def set_baudrate(self, rate):
        """Set the baud rate."""

    @abstractmethod
    def purge(self):
        """Flush the receive and transmit buffers."""

    @abstractmethod
    def set_latency_timer(self, latency):
        """Set the latency timer in milliseconds."""

    @abstractmethod
    def set_chunk_size(self, size):
        """Set the read and write chunk sizes."""

    @abstractmethod
    def write_data(self, data):
        """Write ``data``; return the number of bytes written."""

    @abstractmethod
    def read_data(self, size):
        """Read up to ``size`` bytes; return what was read."""

    @abstractmethod
    def close(self):
        """Release the device."""


@dataclass
class CableConfig:
    """USB ids, interface and default pin values and directions of a cable."""

    vid: int
    pid: int
    interface: int
    bit_low_val: int
    bit_low_dir: int
    bit_high_val: int
    bit_high_dir: int


def _format_freq(hz, integral):
    if hz >= 1e6:
        return f"{hz / 1e6:2.2f}MHz"
    if hz >= 1e3:
        return f"{hz / 1e3:3.2f}KHz"
    if integral:
        return f"{int(hz):3d}.00Hz"
    return f"{hz:3.2f}Hz"


class Mpsse:
    """Buffered MPSSE command stream over an FTDI transport."""

    def __init__(self, transport, cable, clock_hz, verbose=False):
        self.transport = transport
        self.cable = replace(cable)
        self.clock_hz = clock_hz
        self.verbose = verbose
        self.transport.set_baudrate(_OPEN_BAUDRATE)
        self.buffer_size = transport.max_packet_size
        self.product = transport.product
        self._buffer = bytearray()

    @property
    def vid(self):
        return self.cable.vid

    @property
    def pid(self):
        return self.cable.pid

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def init(self, latency, bitmask, mode):
        """Reset the device and put it in ``mode`` with pins from the cable."""
        t = self.transport
        t.usb_reset()
        t.set_bitmode(0x00, BITMODE_RESET)
        t.purge()
        t.set_latency_timer(latency)
        t.set_bitmode(bitmask, mode)
        if mode == BITMODE_MPSSE:
            t.read_data(5)
            self.set_clock(self.clock_hz)
            cmd = [SET_BITS_LOW, self.cable.bit_low_val & 0xFF,
                   self.cable.bit_low_dir & 0xFF]
            if t.chip_type != TYPE_4232H:
                cmd += [SET_BITS_HIGH, self.cable.bit_high_val & 0xFF,
                        self.cable.bit_high_dir & 0xFF]
            self.store(bytes(cmd))
            self.write()
        t.set_chunk_size(self.buffer_size)

    def set_clock(self, hz):
        """Program the TCK divisor closest to ``hz`` without exceeding it.

        Returns the frequency actually obtained.
        """
        if hz <= 0:
            raise ValueError("clock frequency must be positive")
        requested = hz
        if self.transport.chip_type != TYPE_2232C:
            base_freq = 60_000_000
            if hz > 6_000_000:
                use_divide_by_5 = False
                self.store(DIS_DIV_5)
            else:
                use_divide_by_5 = True
                base_freq //= 5
                self.store(EN_DIV_5)
        else:
            base_freq = 12_000_000
            use_divide_by_5 = False

        if use_divide_by_5:
            if hz > 6_000_000:
                log.warning("Jtag probe limited to 6MHz")
                hz = 6_000_000
        elif hz > 30_000_000:
            log.warning("Jtag probe limited to 30MHz")
            hz = 30_000_000

        presc = (((base_freq // hz) - 1) // 2) & 0xFFFF
        real_freq = base_freq // ((1 + presc) * 2)
        if real_freq > hz:
            presc = (presc + 1) & 0xFFFF
        real_freq = base_freq // ((1 + presc) * 2)

        log.info("Jtag frequency : requested %s -> real %s",
                 _format_freq(requested, True), _format_freq(real_freq, False))
        if self.verbose:
            log.debug("presc : %d input freq : %u requested freq : %u real freq : %f",
                      presc, base_freq, hz, float(real_freq))

        self.store(bytes([TCK_DIVISOR, presc & 0xFF, (presc >> 8) & 0xFF]))
        self.write()
        self.transport.read_data(4)
        self.transport.purge()

        self.clock_hz = real_freq
        return real_freq

    def store(self, data):
        """Append a byte or bytes to the command buffer, flushing when full."""
        if isinstance(data, int):
            data = bytes([data & 0xFF])
        data = bytes(data)
        size = self.buffer_size
        if len(self._buffer) + len(data) > size:
            if len(self._buffer) == size:
                self.write()
            while len(self._buffer) + len(data) > size:
                room = size - len(self._buffer)
                self._buffer += data[:room]
                self.write()
                data = data[room:]
        self._buffer += data

    def write(self):
        """Send the buffered commands; return the number of bytes sent."""
        if not self._buffer:
            return 0
        if self.verbose:
            log.debug("write %d", len(self._buffer))
        pending = len(self._buffer)
        written = self.transport.write_data(bytes(self._buffer))
        if written != pending:
            raise MpsseError(f"write failed: {written} of {pending} bytes sent")
        self._buffer.clear()
        return written

    def read(self, length):
        """Flush pending commands and read exactly ``length`` bytes."""
        self.store(SEND_IMMEDIATE)
        self.write()
        received = bytearray()
        while len(received) < length:
            chunk = self.transport.read_data(length - len(received))
            received += chunk
        return bytes(received)

    def gpio_get(self):
        """Read both pin banks; the high bank is in the upper byte."""
        self.store(bytes([GET_BITS_LOW, GET_BITS_HIGH]))
        rx = self.read(2)
        return (rx[1] << 8) | rx[0]

    def gpio_get_bank(self, low):
        """Read the low or high pin bank."""
        self.store(GET_BITS_LOW if low else GET_BITS_HIGH)
        return self.read(1)[0]

    def _bank_write(self, low):
        if low:
            cmd = (SET_BITS_LOW, self.cable.bit_low_val, self.cable.bit_low_dir)
        else:
            cmd = (SET_BITS_HIGH, self.cable.bit_high_val, self.cable.bit_high_dir)
        self.store(bytes(v & 0xFF for v in cmd))

    def gpio_set(self, pins):
        """Drive high the pins of the 16-bit mask ``pins``."""
        if pins & 0x00FF:
            self.cable.bit_low_val |= pins & 0xFF
            self._bank_write(True)
        if pins & 0xFF00:
            self.cable.bit_high_val |= (pins >> 8) & 0xFF
            self._bank_write(False)
        self.write()

    def gpio_set_bank(self, pins, low):
        """Drive high the pins of one bank."""
        if low:
            self.cable.bit_low_val |= pins & 0xFF
        else:
            self.cable.bit_high_val |= pins & 0xFF
        self._bank_write(low)
        self.write()

    def gpio_clear(self, pins):
        """Drive low the pins of the 16-bit mask ``pins``."""
        if pins & 0x00FF:
            self.cable.bit_low_val &= ~(pins & 0xFF) & 0xFF
            self._bank_write(True)
        if pins & 0xFF00:
            self.cable.bit_high_val &= ~((pins >> 8) & 0xFF) & 0xFF
            self._bank_write(False)
        self.write()

    def gpio_clear_bank(self, pins, low):
        """Drive low the pins of one bank."""
        if low:
            self.cable.bit_low_val &= ~pins & 0xFF
        else:
            self.cable.bit_high_val &= ~pins & 0xFF
        self._bank_write(low)
        self.write()

    def gpio_write(self, value):
        """Set the state of all sixteen pins."""
        self.cable.bit_low_val = value & 0xFF
        self.cable.bit_high_val = (value >> 8) & 0xFF
        self._bank_write(True)
        self._bank_write(False)
        self.write()

    def gpio_write_bank(self, value, low):
        """Set the state of the eight pins of one bank."""
        if low:
            self.cable.bit_low_val = value & 0xFF
        else:
            self.cable.bit_high_val = value & 0xFF
        self._bank_write(low)
        self.write()

    def gpio_set_dir(self, direction):
        """Set pin directions (1 out, 0 in) of both banks; nothing is sent."""
        self.cable.bit_low_dir = direction & 0xFF
        self.cable.bit_high_dir = (direction >> 8) & 0xFF

    def gpio_set_dir_bank(self, direction, low):
        """Set pin directions of one bank; nothing is sent."""
        if low:
            self.cable.bit_low_dir = direction & 0xFF
        else:
            self.cable.bit_high_dir = direction & 0xFF

    def gpio_set_input(self, pins):
        """Make the pins of the 16-bit mask inputs; nothing is sent."""
        if pins & 0x00FF:
            self.cable.bit_low_dir &= ~(pins & 0xFF) & 0xFF
        if pins & 0xFF00:
            self.cable.bit_high_dir &= ~((pins >> 8) & 0xFF) & 0xFF

    def gpio_set_output(self, pins):
        """Make the pins of the 16-bit mask outputs; nothing is sent."""
        if pins & 0x00FF:
            self.cable.bit_low_dir |= pins & 0xFF
        if pins & 0xFF00:
            self.cable.bit_high_dir |= (pins >> 8) & 0xFF

    def close(self):
        """Return the device to reset mode and release it."""
        self.transport.set_bitmode(0, BITMODE_RESET)
        self.transport.usb_reset()
        self.transport.purge()
        self.transport.close()