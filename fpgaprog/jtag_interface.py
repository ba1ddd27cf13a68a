"""Abstract access to a JTAG probe: TMS/TDI shifting and clocking."""

from __future__ import annotations

from abc import ABC, abstractmethod


class JtagInterface(ABC):
    """Operations a JTAG state machine needs from a probe.

    Bit buffers are bytes-like objects holding bits LSB first: bit ``i``
    is ``(data[i >> 3] >> (i & 7)) & 1``.
    """

    clock_hz = 0

    @abstractmethod
    def set_clock_freq(self, hz):
        """Set the TCK frequency; return the frequency actually used."""

    @abstractmethod
    def write_tms(self, tms, length, flush_buffer):
        """Shift ``length`` TMS bits; return the number of bits sent."""

    @abstractmethod
    def write_tdi(self, tx, length, end, read):
        """Shift ``length`` TDI bits (zeros when ``tx`` is None).

        When ``end`` is true the last bit is sent with TMS high, leaving the
        shift state.  Return the TDO bits as bytes when ``read`` is true,
        otherwise None.
        """

    @abstractmethod
    def toggle_clk(self, tms, tdi, count):
        """Generate ``count`` clock cycles with fixed TMS and TDI levels."""

    @abstractmethod
    def buffer_size(self):
        """Return the size of the internal buffer in bytes."""

    @abstractmethod
    def is_full(self):
        """Return True when the internal buffer is full."""

    @abstractmethod
    def flush(self):
        """Send what is buffered; return the number of bytes sent."""