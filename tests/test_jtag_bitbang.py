from fpgaprog.jtag_bitbang import FtdiJtagBitBang, JtagPins
from fpgaprog.mpsse import (
    BITMODE_BITBANG,
    BITMODE_SYNCBB,
    INTERFACE_A,
    TYPE_R,
    CableConfig,
    FtdiTransport,
)

PINS = JtagPins(tck_pin=0x01, tms_pin=0x08, tdi_pin=0x02, tdo_pin=0x04)


class FakeTransport(FtdiTransport):
    """Echoes TDI onto TDO for every pin state written."""

    def __init__(self, packet=64):
        self._packet = packet
        self.writes = []
        self.modes = []
        self.baudrates = []
        self._last = b""

    @property
    def chip_type(self):
        return TYPE_R

    @property
    def max_packet_size(self):
        return self._packet

    @property
    def product(self):
        return "FT232R USB UART"

    def usb_reset(self):
        pass

    def set_bitmode(self, mask, mode):
        self.modes.append(mode)

    def set_baudrate(self, rate):
        self.baudrates.append(rate)

    def purge(self):
        pass

    def set_latency_timer(self, latency):
        pass

    def set_chunk_size(self, size):
        pass

    def write_data(self, data):
        self._last = bytes(data)
        self.writes.append(bytes(data))
        return len(data)

    def read_data(self, size):
        echo = bytes(PINS.tdo_pin if b & PINS.tdi_pin else 0 for b in self._last)
        return echo[:size]

    def close(self):
        pass

    @property
    def data(self):
        return b"".join(self.writes)


def make_probe(pid=0x6001):
    transport = FakeTransport()
    cable = CableConfig(0x0403, pid, INTERFACE_A, 0, 0, 0, 0)
    probe = FtdiJtagBitBang(transport, cable, PINS, 1_000_000)
    transport.writes.clear()
    return probe, transport


def test_clock_is_limited():
    probe, transport = make_probe()
    assert probe.set_clock_freq(5_000_000) == 3_000_000
    assert transport.baudrates[-1] == 3_000_000
    assert probe.clock_hz == 3_000_000


def test_clock_below_limit_is_kept():
    probe, transport = make_probe()
    assert probe.set_clock_freq(1_000) == 1_000
    assert transport.baudrates[-1] == 1_000


def test_construction_ends_in_bitbang_mode():
    _, transport = make_probe()
    assert transport.modes[-1] == BITMODE_BITBANG


def test_write_tms_pin_states():
    probe, transport = make_probe()
    assert probe.write_tms(b"\x05", 3, True) == 3
    p = PINS
    high = p.tdi_pin | p.tms_pin
    low = p.tdi_pin
    assert transport.data == bytes([high, high | p.tck_pin, low, low | p.tck_pin,
                                    high, high | p.tck_pin])


def test_write_tms_without_flush_is_buffered():
    probe, transport = make_probe()
    probe.write_tms(b"\x00", 4, False)
    assert transport.data == b""
    assert probe.flush() == 8
    assert len(transport.data) == 8


def test_write_tms_zero_length():
    probe, transport = make_probe()
    assert probe.write_tms(b"", 0, True) == 0
    assert transport.data == b""


def test_toggle_clk_pin_states():
    probe, transport = make_probe()
    assert probe.toggle_clk(1, 0, 2) == 2
    p = PINS
    assert transport.data == bytes([p.tms_pin | p.tck_pin, p.tms_pin] * 2)


def test_write_tdi_round_trip_through_echo():
    probe, transport = make_probe()
    payload = bytes(range(64))
    assert probe.write_tdi(payload, len(payload) * 8, False, True) == payload
    assert BITMODE_SYNCBB in transport.modes
    assert len(transport.writes) > 1


def test_write_tdi_round_trip_large_fifo():
    probe, _ = make_probe(pid=0x6015)
    payload = bytes([0xA5, 0x3C, 0xFF, 0x00]) * 8
    assert probe.write_tdi(payload, len(payload) * 8, False, True) == payload


def test_write_tdi_without_read():
    probe, transport = make_probe()
    assert probe.write_tdi(b"\xff", 8, False, False) is None
    data = transport.data
    assert len(data) == 16
    assert all(b & PINS.tdi_pin for b in data)
    assert transport.modes[-1] == BITMODE_BITBANG


def test_write_tdi_end_raises_tms_on_last_bit():
    probe, transport = make_probe()
    assert probe.write_tdi(b"\x00", 8, True, False) is None
    p = PINS
    expected = bytes([0, p.tck_pin] * 7 + [p.tms_pin, p.tms_pin | p.tck_pin])
    assert transport.data == expected


def test_write_tdi_zero_length():
    probe, transport = make_probe()
    assert probe.write_tdi(b"", 0, False, True) == b""
    assert transport.data == b""


def test_buffer_state():
    probe, _ = make_probe()
    assert probe.buffer_size() == 256
    assert probe.is_full() is False
    assert probe.flush() == 0