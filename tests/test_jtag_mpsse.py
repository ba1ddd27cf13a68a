import pytest

from fpgaprog.jtag_mpsse import FtdiJtagMpsse
from fpgaprog.mpsse import (
    INTERFACE_A,
    LOOPBACK_START,
    MPSSE_BITMODE,
    MPSSE_DO_READ,
    MPSSE_DO_WRITE,
    MPSSE_LSB,
    MPSSE_READ_NEG,
    MPSSE_WRITE_NEG,
    MPSSE_WRITE_TMS,
    SEND_IMMEDIATE,
    SET_BITS_HIGH,
    SET_BITS_LOW,
    TYPE_2232C,
    TYPE_2232H,
    CableConfig,
    FtdiTransport,
)

TMS_CMD = MPSSE_WRITE_TMS | MPSSE_LSB | MPSSE_BITMODE | MPSSE_WRITE_NEG
WRITE_CMD = MPSSE_LSB | MPSSE_DO_WRITE | MPSSE_WRITE_NEG


class FakeTransport(FtdiTransport):
    def __init__(self, chip=TYPE_2232H, packet=512, product="Dual RS232-HS"):
        self._chip = chip
        self._packet = packet
        self._product = product
        self.writes = []
        self.rx = bytearray()
        self.read_sizes = []
        self.closed = False

    @property
    def chip_type(self):
        return self._chip

    @property
    def max_packet_size(self):
        return self._packet

    @property
    def product(self):
        return self._product

    def usb_reset(self):
        pass

    def set_bitmode(self, mask, mode):
        pass

    def set_baudrate(self, rate):
        pass

    def purge(self):
        pass

    def set_latency_timer(self, latency):
        pass

    def set_chunk_size(self, size):
        pass

    def write_data(self, data):
        self.writes.append(bytes(data))
        return len(data)

    def read_data(self, size):
        self.read_sizes.append(size)
        if self.rx:
            chunk = bytes(self.rx[:size])
            del self.rx[:size]
            return chunk
        return bytes(size)

    def close(self):
        self.closed = True

    @property
    def data(self):
        return b"".join(self.writes)

    def reset_log(self):
        self.writes.clear()
        self.read_sizes.clear()


def make_probe(**kwargs):
    invert = kwargs.pop("invert_read_edge", False)
    transport = FakeTransport(**kwargs)
    cable = CableConfig(0x0403, 0x6010, INTERFACE_A, 0x08, 0x0B, 0x00, 0x00)
    probe = FtdiJtagMpsse(transport, cable, 1_000_000, invert_read_edge=invert)
    transport.reset_log()
    return probe, transport


def test_write_tms_single_bit():
    probe, transport = make_probe()
    assert probe.write_tms(b"\x01", 1, True) == 1
    assert transport.data == bytes([TMS_CMD, 0x00, 0x81])


def test_write_tms_splits_in_groups_of_six():
    probe, transport = make_probe()
    assert probe.write_tms(b"\x7f", 7, True) == 7
    data = transport.data
    assert data[0] == TMS_CMD and data[1] == 5
    assert data[3] == TMS_CMD and data[4] == 0
    assert data[2] & 0x3F == 0x3F and data[5] & 0x01 == 1


def test_write_tms_without_flush_stays_buffered():
    probe, transport = make_probe()
    probe.write_tms(b"\x00", 3, False)
    assert transport.data == b""
    assert probe.flush() == 3


def test_write_tms_zero_length():
    probe, transport = make_probe()
    assert probe.write_tms(b"", 0, True) == 0
    assert transport.data == b""


def test_write_tms_rejects_short_buffer():
    probe, _ = make_probe()
    with pytest.raises(ValueError):
        probe.write_tms(b"\x00", 9, True)


def test_toggle_clk_uses_clock_commands_on_h_chips():
    probe, transport = make_probe()
    assert probe.toggle_clk(0, 0, 16) == 16
    probe.flush()
    assert transport.data == bytes([0x8F, 0x01, 0x00])


def test_toggle_clk_short_run():
    probe, transport = make_probe()
    probe.toggle_clk(0, 0, 5)
    probe.flush()
    assert transport.data == bytes([0x8E, 0x04])


def test_toggle_clk_large_run():
    probe, transport = make_probe()
    assert probe.toggle_clk(0, 0, 0x10000 * 8 + 3) == 0x10000 * 8 + 3
    probe.flush()
    assert transport.data == bytes([0x8F, 0xFF, 0xFF, 0x8E, 0x02])


def test_toggle_clk_falls_back_to_tms_on_older_chips():
    probe, transport = make_probe(chip=TYPE_2232C)
    assert probe.toggle_clk(1, 0, 3) == 3
    probe.flush()
    data = transport.data
    assert data[:2] == bytes([TMS_CMD, 2])
    assert data[2] & 0x07 == 0x07


def test_write_tdi_bytes_with_read():
    probe, transport = make_probe()
    transport.rx += b"\xab\xcd"
    result = probe.write_tdi(b"\x12\x34", 16, False, True)
    assert result == b"\xab\xcd"
    cmd = WRITE_CMD | MPSSE_DO_READ
    assert transport.data == bytes([cmd, 0x01, 0x00, 0x12, 0x34, SEND_IMMEDIATE])


def test_write_tdi_single_byte_uses_bit_command():
    probe, transport = make_probe()
    assert probe.write_tdi(b"\xa5", 8, False, False) is None
    assert transport.data == bytes([WRITE_CMD | MPSSE_BITMODE, 7, 0xA5])


def test_write_tdi_end_sends_last_bit_with_tms():
    probe, transport = make_probe()
    probe.write_tdi(b"\x80", 8, True, False)
    data = transport.data
    assert data[:3] == bytes([WRITE_CMD | MPSSE_BITMODE, 6, 0x80])
    assert data[3:] == bytes([TMS_CMD, 0x00, 0x81])


def test_write_tdi_end_with_read_places_last_bit():
    probe, transport = make_probe()
    transport.rx += b"\xe0\x80"
    assert probe.write_tdi(b"\x00", 4, True, True) == b"\x0f"


def test_write_tdi_read_only_returns_zeros_when_line_low():
    probe, transport = make_probe()
    result = probe.write_tdi(None, 24, False, True)
    assert result == bytes(3)
    assert transport.data[0] == MPSSE_LSB | MPSSE_DO_READ


def test_write_tdi_chunks_by_buffer_size():
    probe, transport = make_probe(packet=16)
    payload = bytes(range(30))
    probe.write_tdi(payload, 240, False, False)
    expected = (bytes([WRITE_CMD, 12, 0]) + payload[:13]
                + bytes([WRITE_CMD, 12, 0]) + payload[13:26]
                + bytes([WRITE_CMD, 3, 0]) + payload[26:])
    assert transport.data == expected


def test_write_tdi_end_needs_a_bit():
    probe, _ = make_probe()
    with pytest.raises(ValueError):
        probe.write_tdi(None, 0, True, False)


def test_invert_read_edge_flag():
    probe, transport = make_probe(invert_read_edge=True)
    result = probe.write_tdi(None, 8, False, True)
    assert result == b"\x00"
    cmd = MPSSE_LSB | MPSSE_DO_READ | MPSSE_READ_NEG | MPSSE_BITMODE
    assert transport.data[:2] == bytes([cmd, 7])


def test_digilent_high_speed_reads_on_falling_edge():
    probe, transport = make_probe(product="Digilent USB Device")
    probe.write_tdi(None, 8, False, True)
    assert not transport.data[0] & MPSSE_READ_NEG
    assert probe.set_clock_freq(30_000_000) == 30_000_000
    assert probe.clock_hz == 30_000_000
    transport.reset_log()
    probe.write_tdi(None, 8, False, True)
    assert transport.data[0] & MPSSE_READ_NEG


def test_ch552_workaround_drains_reads():
    probe, transport = make_probe(product="Sipeed-Debug")
    probe.write_tdi(b"\x01\x02", 16, False, False)
    assert transport.read_sizes == [2]


def test_buffer_size_and_full_state():
    probe, _ = make_probe(packet=64)
    assert probe.buffer_size() == 61
    assert probe.is_full() is False


def test_close_sends_loopback_and_releases():
    probe, transport = make_probe()
    with probe:
        pass
    assert transport.closed is True
    assert transport.data[:7] == bytes([SET_BITS_LOW, 0xFF, 0x00,
                                        SET_BITS_HIGH, 0xFF, 0x00, LOOPBACK_START])
    assert 5 in transport.read_sizes