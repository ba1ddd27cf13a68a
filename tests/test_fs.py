import pytest

from fpgaprog.bitstream import ParseError, reverse_byte
from fpgaprog.fs import FsParser, bits_to_value


def _bits(*values):
    return "".join(f"{v:08b}" for v in values)


IDCODE_GW1N1 = _bits(0x06, 0, 0, 0, 0x09, 0x00, 0x28, 0x1B)
LAST_CRC_LEN2 = _bits(0x3B, 0x80, 0x00, 0x02)
TRAILER = [0xFF] * 8


def _text(lines):
    return "\n".join(lines) + "\n"


def _simple(extra=()):
    return _text([
        "//Gowin bitstream",
        IDCODE_GW1N1,
        LAST_CRC_LEN2,
        _bits(0x00, 0x01, 0x00, 0x02, *TRAILER),
        _bits(0x00, 0x03, 0x00, 0x00, *TRAILER),
        *extra,
    ])


def test_bits_to_value():
    assert bits_to_value("1010") == 10
    assert bits_to_value("") == 0
    assert bits_to_value("1x1") == 5


def test_header_fields():
    parser = FsParser(_simple())
    parser.parse()
    assert parser.header_value("idcode") == "0900281b"
    assert parser.header_value("CRCCheck") == "ON"
    assert parser.header_value("ConfDataLength") == "2"
    assert parser.idcode == 0x0900281B


def test_checksum_simple():
    parser = FsParser(_simple())
    parser.parse()
    assert parser.checksum == 6


def test_lines_beyond_conf_length_ignored():
    base = FsParser(_simple())
    base.parse()
    extended = FsParser(_simple([_bits(0x12, 0x34, 0x56, 0x78, *TRAILER)]))
    extended.parse()
    assert extended.checksum == base.checksum


def test_trailer_does_not_affect_checksum():
    text_a = _simple()
    text_b = text_a.replace(_bits(*TRAILER), _bits(*([0x00] * 8)))
    a, b = FsParser(text_a), FsParser(text_b)
    a.parse()
    b.parse()
    assert a.checksum == b.checksum


def test_data_skips_comments_and_keeps_header():
    parser = FsParser(_simple())
    parser.parse()
    assert bytes(parser.data[:8]) == bytes([0x06, 0, 0, 0, 0x09, 0x00, 0x28, 0x1B])
    assert parser.bit_length == len(parser.data) * 8


def test_reverse_mode_reverses_each_byte():
    plain, rev = FsParser(_simple()), FsParser(_simple(), reverse=True)
    plain.parse()
    rev.parse()
    assert list(rev.data) == [reverse_byte(b) for b in plain.data]
    assert rev.checksum == plain.checksum


def test_missing_conf_length_raises():
    with pytest.raises(ParseError):
        FsParser(_text([IDCODE_GW1N1])).parse()


def test_unknown_idcode_gives_zero_checksum():
    text = _text([
        _bits(0x06, 0, 0, 0, 0x7F, 0x7F, 0x7F, 0x7F),
        LAST_CRC_LEN2,
        _bits(0x00, 0x01, 0x00, 0x02, *TRAILER),
    ])
    parser = FsParser(text)
    parser.parse()
    assert parser.checksum == 0


def test_compressed_matches_uncompressed():
    idcode = _bits(0x06, 0, 0, 0, 0x00, 0x00, 0x08, 0x1B)
    last = _bits(0x3B, 0x00, 0x00, 0x01)
    compressed = FsParser(_text([
        idcode,
        _bits(0x10, 0x00, 0x20, 0x00),
        _bits(0x51, 0xAA, 0xBB, 0xCC),
        last,
        _bits(0xCC, 0x00, 0x05, *([0xFF] * 6)),
    ]))
    plain = FsParser(_text([
        idcode,
        _bits(0x10, 0x00, 0x00, 0x00),
        last,
        _bits(0x00, 0x00, 0x00, 0x05, *([0xFF] * 6)),
    ]))
    compressed.parse()
    plain.parse()
    assert compressed.header_value("Compress") == "ON"
    assert plain.header_value("Compress") == "OFF"
    assert compressed.checksum == plain.checksum == 5


def test_from_file(tmp_path):
    path = tmp_path / "design.fs"
    path.write_text(_simple())
    parser = FsParser.from_file(path)
    parser.parse()
    assert parser.header_value("idcode") == "0900281b"