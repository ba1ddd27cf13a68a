# fpgaprog

Building blocks for FPGA programming tools:

- **Bitstream parsers**, all built on `fpgaprog.bitstream.BitstreamParser`:
  - Efinix `.hex` files (`fpgaprog.bitstream.EfinixHexParser`)
  - Intel HEX files, grouped into contiguous sections (`fpgaprog.ihex.IhexParser`)
  - Gowin `.fs` files, with header fields and a configuration data checksum (`fpgaprog.fs.FsParser`)
  - JEDEC `.jed` fuse maps, with fuse checksum verification (`fpgaprog.jed.JedParser`)
  - MachXO3D `.fea` feature row files (`fpgaprog.fea.FeaParser`)
- **SPI flash database**: look up a flash chip by its JEDEC id with `fpgaprog.flashdb.lookup_flash`.
- **FTDI transports**:
  - an MPSSE command engine with clock setup and GPIO access (`fpgaprog.mpsse.Mpsse`)
  - JTAG over MPSSE (`fpgaprog.jtag_mpsse.FtdiJtagMpsse`) or over bitbang mode (`fpgaprog.jtag_bitbang.FtdiJtagBitBang`), both implementing `fpgaprog.jtag_interface.JtagInterface`
  - an SPI master with software chip select (`fpgaprog.ftdi_spi.FtdiSpi`)

## Installation

```
pip install .
```

## Parsing a bitstream

Each parser is built from the file content (`bytes` or `str`) or with the
`from_file(path)` class method, then filled in by `parse()`. After parsing,
`data` holds the configuration bytes and `bit_length` their size in bits.

```python
from fpgaprog.fs import FsParser

parser = FsParser.from_file("design.fs")
parser.parse()
print(parser.header_value("idcode"))
print(hex(parser.checksum))
```

```python
from fpgaprog.ihex import IhexParser

parser = IhexParser.from_file("firmware.ihx")
parser.parse()
for section in parser.sections:
    print(hex(section.addr), section.length)
```

`JedParser.describe()` and `FeaParser.describe()` return a readable summary
of what was parsed. Parsers raise `fpgaprog.bitstream.ParseError` when a file
is malformed or, for `.jed` files, when the checksum or fuse count does not
match.

## Looking up a flash chip

```python
from fpgaprog.flashdb import lookup_flash

info = lookup_flash(0xEF4018)
print(info.manufacturer, info.model, info.nr_sector)
```

An unknown id raises `KeyError`.

## Talking to an FTDI device

The FTDI classes reach the device through an `fpgaprog.mpsse.FtdiTransport`
object that you supply: a subclass implementing `chip_type`,
`max_packet_size`, `product`, `usb_reset`, `set_bitmode`, `set_baudrate`,
`purge`, `set_latency_timer`, `set_chunk_size`, `write_data`, `read_data` and
`close`. A cable is described by `fpgaprog.mpsse.CableConfig`.

```python
from fpgaprog.ftdi_spi import FtdiSpi

spi = FtdiSpi(transport)                 # FT2232 interface B by default
jedec_id = spi.spi_put(0x9F, read_len=3)  # command byte, then three bytes read
```

```python
from fpgaprog.jtag_mpsse import FtdiJtagMpsse

with FtdiJtagMpsse(transport, cable, 6_000_000) as jtag:
    jtag.write_tms(b"\x1f", 5, True)
    tdo = jtag.write_tdi(b"\x00\x00\x00\x00", 32, True, True)
```

Transfer failures raise `fpgaprog.mpsse.MpsseError`; `FtdiSpi.spi_wait`
raises `fpgaprog.ftdi_spi.SpiTimeoutError` when the polled status never
matches.

## What this package does not do

- It has no USB backend: opening a device is left to your `FtdiTransport`.
- It has no JTAG state machine, no SPI flash programming routines and no
  per-FPGA programming flows; it provides the parsers and transports such
  tools are built on.
- It has no command-line program.

## Running the tests

```
pip install .[test]
pytest
```