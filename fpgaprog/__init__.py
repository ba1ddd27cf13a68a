"""FPGA bitstream parsers, an SPI flash table and FTDI MPSSE, JTAG and SPI transports."""

__version__ = "0.1.0"