"""Table of known SPI flash chips keyed by JEDEC id."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class TbLocation(IntEnum):
    """Register holding the TOP/BOTTOM protection bit."""

    STATR = 0   # status register
    FUNCR = 1   # function register
    CONFR = 2   # configuration register
    NONER = 99  # no such register


@dataclass(frozen=True)
class FlashInfo:
    """Capabilities and protection layout of one flash chip."""

    manufacturer: str
    model: str
    nr_sector: int
    sector_erase: bool
    subsector_erase: bool
    has_extended: bool
    tb_otp: bool
    tb_offset: int
    tb_register: TbLocation
    bp_len: int
    bp_offset: tuple


_BP3 = (1 << 2, 1 << 3, 1 << 4, 0)
_BP4 = (1 << 2, 1 << 3, 1 << 4, 1 << 5)
_BP4_MICRON = (1 << 2, 1 << 3, 1 << 4, 1 << 6)

_FLASHES = {
    0x010216: FlashInfo("spansion", "S25FL064P / EPCS64", 128, True, True, True,
                        False, 1 << 5, TbLocation.CONFR, 3, _BP3),
    0x010219: FlashInfo("spansion", "S25FL256S", 512, True, False, True,
                        True, 1 << 5, TbLocation.CONFR, 3, _BP3),
    0x012018: FlashInfo("spansion", "S25FL128S", 256, True, False, True,
                        True, 1 << 5, TbLocation.CONFR, 3, _BP3),
    0x016019: FlashInfo("spansion", "S25FL256L", 512, True, False, True,
                        False, 1 << 6, TbLocation.STATR, 4, _BP4),
    0x0020BA16: FlashInfo("micron", "N25Q32", 64, True, True, True,
                          False, 1 << 5, TbLocation.STATR, 3, _BP3),
    0x0020BA18: FlashInfo("micron", "N25Q128", 256, True, True, True,
                          False, 1 << 5, TbLocation.STATR, 4, _BP4_MICRON),
    0x0020BA19: FlashInfo("micron", "N25Q256", 512, True, True, True,
                          False, 1 << 5, TbLocation.STATR, 4, _BP4_MICRON),
    0xBF258D: FlashInfo("microchip", "SST25VF040B", 8, True, True, False,
                        False, 0, TbLocation.NONER, 4, _BP4),
    0xBF2642: FlashInfo("microchip", "SST26VF032B", 64, False, True, False,
                        False, 0, TbLocation.NONER, 0, (0, 0, 0, 0)),
    0x9D6016: FlashInfo("ISSI", "IS25LP032", 64, True, True, False,
                        True, 1 << 1, TbLocation.FUNCR, 4, _BP4),
    0x9D6017: FlashInfo("ISSI", "IS25LP064", 128, True, True, False,
                        True, 1 << 1, TbLocation.FUNCR, 4, _BP4),
    0x9D6018: FlashInfo("ISSI", "IS25LP128", 256, True, True, False,
                        True, 1 << 1, TbLocation.FUNCR, 4, _BP4),
    0xEF4015: FlashInfo("Winbond", "W25Q16", 32, True, True, False,
                        False, 1 << 5, TbLocation.STATR, 3, _BP3),
    0xEF4016: FlashInfo("Winbond", "W25Q32", 64, True, True, False,
                        False, 1 << 5, TbLocation.STATR, 3, _BP3),
    0xEF4017: FlashInfo("Winbond", "W25Q64", 128, True, True, False,
                        False, 1 << 5, TbLocation.STATR, 3, _BP3),
    0xEF4018: FlashInfo("Winbond", "W25Q128", 256, True, True, False,
                        False, 1 << 5, TbLocation.STATR, 3, _BP3),
}


def lookup_flash(jedec_id):
    """Return the FlashInfo for ``jedec_id``; raise KeyError if unknown."""
    try:
        return _FLASHES[jedec_id]
    except KeyError:
        raise KeyError(f"unknown flash id 0x{jedec_id:06x}") from None