"""Reader for MachXO3D feature row files (``.fea``)."""

from __future__ import annotations

from fpgaprog.bitstream import BitstreamParser, ParseError

# FEAbits
FEA_I2C_DG_FIL_EN = 1 << 0
FEA_MY_ASSP_EN = 1 << 4
FEA_PROG_PERSIST = 1 << 5
FEA_INITN_PERSIST = 1 << 6
FEA_DONE_PERSIST = 1 << 7
FEA_JTAG_PERSIST = 1 << 8
FEA_SSPI_PERSIST = 1 << 9
FEA_I2C_PERSIST = 1 << 10
FEA_MSPI_PERSIST = 1 << 11
FEA_I2C_DG_RANGE_SEL = 1 << 15
FEA_VERSION_RB_PROT = 1 << 16

# Feature row, upper word
FEATURE_SFDP_CONT_FAIL = 1 << 14
FEATURE_SFDP_EN = 1 << 15
FEATURE_BULK_ERASE_DISABLE = 1 << 16
FEATURE_32BIT_SPIM = 1 << 17
FEATURE_MCLK_BYPASS = 1 << 18
FEATURE_LSBF = 1 << 19
FEATURE_RX_EDGE = 1 << 20
FEATURE_TX_EDGE = 1 << 21
FEATURE_CPOL = 1 << 22
FEATURE_CPHA = 1 << 23
FEATURE_EBR_ENABLE = 1 << 26
FEATURE_SSPI_AUTO = 1 << 28
FEATURE_CPU = 1 << 29

_ENABLED = ("Disabled", "Enabled")
_YES = ("No", "Yes")
_DEGLITCH = ("(0) 8 to 25 ns", "(1) 16 to 50 ns")

_BOOT_INTERNAL = {
    0: "Dual Boot, CFG0 - CFG1",
    1: "Dual Boot, CFG1 - CFG0",
    3: "Single Boot, CFG0",
    4: "Single Boot, CFG1",
    5: "Dual Boot, Boot from former bitstream first",
    7: "Dual Boot, Boot from latter bitstream first",
}


def _boot_mode(feabits):
    mode = (feabits >> 12) & 0x07
    if not feabits & FEA_MSPI_PERSIST:
        if mode in _BOOT_INTERNAL:
            return _BOOT_INTERNAL[mode] + "\n"
        if mode & 0x03 == 2:
            return "Dual Boot, No Boot\n"
    else:
        if mode == 0:
            return "Dual Boot, CFG0 - Ext\n"
        if mode & 0x03 == 1:
            return "Single Boot, Ext\n"
        if mode == 2:
            return "Dual Boot, Ext - CFG0\n"
        if mode & 0x03 == 3:
            return "Dual Boot, Ext - Ext\n"
        if mode == 4:
            return "Dual Boot, CFG1 - Ext\n"
        if mode == 6:
            return "Dual Boot, Ext - CFG1\n"
    return "Unknown boot sequence selection"


def _flash_protection(feabits):
    prot = (feabits >> 1) & 0x07
    if prot == 0:
        return "None\n"
    parts = []
    if prot & 0x04:
        parts.append("CFG0 & CFG1 ")
    if prot & 0x02:
        parts.append("Feature, Security Keys ")
    if prot & 0x01:
        parts.append("All UFMs")
    return "".join(parts) + "\n"


def _check_bits(line):
    if any(ch not in "01" for ch in line):
        raise ParseError(f"invalid bit string: {line!r}")


class FeaParser(BitstreamParser):
    """Parse the 96-bit feature row and 32-bit FEAbits of a ``.fea`` file."""

    def __init__(self, raw, verbose=False):
        super().__init__(raw, verbose)
        self.features_row = (0, 0, 0)
        self.feabits = 0
        self.has_feabits = False

    def _bit_lines(self):
        lines = []
        for line in self.raw.split("\n"):
            if not line:
                break
            if line.endswith("\r"):
                line = line[:-1]
            if line[:1] in ("0", "1"):
                lines.append(line)
        return lines

    def parse(self):
        lines = self._bit_lines()
        if not lines:
            return
        if len(lines) < 2:
            raise ParseError("feature row and FEAbits lines are both required")

        row_bits, fea_bits = lines[0], lines[1]
        _check_bits(row_bits)
        _check_bits(fea_bits)
        if len(row_bits) > 96:
            raise ParseError("feature row longer than 96 bits")
        if len(fea_bits) > 32:
            raise ParseError("FEAbits longer than 32 bits")

        row = [0, 0, 0]
        for position, ch in enumerate(row_bits):
            if ch == "1":
                row[2 - position // 32] |= 1 << (31 - position % 32)
        self.features_row = tuple(row)
        self.feabits = int(fea_bits, 2)
        self.has_feabits = True

    def describe(self):
        """Return a human-readable decoding of the feature row and FEAbits."""
        if not self.has_feabits:
            return ""
        r0, r1, r2 = self.features_row
        fb = self.feabits

        out = [
            f"\nFeature Row: [0x{r2:08x}{r1:08x}{r0:08x}]\n",
            f"\tCore Clock Select     : 0x{(r2 >> 30) & 0x03:x}\n",
            f"\tCPU                   : {1 if r2 & FEATURE_CPU else 0}\n",
            f"\tSSPI Auto             : {_ENABLED[bool(r2 & FEATURE_SSPI_AUTO)]}\n",
            f"\tReserved Zero (1)     : 0x{(r2 >> 27) & 0x01:x}\n",
            f"\tEBR Enable            : {_YES[bool(r2 & FEATURE_EBR_ENABLE)]}\n",
            f"\tHSE Clock Select      : 0x{(r2 >> 24) & 0x03:x}\n",
            f"\tCPHA                  : {_ENABLED[bool(r2 & FEATURE_CPHA)]}\n",
            f"\tCPOL                  : {_ENABLED[bool(r2 & FEATURE_CPOL)]}\n",
            f"\tTx Edge               : {_ENABLED[bool(r2 & FEATURE_TX_EDGE)]}\n",
            f"\tRx Edge               : {_ENABLED[bool(r2 & FEATURE_RX_EDGE)]}\n",
            f"\tLSBF                  : {_ENABLED[bool(r2 & FEATURE_LSBF)]}\n",
            f"\tMClock Bypass         : {_ENABLED[bool(r2 & FEATURE_MCLK_BYPASS)]}\n",
            f"\t32-bit SPIM           : {_ENABLED[bool(r2 & FEATURE_32BIT_SPIM)]}\n",
            f"\tBulk Erase Disable    : {_YES[bool(r2 & FEATURE_BULK_ERASE_DISABLE)]}\n",
            f"\tSFDP Enable           : {_YES[bool(r2 & FEATURE_SFDP_EN)]}\n",
            f"\tSFDP Continue on Fail : {_YES[bool(r2 & FEATURE_SFDP_CONT_FAIL)]}\n",
            f"\tReserved Zero (2)     : 0x{(r2 >> 12) & 0x03:x}\n",
            f"\tSlave Idle Timer Count: {(r2 >> 8) & 0x0F}\n",
            f"\tMaster Timer Count    : {(r2 >> 4) & 0x0F}\n",
            f"\tMaster Retry Count    : {(r2 >> 2) & 0x03}\n",
            f"\tReserved Zero (2)     : 0x{r2 & 0x03:x}\n",
            f"\tDual Boot Address     : 0x{(r1 >> 16) & 0xFFFF:x}\n",
            f"\tI2C Slave Address     : 0x{(r1 >> 8) & 0xFF:x}\n",
            f"\tCustom Trace ID       : 0x{r1 & 0xFF:x}\n",
            f"\tCustom ID Code        : 0x{r0:x}\n",
            f"\nFEAbits: [0x{fb:08x}]\n",
            f"\tReserved Zero (16)\t: 0x{(fb >> 17) & 0xFFFF:x}\n",
            f"\tRollback Protection   : {_ENABLED[bool(fb & FEA_VERSION_RB_PROT)]}\n",
            f"\tI2C Deglitch Range\t: {_DEGLITCH[bool(fb & FEA_I2C_DG_RANGE_SEL)]}\n",
            "\tBoot Mode             : " + _boot_mode(fb),
            f"\tMSPI Enable          : {_YES[bool(fb & FEA_MSPI_PERSIST)]}\n",
            f"\tI2C Disable          : {_YES[bool(fb & FEA_I2C_PERSIST)]}\n",
            f"\tSSPI Disable         : {_YES[bool(fb & FEA_SSPI_PERSIST)]}\n",
            f"\tJTAG Disable         : {_YES[bool(fb & FEA_JTAG_PERSIST)]}\n",
            f"\tDONE Enable          : {_YES[bool(fb & FEA_DONE_PERSIST)]}\n",
            f"\tINIT Enable          : {_YES[bool(fb & FEA_INITN_PERSIST)]}\n",
            f"\tPROGRAM Disable      : {_YES[bool(fb & FEA_PROG_PERSIST)]}\n",
            f"\tCustom ID Enable     : {_YES[bool(fb & FEA_MY_ASSP_EN)]}\n",
            "\tFlash Protection     : " + _flash_protection(fb),
            f"\tI2C Deglitch Filter   : {_ENABLED[bool(fb & FEA_I2C_DG_FIL_EN)]}\n",
        ]
        return "".join(out)