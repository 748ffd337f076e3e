# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
ROM boot header encoding and decoding.
"""

import struct
import zlib
from collections import namedtuple

HEADER_SIZE = 0x160
HEADER_MAGIC = 0x504e4642        # "BFNP"
FLASH_CONFIG_MAGIC = 0x47464346  # "FCFG"
CLOCK_CONFIG_MAGIC = 0x47464350  # "PCFG"

# Checksums holding this value have not been computed yet.
UNSET_CHECKSUM = 0xdeadbeef

FLASH_CONFIG_OFFSET = 0x08
FLASH_CONFIG_SIZE = 84
FLASH_CONFIG_CRC_OFFSET = FLASH_CONFIG_OFFSET + 4 + FLASH_CONFIG_SIZE
CLOCK_CONFIG_OFFSET = 0x64
CLOCK_CONFIG_SIZE = 20
CLOCK_CONFIG_CRC_OFFSET = CLOCK_CONFIG_OFFSET + 4 + CLOCK_CONFIG_SIZE
BASIC_CONFIG_OFFSET = 0x80
IMAGE_OFFSET_OFFSET = 0x84
IMAGE_LENGTH_OFFSET = 0x8c
HASH_OFFSET = 0x90
HASH_SIZE = 32
CPU_CONFIG_OFFSET = 0xb0
CPU_COUNT = 3
PATCH_COUNT = 4
RESERVED_COUNT = 5
HEADER_CRC_OFFSET = 0x15c

FlashConfig = namedtuple('FlashConfig', ['magic', 'cfg', 'crc32'])
ClockConfig = namedtuple('ClockConfig', ['magic', 'cfg', 'crc32'])
BasicConfig = namedtuple('BasicConfig', ['flag', 'group_image_offset',
                                         'aes_region_len', 'img_len_cnt',
                                         'hash'])
CpuConfig = namedtuple('CpuConfig', ['config_enable', 'halt_cpu',
                                     'cache_flags', 'rsvd', 'cache_range_h',
                                     'cache_range_l', 'image_address_offset',
                                     'boot_entry', 'msp_val'])
PatchEntry = namedtuple('PatchEntry', ['addr', 'value'])

BootHeader = namedtuple('BootHeader', ['magic', 'revision', 'flash_cfg',
                                       'clk_cfg', 'basic_cfg', 'cpu_cfg',
                                       'boot2_pt_table_0', 'boot2_pt_table_1',
                                       'flash_cfg_table_addr',
                                       'flash_cfg_table_len', 'patch_on_read',
                                       'patch_on_jump', 'reserved', 'crc32'])

FLASH_CONFIG_FMT = ('<' +
                    'I' +                          # Magic
                    '{}s'.format(FLASH_CONFIG_SIZE) +  # SPI flash parameters
                    'I')                           # CRC32
CLOCK_CONFIG_FMT = ('<' +
                    'I' +                          # Magic
                    '{}s'.format(CLOCK_CONFIG_SIZE) +  # PLL parameters
                    'I')                           # CRC32
BASIC_CONFIG_FMT = ('<' +
                    'I' +      # Flag
                    'I' +      # GroupImageOffset
                    'I' +      # AesRegionLen
                    'I' +      # ImgLenCnt
                    '32s')     # Hash
CPU_CONFIG_FMT = ('<' +
                  'BBBB' +     # Enable, halt, cache flags, reserved
                  'I' +        # CacheRangeH
                  'I' +        # CacheRangeL
                  'I' +        # ImageAddressOffset
                  'I' +        # BootEntry
                  'I')         # MspVal
PATCH_ENTRY_FMT = '<II'

assert struct.calcsize(FLASH_CONFIG_FMT) == 92
assert struct.calcsize(CLOCK_CONFIG_FMT) == 28
assert struct.calcsize(BASIC_CONFIG_FMT) == 48
assert struct.calcsize(CPU_CONFIG_FMT) == 24
assert struct.calcsize(PATCH_ENTRY_FMT) == 8


class ImageFormatError(Exception):
    """Base class for boot image format errors."""


class MagicNumberError(ImageFormatError):
    def __init__(self, wrong_magic):
        self.wrong_magic = wrong_magic
        super().__init__(
            "incorrect magic number 0x{:08x}".format(wrong_magic))


class HeadLengthError(ImageFormatError):
    def __init__(self, wrong_length):
        self.wrong_length = wrong_length
        super().__init__(
            "file is too short to include an image header, should include "
            "{} bytes but only {}".format(HEADER_SIZE, wrong_length))


class FlashConfigMagicError(ImageFormatError):
    def __init__(self, wrong_magic):
        self.wrong_magic = wrong_magic
        super().__init__(
            "incorrect flash config magic 0x{:08x}".format(wrong_magic))


class ClockConfigMagicError(ImageFormatError):
    def __init__(self, wrong_magic):
        self.wrong_magic = wrong_magic
        super().__init__(
            "incorrect clock config magic 0x{:08x}".format(wrong_magic))


def crc32(data):
    """CRC-32/ISO-HDLC of data."""
    return zlib.crc32(data) & 0xffffffff


def is_unset(checksum):
    return checksum == UNSET_CHECKSUM


def decode(b):
    """Decode the boot header at the start of b.

    The header magic is checked first, then the total length, then the
    flash and clock configuration magics. No checksum is verified here.
    """
    if len(b) >= 4:
        magic = struct.unpack_from('<I', b, 0)[0]
        if magic != HEADER_MAGIC:
            raise MagicNumberError(magic)
    if len(b) < HEADER_SIZE:
        raise HeadLengthError(len(b))

    magic, revision = struct.unpack_from('<II', b, 0)

    flash_cfg = FlashConfig._make(
        struct.unpack_from(FLASH_CONFIG_FMT, b, FLASH_CONFIG_OFFSET))
    if flash_cfg.magic != FLASH_CONFIG_MAGIC:
        raise FlashConfigMagicError(flash_cfg.magic)

    clk_cfg = ClockConfig._make(
        struct.unpack_from(CLOCK_CONFIG_FMT, b, CLOCK_CONFIG_OFFSET))
    if clk_cfg.magic != CLOCK_CONFIG_MAGIC:
        raise ClockConfigMagicError(clk_cfg.magic)

    basic_cfg = BasicConfig._make(
        struct.unpack_from(BASIC_CONFIG_FMT, b, BASIC_CONFIG_OFFSET))

    off = CPU_CONFIG_OFFSET
    cpu_cfg = []
    for _ in range(CPU_COUNT):
        cpu_cfg.append(CpuConfig._make(
            struct.unpack_from(CPU_CONFIG_FMT, b, off)))
        off += struct.calcsize(CPU_CONFIG_FMT)

    tables = struct.unpack_from('<IIII', b, off)
    off += 16

    patches = []
    for _ in range(PATCH_COUNT * 2):
        patches.append(PatchEntry._make(
            struct.unpack_from(PATCH_ENTRY_FMT, b, off)))
        off += struct.calcsize(PATCH_ENTRY_FMT)

    reserved = struct.unpack_from('<{}I'.format(RESERVED_COUNT), b, off)
    off += 4 * RESERVED_COUNT
    assert off == HEADER_CRC_OFFSET
    header_crc = struct.unpack_from('<I', b, off)[0]

    return BootHeader(magic=magic,
                      revision=revision,
                      flash_cfg=flash_cfg,
                      clk_cfg=clk_cfg,
                      basic_cfg=basic_cfg,
                      cpu_cfg=tuple(cpu_cfg),
                      boot2_pt_table_0=tables[0],
                      boot2_pt_table_1=tables[1],
                      flash_cfg_table_addr=tables[2],
                      flash_cfg_table_len=tables[3],
                      patch_on_read=tuple(patches[:PATCH_COUNT]),
                      patch_on_jump=tuple(patches[PATCH_COUNT:]),
                      reserved=tuple(reserved),
                      crc32=header_crc)


def encode(header):
    """Serialize a BootHeader back into its HEADER_SIZE bytes."""
    buf = bytearray(struct.pack('<II', header.magic, header.revision))
    buf += struct.pack(FLASH_CONFIG_FMT, *header.flash_cfg)
    buf += struct.pack(CLOCK_CONFIG_FMT, *header.clk_cfg)
    buf += struct.pack(BASIC_CONFIG_FMT, *header.basic_cfg)
    for cpu in header.cpu_cfg:
        buf += struct.pack(CPU_CONFIG_FMT, *cpu)
    buf += struct.pack('<IIII',
                       header.boot2_pt_table_0,
                       header.boot2_pt_table_1,
                       header.flash_cfg_table_addr,
                       header.flash_cfg_table_len)
    for patch in header.patch_on_read + header.patch_on_jump:
        buf += struct.pack(PATCH_ENTRY_FMT, *patch)
    buf += struct.pack('<{}I'.format(RESERVED_COUNT), *header.reserved)
    buf += struct.pack('<I', header.crc32)
    assert len(buf) == HEADER_SIZE
    return bytes(buf)


def flash_config_crc(header):
    return crc32(header.flash_cfg.cfg)


def clock_config_crc(header):
    return crc32(header.clk_cfg.cfg)


def header_crc(b):
    """CRC32 over every header byte preceding the trailing CRC field."""
    return crc32(bytes(b[:HEADER_CRC_OFFSET]))
