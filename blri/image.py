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
Boot image validation and repair.
"""

import hashlib
import logging
import os
import os.path
import shutil
import struct

from intelhex import IntelHex

from . import header as hdr
from .header import ImageFormatError

INTEL_HEX_EXT = "hex"

_log = logging.getLogger(__name__)


class ImageOffsetOverflowError(ImageFormatError):
    def __init__(self, file_length, wrong_image_offset, wrong_image_length):
        self.file_length = file_length
        self.wrong_image_offset = wrong_image_offset
        self.wrong_image_length = wrong_image_length
        super().__init__(
            "file length is only {}, but offset is {} and image length is "
            "{}".format(file_length, wrong_image_offset, wrong_image_length))


class Sha256ChecksumError(ImageFormatError):
    def __init__(self, wrong_checksum):
        self.wrong_checksum = wrong_checksum
        super().__init__(
            "wrong sha256 verification: {}".format(wrong_checksum.hex()))


class Crc32ChecksumError(ImageFormatError):
    def __init__(self, field, wrong_crc):
        self.field = field
        self.wrong_crc = wrong_crc
        super().__init__(
            "{} mismatch, found 0x{:08x}".format(field, wrong_crc))


class RepairOperation:
    """Overwrite one checksum field of the boot header."""
    offset = None
    name = None

    def __init__(self, value):
        self.value = value

    def encode(self):
        return struct.pack('<I', self.value)

    def apply(self, f):
        f.seek(self.offset)
        f.write(self.encode())

    def __eq__(self, other):
        return type(self) is type(other) and self.value == other.value

    def __repr__(self):
        return "<{} offset=0x{:x} value={}>".format(
            self.__class__.__name__, self.offset, self.describe_value())

    def describe_value(self):
        return "0x{:08x}".format(self.value)

    def describe(self):
        return "refill {} at 0x{:x} with {}".format(
            self.name, self.offset, self.describe_value())


class RefillFlashConfigCrc(RepairOperation):
    offset = hdr.FLASH_CONFIG_CRC_OFFSET
    name = "flash config crc32"


class RefillClockConfigCrc(RepairOperation):
    offset = hdr.CLOCK_CONFIG_CRC_OFFSET
    name = "clock config crc32"


class RefillHash(RepairOperation):
    offset = hdr.HASH_OFFSET
    name = "sha256 hash"

    def encode(self):
        return bytes(self.value[:hdr.HASH_SIZE])

    def describe_value(self):
        return self.value.hex()


class RefillHeaderCrc(RepairOperation):
    offset = hdr.HEADER_CRC_OFFSET
    name = "header crc32"


def _file_length(f):
    pos = f.tell()
    length = f.seek(0, os.SEEK_END)
    f.seek(pos)
    return length


def check(f):
    """Check an image without modifying it, returning the repair operations
    needed to make it self-consistent.

    An empty list means nothing has to be fixed.
    """
    file_length = _file_length(f)

    f.seek(0)
    raw = f.read(hdr.HEADER_SIZE)
    header = hdr.decode(raw)

    offset = header.basic_cfg.group_image_offset
    length = header.basic_cfg.img_len_cnt
    if offset + length > file_length:
        raise ImageOffsetOverflowError(file_length, offset, length)

    ops = []

    crc = hdr.flash_config_crc(header)
    stored = header.flash_cfg.crc32
    if stored != crc and not hdr.is_unset(stored):
        _log.debug("flash config crc32 0x%08x, expected 0x%08x",
                   stored, crc)
        ops.append(RefillFlashConfigCrc(crc))

    crc = hdr.clock_config_crc(header)
    stored = header.clk_cfg.crc32
    if stored != crc and not hdr.is_unset(stored):
        _log.debug("clock config crc32 0x%08x, expected 0x%08x",
                   stored, crc)
        ops.append(RefillClockConfigCrc(crc))

    f.seek(offset)
    sha = hashlib.sha256()
    remaining = length
    while remaining > 0:
        chunk = f.read(min(remaining, 0x10000))
        if not chunk:
            break
        sha.update(chunk)
        remaining -= len(chunk)
    digest = sha.digest()
    if digest != header.basic_cfg.hash:
        _log.debug("stored hash %s, calculated %s",
                   header.basic_cfg.hash.hex(), digest.hex())
        ops.append(RefillHash(digest))

    # The header CRC covers the fields refilled above. An unset header CRC
    # is left alone unless the header is being rewritten anyway.
    buf = bytearray(raw)
    for op in ops:
        buf[op.offset:op.offset + len(op.encode())] = op.encode()
    crc = hdr.header_crc(buf)
    if header.crc32 != crc and (ops or not hdr.is_unset(header.crc32)):
        _log.debug("header crc32 0x%08x, expected 0x%08x", header.crc32, crc)
        ops.append(RefillHeaderCrc(crc))

    return ops


def process(f, ops):
    """Apply repair operations to a file opened for reading and writing."""
    for op in ops:
        _log.debug("%s", op.describe())
        op.apply(f)


def same_file(a, b):
    try:
        return os.path.samefile(a, b)
    except OSError:
        return os.path.realpath(a) == os.path.realpath(b)


def _settle(f):
    remaining = check(f)
    for op in remaining:
        if isinstance(op, RefillHash):
            f.seek(hdr.HASH_OFFSET)
            raise Sha256ChecksumError(f.read(hdr.HASH_SIZE))
        f.seek(op.offset)
        raise Crc32ChecksumError(op.name, struct.unpack('<I', f.read(4))[0])


def patch_image(infile, outfile=None):
    """Check infile and write a repaired copy to outfile.

    Without outfile, or when both name the same file, the image is patched
    in place. Nothing is written if the image cannot be repaired. Returns
    the applied operations.
    """
    if outfile is None:
        outfile = infile

    with open(infile, 'rb') as f:
        ops = check(f)

    if not same_file(infile, outfile):
        shutil.copyfile(infile, outfile)

    with open(outfile, 'r+b') as f:
        process(f, ops)
        f.flush()
        _settle(f)
    return ops


def load_image(path):
    """Read image bytes from a raw binary or an Intel HEX file."""
    ext = os.path.splitext(path)[1][1:].lower()
    if ext == INTEL_HEX_EXT:
        return IntelHex(path).tobinstr()
    with open(path, 'rb') as f:
        return f.read()
