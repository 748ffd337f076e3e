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

import hashlib

import pytest

from blri import header as hdr

# SPI flash parameters with a known CRC32 of 0x482adef8
FLASH_CFG = bytes([
    0x11, 0x00, 0x01, 0x01, 0x66, 0x99, 0xff, 0x03,
    0x9f, 0x00, 0xb7, 0xe9, 0x04, 0x00, 0x00, 0x01,
    0xc7, 0x20, 0x52, 0xd8, 0x06, 0x02, 0x32, 0x00,
    0x0b, 0x01, 0x0b, 0x01, 0x3b, 0x01, 0xbb, 0x00,
    0x6b, 0x01, 0xeb, 0x02, 0xeb, 0x02, 0x02, 0x50,
    0x00, 0x01, 0x00, 0x01, 0x01, 0x00, 0x02, 0x01,
    0x02, 0x01, 0xab, 0x01, 0x05, 0x35, 0x00, 0x00,
    0x01, 0x01, 0x00, 0x00, 0x38, 0xff, 0x20, 0xf0,
    0x77, 0x03, 0x02, 0x40, 0x77, 0x03, 0x02, 0xf0,
    0x2c, 0x01, 0xb0, 0x04, 0xb0, 0x04, 0x32, 0x00,
    0xe8, 0x80, 0x14, 0x00, ])
FLASH_CFG_CRC = 0x482adef8

CLOCK_CFG = bytes([
    0x07, 0x04, 0x00, 0x00, 0x03, 0x01, 0x03, 0x00, 0x01, 0x02,
    0x00, 0x02, 0x01, 0x01, 0x00, 0x01, 0x01, 0x01, 0x01, 0x01, ])


def build_header(payload=b"", img_offset=hdr.HEADER_SIZE, img_len=None,
                 hash=None, crc32=None, flash_crc=None, clock_crc=None,
                 magic=hdr.HEADER_MAGIC):
    """Header for payload; checksums default to their correct values."""
    if img_len is None:
        img_len = len(payload)
    if hash is None:
        hash = hashlib.sha256(payload).digest()
    h = hdr.BootHeader(
        magic=magic,
        revision=1,
        flash_cfg=hdr.FlashConfig(
            hdr.FLASH_CONFIG_MAGIC, FLASH_CFG,
            hdr.crc32(FLASH_CFG) if flash_crc is None else flash_crc),
        clk_cfg=hdr.ClockConfig(
            hdr.CLOCK_CONFIG_MAGIC, CLOCK_CFG,
            hdr.crc32(CLOCK_CFG) if clock_crc is None else clock_crc),
        basic_cfg=hdr.BasicConfig(0x654c0100, img_offset, 0, img_len, hash),
        cpu_cfg=(
            hdr.CpuConfig(1, 0, 0, 0, 0, 0, 0, 0x58000000, 0),
            hdr.CpuConfig(0, 0, 0, 0, 0, 0, 0, 0, 0),
            hdr.CpuConfig(0, 0, 0, 0, 1476722688, 1476657152, 0x42000,
                          0x58040000, 0),
        ),
        boot2_pt_table_0=0,
        boot2_pt_table_1=0,
        flash_cfg_table_addr=0,
        flash_cfg_table_len=0,
        patch_on_read=(hdr.PatchEntry(0, 0),) * 4,
        patch_on_jump=(hdr.PatchEntry(0x20000320, 0x0),
                       hdr.PatchEntry(0x2000f038, 0x18000000),
                       hdr.PatchEntry(0, 0),
                       hdr.PatchEntry(0, 0)),
        reserved=(0,) * 5,
        crc32=0)
    raw = hdr.encode(h)
    if crc32 is None:
        crc32 = hdr.header_crc(raw)
    return h._replace(crc32=crc32)


def build_image(payload=b"", **kwargs):
    h = build_header(payload, **kwargs)
    gap = bytes(max(0, h.basic_cfg.group_image_offset - hdr.HEADER_SIZE))
    return hdr.encode(h) + gap + payload


@pytest.fixture
def make_image(tmp_path):
    """Write a boot image into tmp_path and return its path."""
    def _make(name="image.bin", payload=b"\x13\x00\x00\x00" * 64, **kwargs):
        path = tmp_path / name
        path.write_bytes(build_image(payload, **kwargs))
        return path
    return _make


@pytest.fixture
def header_builder():
    return build_header


@pytest.fixture
def image_builder():
    return build_image


class FakeTransport:
    """Records writes and serves canned responses like serial.Serial."""

    def __init__(self, responses=b""):
        self.written = []
        self.input = bytearray(responses)
        self.pending = bytearray()
        self.closed = False
        self.resets = 0

    def queue(self, data):
        self.pending += data

    def write(self, data):
        self.written.append(bytes(data))
        return len(data)

    def reset_input_buffer(self):
        self.resets += 1
        self.input = bytearray(self.pending)
        self.pending = bytearray()

    def read(self, size=1):
        data = bytes(self.input[:size])
        del self.input[:size]
        return data

    def close(self):
        self.closed = True


def ok(payload=None):
    if payload is None:
        return b"OK"
    return b"OK" + len(payload).to_bytes(2, "little") + payload


@pytest.fixture
def transport():
    return FakeTransport


@pytest.fixture
def response():
    return ok


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("blri.session.time.sleep", lambda s: None)


@pytest.fixture
def reference_flash_config():
    return FLASH_CFG, FLASH_CFG_CRC
