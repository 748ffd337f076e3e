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

import struct

import pytest

from click.testing import CliRunner
from blri.main import blri
from blri import blri_version
from blri import header as hdr
from blri import image
from blri import session

# all available blri commands
COMMANDS = [
    "check",
    "dumpinfo",
    "elf2bin",
    "flash",
    "patch",
    "version",
]

UNSET_HASH = bytes([0xef, 0xbe, 0xad, 0xde] * 8)
BOOT_INFO = bytes([1, 0, 0, 0]) + bytes(4) + struct.pack('<I', 0x04 << 14) \
    + bytes([0x11, 0x22, 0x33, 0x44, 0x55, 0x66]) + bytes(6)


def test_new_command():
    """Check that no new commands had been added,
    so that tests would be updated in such case"""
    for cmd in blri.commands:
        assert cmd in COMMANDS


def test_help():
    """Simple test for the blri's help option,
    mostly just to see that it can be started"""
    runner = CliRunner()

    result_short = runner.invoke(blri, ["-h"])
    assert result_short.exit_code == 0

    result_long = runner.invoke(blri, ["--help"])
    assert result_long.exit_code == 0
    assert result_short.output == result_long.output
    for cmd in COMMANDS:
        assert cmd in result_long.output

    # without a command the usage is shown
    result_empty = runner.invoke(blri)
    assert "Usage:" in result_empty.output


def test_version():
    """Check that some version info is produced"""
    runner = CliRunner()

    result = runner.invoke(blri, ["version"])
    assert result.exit_code == 0
    assert result.output == blri_version + "\n"

    result_help = runner.invoke(blri, ["version", "-h"])
    assert result_help.exit_code == 0
    assert result_help.output != result.output


def test_unknown():
    """Check that unknown command will be handled"""
    runner = CliRunner()

    result = runner.invoke(blri, ["unknown"])
    assert result.exit_code != 0


@pytest.mark.parametrize("command", COMMANDS)
def test_cmd_help(command):
    """Check that all commands have some help"""
    runner = CliRunner()

    result_short = runner.invoke(blri, [command, "-h"])
    assert result_short.exit_code == 0

    result_long = runner.invoke(blri, [command, "--help"])
    assert result_long.exit_code == 0

    assert result_short.output == result_long.output


@pytest.mark.parametrize("command1", COMMANDS)
@pytest.mark.parametrize("command2", COMMANDS)
def test_cmd_dif_help(command1, command2):
    """Check that all commands have some different help"""
    runner = CliRunner()

    result_general = runner.invoke(blri, "--help")
    assert result_general.exit_code == 0

    result_cmd1 = runner.invoke(blri, [command1, "--help"])
    assert result_cmd1.exit_code == 0
    assert result_cmd1.output != result_general.output

    if command1 != command2:
        result_cmd2 = runner.invoke(blri, [command2, "--help"])
        assert result_cmd2.exit_code == 0

        assert result_cmd1.output != result_cmd2.output


def test_patch_in_place(make_image):
    path = make_image(hash=UNSET_HASH)
    runner = CliRunner()
    result = runner.invoke(blri, ["patch", str(path)])
    assert result.exit_code == 0
    assert "refill sha256 hash" in result.output
    assert "refill header crc32" in result.output
    assert "patched image saved to {}".format(path) in result.output
    with open(path, "rb") as f:
        assert image.check(f) == []


def test_patch_outfile(make_image, tmp_path):
    path = make_image(hash=UNSET_HASH)
    original = path.read_bytes()
    out = tmp_path / "patched.bin"
    runner = CliRunner()
    result = runner.invoke(blri, ["patch", str(path), str(out)])
    assert result.exit_code == 0
    assert path.read_bytes() == original
    with open(out, "rb") as f:
        assert image.check(f) == []


def test_patch_consistent_image(make_image):
    path = make_image()
    original = path.read_bytes()
    result = CliRunner().invoke(blri, ["patch", str(path)])
    assert result.exit_code == 0
    assert "refill" not in result.output
    assert path.read_bytes() == original


def test_patch_errors(make_image, tmp_path):
    runner = CliRunner()
    result = runner.invoke(blri, ["patch", str(tmp_path / "missing.bin")])
    assert result.exit_code != 0
    assert "Image file not found" in result.output

    path = make_image(magic=0x12345678)
    result = runner.invoke(blri, ["patch", str(path)])
    assert result.exit_code == 1
    assert "incorrect magic number 0x12345678" in result.output

    path = make_image(name="overflow.bin", img_len=0x10000)
    result = runner.invoke(blri, ["patch", str(path)])
    assert result.exit_code == 1


def test_check(make_image):
    runner = CliRunner()
    result = runner.invoke(blri, ["check", str(make_image())])
    assert result.exit_code == 0
    assert "image is consistent" in result.output

    path = make_image(name="stale.bin", flash_crc=0)
    original = path.read_bytes()
    result = runner.invoke(blri, ["check", str(path)])
    assert result.exit_code == 1
    assert "needs patch: refill flash config crc32" in result.output
    assert path.read_bytes() == original


@pytest.fixture
def device(monkeypatch, transport, response):
    """Replace the serial port with a device answering the flash sequence."""
    opened = []

    def make(flash_id=b"\xef\x40\x18", chunks=1):
        t = transport(b"echo")
        for r in [response(BOOT_INFO), response(),
                  response(flash_id + b"\x00"), response(), response()] + \
                [response()] * chunks:
            t.queue(r)

        def open_port(port, baudrate=session.BAUDRATE):
            opened.append((port, baudrate))
            return t
        monkeypatch.setattr(session, "open_port", open_port)
        return t
    make.opened = opened
    return make


def test_flash(device, make_image):
    t = device()
    path = make_image()
    runner = CliRunner()
    result = runner.invoke(blri, ["flash", str(path), "-p", "/dev/ttyUSB0"])
    assert result.exit_code == 0
    assert device.opened == [("/dev/ttyUSB0", session.BAUDRATE)]
    assert "chip id: 665544332211" in result.output
    assert "flash id: EF4018" in result.output
    size = len(path.read_bytes())
    assert "flashing: {}/{}".format(size, size) in result.output
    assert "flashing done." in result.output
    assert t.closed


def test_flash_port_from_environment(device, make_image):
    device()
    runner = CliRunner()
    result = runner.invoke(blri, ["flash", str(make_image()), "-b", "115200"],
                           env={"BLRI_FLASH_PORT": "COM7"})
    assert result.exit_code == 0
    assert device.opened == [("COM7", 115200)]


def test_flash_select_port(device, make_image, monkeypatch):
    device()
    monkeypatch.setattr(session, "available_ports",
                        lambda: ["/dev/ttyS0", "/dev/ttyUSB1"])
    runner = CliRunner()
    result = runner.invoke(blri, ["flash", str(make_image())],
                           input="/dev/ttyUSB1\n")
    assert result.exit_code == 0
    assert device.opened == [("/dev/ttyUSB1", session.BAUDRATE)]


def test_flash_no_ports(device, make_image, monkeypatch):
    device()
    monkeypatch.setattr(session, "available_ports", lambda: [])
    result = CliRunner().invoke(blri, ["flash", str(make_image())])
    assert result.exit_code != 0
    assert "No serial port found" in result.output
    assert device.opened == []


def test_flash_unsupported(device, make_image):
    t = device(flash_id=b"\xc8\x40\x16")
    result = CliRunner().invoke(blri, ["flash", str(make_image()), "-p", "x"])
    assert result.exit_code == 1
    assert "flash id C84016 not supported" in result.output
    assert t.closed


def test_flash_too_large(device, tmp_path):
    device()
    path = tmp_path / "big.bin"
    path.write_bytes(bytes(session.MAX_IMAGE_SIZE + 1))
    result = CliRunner().invoke(blri, ["flash", str(path), "-p", "x"])
    assert result.exit_code == 1
    assert "image too large" in result.output
    assert device.opened == []


def test_flash_missing_file():
    result = CliRunner().invoke(blri, ["flash", "missing.bin", "-p", "x"])
    assert result.exit_code != 0
    assert "Image file not found" in result.output


def test_dumpinfo_unset_fields(make_image):
    path = make_image(crc32=hdr.UNSET_CHECKSUM)
    result = CliRunner().invoke(blri, ["dumpinfo", str(path)])
    assert result.exit_code == 0
    assert "UNSET" in result.output


def test_patch_output_directory_missing(make_image, tmp_path):
    path = make_image(hash=UNSET_HASH)
    original = path.read_bytes()
    out = tmp_path / "nodir" / "patched.bin"
    result = CliRunner().invoke(blri, ["patch", str(path), str(out)])
    assert result.exit_code == 1
    assert "Image file not found" not in result.output
    assert str(out) in result.output
    assert path.read_bytes() == original


def test_patch_input_is_directory(tmp_path):
    result = CliRunner().invoke(blri, ["patch", str(tmp_path)])
    assert result.exit_code == 1
    assert "Image file not found" not in result.output
    assert str(tmp_path) in result.output

