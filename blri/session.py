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
ISP session over a serial port, and the flash provisioning sequence.
"""

import logging
import time
from enum import Enum

import serial
from serial.tools import list_ports

from . import flash_table
from . import isp

BAUDRATE = 2000000
TIMEOUT = 1
USB_INIT = b"BOUFFALOLAB5555RESET\0\x01"
SYNC = bytes([0x55] * 300)
HANDSHAKE = bytes([
    0x50, 0x00, 0x08, 0x00,
    0x38, 0xf0, 0x00, 0x20,
    0x00, 0x00, 0x00, 0x18, ])
MAX_IMAGE_SIZE = 0xffff

_log = logging.getLogger(__name__)

State = Enum('State', ['DISCONNECTED', 'HANDSHAKING', 'READY', 'SENDING',
                       'AWAITING_RESPONSE'])


class IspStateError(isp.IspError):
    def __init__(self, state):
        self.state = state
        super().__init__("session is not ready ({})".format(state.name))


class UnsupportedFlashError(isp.IspError):
    def __init__(self, jedec_id):
        self.jedec_id = bytes(jedec_id)
        super().__init__("flash id {} not supported"
                         .format(self.jedec_id.hex().upper()))


class ImageTooLargeError(isp.IspError):
    def __init__(self, length):
        self.length = length
        super().__init__("image too large, {} bytes exceeds {}"
                         .format(length, MAX_IMAGE_SIZE))


def available_ports():
    return sorted(p.device for p in list_ports.comports())


def open_port(port, baudrate=BAUDRATE):
    try:
        return serial.Serial(port, baudrate, timeout=TIMEOUT,
                             write_timeout=TIMEOUT)
    except serial.SerialException as e:
        raise isp.IspIoError("cannot open {}: {}".format(port, e)) from e


class IspSession:
    """Owns a serial transport talking to the ROM bootloader.

    The transport needs read(), write() and reset_input_buffer(), as
    provided by serial.Serial. The handshake runs on construction.
    """

    def __init__(self, transport):
        self.transport = transport
        self.state = State.DISCONNECTED
        self.handshake()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        if self.state != State.DISCONNECTED:
            self.state = State.DISCONNECTED
            self.transport.close()

    def handshake(self):
        self.state = State.HANDSHAKING
        _log.debug("sending reset marker")
        isp.write_all(self.transport, USB_INIT)
        time.sleep(0.05)
        _log.debug("sending sync sequence")
        isp.write_all(self.transport, SYNC)
        time.sleep(0.3)
        _log.debug("sending handshake")
        isp.write_all(self.transport, HANDSHAKE)
        time.sleep(0.1)
        # Drop echoes of what was sent above.
        isp.reset_input(self.transport)
        self.state = State.READY

    def send(self, command):
        """Send one command and return its parsed response."""
        if self.state != State.READY:
            raise IspStateError(self.state)
        payload = command.payload()
        header = isp.encode_header(command.COMMAND, payload)
        _log.debug("%r: %s %d bytes", command, header.hex(), len(payload))
        self.state = State.SENDING
        try:
            isp.write_all(self.transport, header + payload)
            self.state = State.AWAITING_RESPONSE
            data = isp.read_response(self.transport, command.RESPONSE_PAYLOAD)
        finally:
            self.state = State.READY
        return command.parse_response(data)

    def get_boot_info(self):
        return self.send(isp.GetBootInfo())

    def set_flash_pin(self, flash_pin):
        return self.send(isp.SetFlashPin(flash_pin))

    def read_flash_id(self):
        return self.send(isp.ReadFlashId())

    def set_flash_config(self, config, flash_pin=None):
        return self.send(isp.SetFlashConfig(config, flash_pin))

    def erase_flash(self, start, end):
        return self.send(isp.EraseFlash(start, end))

    def write_flash(self, data, progress=None):
        """Write data from flash offset 0 in CHUNK_SIZE pieces.

        progress, if given, is called with (bytes_written, total) after
        every chunk.
        """
        total = len(data)
        offset = 0
        while offset < total:
            chunk = data[offset:offset + isp.CHUNK_SIZE]
            self.send(isp.WriteFlash(offset, chunk))
            offset += len(chunk)
            if progress is not None:
                progress(offset, total)


def check_image_size(data):
    if len(data) > MAX_IMAGE_SIZE:
        raise ImageTooLargeError(len(data))


def provision(session, data, progress=None, report=None):
    """Identify the flash, erase it and write data.

    report, if given, is called with a line of text for every identified
    part.
    """
    check_image_size(data)
    boot_info = session.get_boot_info()
    line = "chip id: {}, flash info: {:08X}, flash pin: {:02X}".format(
        boot_info.chip_id_hex(), boot_info.flash_info_from_boot,
        boot_info.flash_pin())
    if report is not None:
        report(line)

    session.set_flash_pin(boot_info.flash_pin())

    jedec_id = session.read_flash_id()
    line = "flash id: {}".format(jedec_id.hex().upper())
    if report is not None:
        report(line)
    config = flash_table.lookup(jedec_id)
    if config is None:
        raise UnsupportedFlashError(jedec_id)
    session.set_flash_config(config, boot_info.flash_pin())

    session.erase_flash(0, len(data))
    session.write_flash(data, progress)


def flash(transport, data, progress=None, report=None):
    """Run the handshake on transport and provision data.

    Oversized images are rejected before anything is written.
    """
    check_image_size(data)
    try:
        s = IspSession(transport)
    except BaseException:
        transport.close()
        raise
    with s:
        provision(s, data, progress, report)
