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
Packet framing and commands of the ROM serial ISP protocol.

Every request is a 4 byte header (command, checksum, little endian length)
followed by the payload. Every response starts with a two character status;
commands carrying a response payload follow an "OK" status with a little
endian length and that many bytes.
"""

import logging
import struct
from collections import namedtuple
from enum import Enum

import serial

MAX_PAYLOAD = 0xffff
CHUNK_SIZE = 4096

GET_BOOT_INFO = 0x10
ERASE_FLASH = 0x30
WRITE_FLASH = 0x31
READ_FLASH_ID = 0x36
SET_FLASH_CONFIG = 0x3b

FLASH_PIN_CONFIG = 0x00014100
BOOT_INFO_SIZE = 24
FLASH_ID_RESPONSE_SIZE = 4

_log = logging.getLogger(__name__)

Status = Enum('Status', ['OK', 'PENDING', 'FAILED', 'UNKNOWN'])

STATUS_CODES = {
    b'OK': Status.OK,
    b'PD': Status.PENDING,
    b'FL': Status.FAILED,
}

DeviceStatus = namedtuple('DeviceStatus', ['kind', 'raw'])


class IspError(Exception):
    """Base class for ISP protocol errors."""


class PendingError(IspError):
    def __init__(self):
        super().__init__("device is busy, operation still pending")


class FailedError(IspError):
    def __init__(self):
        super().__init__("device rejected the operation")


class UnknownStatusError(IspError):
    def __init__(self, raw):
        self.raw = bytes(raw)
        super().__init__("unknown response status {}".format(self.raw.hex()))


class ResponseLengthError(IspError):
    def __init__(self, wrong_length):
        self.wrong_length = wrong_length
        super().__init__("wrong response length: {}".format(wrong_length))


class IspIoError(IspError):
    """Transport failure; the underlying exception is chained."""


def checksum(payload):
    """Wrapping 8-bit sum of the two length bytes and the payload."""
    length = len(payload)
    return ((length & 0xff) + (length >> 8) + sum(payload)) & 0xff


def encode_header(command, payload):
    if len(payload) > MAX_PAYLOAD:
        raise ValueError("payload of {} bytes does not fit in a packet"
                         .format(len(payload)))
    return struct.pack('<BBH', command, checksum(payload), len(payload))


def decode_status(raw):
    return DeviceStatus(STATUS_CODES.get(bytes(raw), Status.UNKNOWN),
                        bytes(raw))


def read_exact(transport, size):
    try:
        data = transport.read(size)
    except (serial.SerialException, OSError) as e:
        raise IspIoError("read failed: {}".format(e)) from e
    if len(data) != size:
        raise IspIoError("timed out, expected {} bytes but got {}"
                         .format(size, len(data)))
    return data


def write_all(transport, data):
    try:
        transport.write(data)
    except (serial.SerialException, OSError) as e:
        raise IspIoError("write failed: {}".format(e)) from e


def reset_input(transport):
    try:
        transport.reset_input_buffer()
    except (serial.SerialException, OSError) as e:
        raise IspIoError("input reset failed: {}".format(e)) from e


def read_response(transport, payload_expected):
    status = decode_status(read_exact(transport, 2))
    _log.debug("status %r", status.raw)
    if status.kind == Status.PENDING:
        raise PendingError()
    elif status.kind == Status.FAILED:
        raise FailedError()
    elif status.kind == Status.UNKNOWN:
        raise UnknownStatusError(status.raw)
    if not payload_expected:
        return b''
    length = struct.unpack('<H', read_exact(transport, 2))[0]
    return read_exact(transport, length)


class IspCommand:
    COMMAND = None
    RESPONSE_PAYLOAD = False

    def payload(self):
        return b''

    def parse_response(self, data):
        return None

    def __repr__(self):
        return "<{} 0x{:02x}>".format(self.__class__.__name__, self.COMMAND)


class BootInfo(namedtuple('BootInfo', ['boot_rom_version',
                                       'flash_info_from_boot', 'chip_id'])):

    def flash_pin(self):
        return (self.flash_info_from_boot >> 14) & 0x1f

    def chip_id_hex(self):
        return self.chip_id[::-1].hex().upper()


class GetBootInfo(IspCommand):
    COMMAND = GET_BOOT_INFO
    RESPONSE_PAYLOAD = True

    def parse_response(self, data):
        if len(data) != BOOT_INFO_SIZE:
            raise ResponseLengthError(len(data))
        version, _, flash_info, chip_id, _ = struct.unpack('<4s4sI6s6s', data)
        return BootInfo(version, flash_info, chip_id)


class SetFlashPin(IspCommand):
    COMMAND = SET_FLASH_CONFIG

    def __init__(self, flash_pin):
        self.flash_pin = flash_pin

    def payload(self):
        return struct.pack('<I', FLASH_PIN_CONFIG | self.flash_pin)


class ReadFlashId(IspCommand):
    COMMAND = READ_FLASH_ID
    RESPONSE_PAYLOAD = True

    def parse_response(self, data):
        if len(data) != FLASH_ID_RESPONSE_SIZE:
            raise ResponseLengthError(len(data))
        return bytes(data[:3])


class SetFlashConfig(IspCommand):
    """Send SPI flash parameters.

    Without flash_pin the payload is the raw parameter blob. With it, the
    pin word (FLASH_PIN_CONFIG | flash_pin) is sent first, using the pin the
    chip reported rather than a fixed pin 4 (0x00014104).
    """
    COMMAND = SET_FLASH_CONFIG

    def __init__(self, config, flash_pin=None):
        self.config = bytes(config)
        self.flash_pin = flash_pin

    def payload(self):
        if self.flash_pin is None:
            return self.config
        return struct.pack('<I', FLASH_PIN_CONFIG | self.flash_pin) + \
            self.config


class EraseFlash(IspCommand):
    COMMAND = ERASE_FLASH

    def __init__(self, start, end):
        self.start = start
        self.end = end

    def payload(self):
        return struct.pack('<II', self.start, self.end)


class WriteFlash(IspCommand):
    COMMAND = WRITE_FLASH

    def __init__(self, offset, data):
        if len(data) > CHUNK_SIZE:
            raise ValueError("chunk of {} bytes exceeds {}"
                             .format(len(data), CHUNK_SIZE))
        self.offset = offset
        self.data = bytes(data)

    def payload(self):
        return struct.pack('<I', self.offset) + self.data
