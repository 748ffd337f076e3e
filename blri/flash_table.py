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
SPI flash parameters, keyed by JEDEC id.
"""

# Winbond W25Q128
FLASH_CONFIG_EF4018 = bytes([
    0x04, 0x01, 0x00, 0x00, 0x66, 0x99, 0xff, 0x03,
    0x9f, 0x00, 0xb7, 0xe9, 0x04, 0xef, 0x00, 0x01,
    0xc7, 0x20, 0x52, 0xd8, 0x06, 0x02, 0x32, 0x00,
    0x0b, 0x01, 0x0b, 0x01, 0x3b, 0x01, 0xbb, 0x00,
    0x6b, 0x01, 0xeb, 0x02, 0xeb, 0x02, 0x02, 0x50,
    0x00, 0x01, 0x00, 0x01, 0x01, 0x00, 0x02, 0x01,
    0x01, 0x01, 0xab, 0x01, 0x05, 0x35, 0x00, 0x00,
    0x01, 0x31, 0x00, 0x00, 0x38, 0xff, 0xa0, 0xff,
    0x77, 0x03, 0x02, 0x40, 0x77, 0x03, 0x02, 0xf0,
    0x2c, 0x01, 0xb0, 0x04, 0xb0, 0x04, 0x05, 0x00,
    0xe8, 0x80, 0x03, 0x00, ])

FLASH_PARAMETERS = {
    bytes([0xef, 0x40, 0x18]): FLASH_CONFIG_EF4018,
}


def lookup(jedec_id):
    """Return the parameter blob for a 3 byte JEDEC id, or None."""
    return FLASH_PARAMETERS.get(bytes(jedec_id))
