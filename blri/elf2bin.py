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
Flat binary output from ELF files, in the manner of `objcopy -O binary`.
"""

import io
import logging

from elftools.elf.constants import SH_FLAGS
from elftools.elf.elffile import ELFFile

_log = logging.getLogger(__name__)


def loadable_sections(elf):
    """Sections with SHF_ALLOC, ordered by file offset, then address."""
    sections = [s for s in elf.iter_sections()
                if s['sh_flags'] & SH_FLAGS.SHF_ALLOC]
    sections.sort(key=lambda s: s['sh_addr'])
    sections.sort(key=lambda s: s['sh_offset'])
    return sections


def elf_to_bin_bytes(elf_data):
    elf = ELFFile(io.BytesIO(elf_data))
    sections = loadable_sections(elf)
    _log.info("found %d loadable sections", len(sections))

    out = bytearray()
    for s in sections:
        size = s['sh_size']
        _log.info("section %s at address 0x%x with size 0x%x",
                  s.name or "<unnamed>", s['sh_addr'], size)
        # NOBITS sections occupy no file space, as with objcopy -O binary
        if size == 0 or s['sh_type'] == 'SHT_NOBITS':
            continue
        out += s.data()
    return bytes(out)


def elf_to_bin(infile, outfile):
    with open(infile, 'rb') as f:
        elf_data = f.read()
    bin_data = elf_to_bin_bytes(elf_data)
    with open(outfile, 'wb') as f:
        f.write(bin_data)
    return len(bin_data)
