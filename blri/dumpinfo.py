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
Parse and print the boot header of a ROM image.
"""
import os.path

import click
import yaml

from blri import header as hdr

_LINE_LENGTH = 60


def checksum_status(stored, calculated):
    if hdr.is_unset(stored):
        return "UNSET"
    return "OK" if stored == calculated else "BAD (expected {})".format(
        hex(calculated))


def print_in_row(row_text):
    row_text = "#### " + row_text + " "
    fill = "#" * (_LINE_LENGTH - len(row_text))
    print(row_text + fill)


def print_fields(fields):
    for key, value in fields.items():
        if not isinstance(value, str):
            value = hex(value)
        print(key, ":", " " * (22 - len(key)), value, sep="")


def print_blob(data):
    for i in range(0, len(data), 16):
        print("   ", " ".join("{0:02x}".format(b) for b in data[i:i + 16]))


def header_info(header, raw):
    """Plain dict view of a decoded header, suitable for YAML."""
    return {
        "magic": header.magic,
        "revision": header.revision,
        "flash_cfg": {
            "magic": header.flash_cfg.magic,
            "cfg": header.flash_cfg.cfg.hex(),
            "crc32": header.flash_cfg.crc32,
            "crc32_status": checksum_status(header.flash_cfg.crc32,
                                            hdr.flash_config_crc(header)),
        },
        "clk_cfg": {
            "magic": header.clk_cfg.magic,
            "cfg": header.clk_cfg.cfg.hex(),
            "crc32": header.clk_cfg.crc32,
            "crc32_status": checksum_status(header.clk_cfg.crc32,
                                            hdr.clock_config_crc(header)),
        },
        "basic_cfg": {
            "flag": header.basic_cfg.flag,
            "group_image_offset": header.basic_cfg.group_image_offset,
            "aes_region_len": header.basic_cfg.aes_region_len,
            "img_len_cnt": header.basic_cfg.img_len_cnt,
            "hash": header.basic_cfg.hash.hex(),
        },
        "cpu_cfg": [dict(cpu._asdict()) for cpu in header.cpu_cfg],
        "boot2_pt_table_0": header.boot2_pt_table_0,
        "boot2_pt_table_1": header.boot2_pt_table_1,
        "flash_cfg_table_addr": header.flash_cfg_table_addr,
        "flash_cfg_table_len": header.flash_cfg_table_len,
        "patch_on_read": [dict(p._asdict()) for p in header.patch_on_read],
        "patch_on_jump": [dict(p._asdict()) for p in header.patch_on_jump],
        "crc32": header.crc32,
        "crc32_status": checksum_status(header.crc32, hdr.header_crc(raw)),
    }


def dump_imginfo(imgfile, outfile=None, silent=False):
    """Parse a boot image and print/save its header."""
    try:
        with open(imgfile, "rb") as f:
            raw = f.read(hdr.HEADER_SIZE)
    except FileNotFoundError:
        raise click.UsageError("Image file not found ({})".format(imgfile))
    except OSError as e:
        raise click.ClickException(str(e))

    try:
        header = hdr.decode(raw)
    except hdr.ImageFormatError as e:
        raise click.ClickException(str(e))

    info = header_info(header, raw)

    if outfile is not None:
        try:
            with open(outfile, "w") as outf:
                yaml.dump(info, outf, sort_keys=False)
        except OSError as e:
            raise click.ClickException(str(e))

    if silent:
        return

    print("Printing boot header of image:", os.path.basename(imgfile), "\n")

    print_in_row("Boot header (offset: 0x0)")
    print_fields({"magic": info["magic"], "revision": info["revision"]})

    print_in_row("Flash config (offset: {})".format(
        hex(hdr.FLASH_CONFIG_OFFSET)))
    print_fields({k: v for k, v in info["flash_cfg"].items() if k != "cfg"})
    print_blob(header.flash_cfg.cfg)

    print_in_row("Clock config (offset: {})".format(
        hex(hdr.CLOCK_CONFIG_OFFSET)))
    print_fields({k: v for k, v in info["clk_cfg"].items() if k != "cfg"})
    print_blob(header.clk_cfg.cfg)

    print_in_row("Basic config (offset: {})".format(
        hex(hdr.BASIC_CONFIG_OFFSET)))
    print_fields(info["basic_cfg"])

    for i, cpu in enumerate(info["cpu_cfg"]):
        print_in_row("CPU {} config".format(i))
        print_fields(cpu)

    print_in_row("Tables and patches")
    print_fields({k: info[k] for k in ("boot2_pt_table_0", "boot2_pt_table_1",
                                       "flash_cfg_table_addr",
                                       "flash_cfg_table_len")})
    for name in ("patch_on_read", "patch_on_jump"):
        for p in info[name]:
            if p["addr"] or p["value"]:
                print("{}: {} = {}".format(name, hex(p["addr"]),
                                           hex(p["value"])))

    print_in_row("Header checksum (offset: {})".format(
        hex(hdr.HEADER_CRC_OFFSET)))
    print_fields({"crc32": info["crc32"],
                  "crc32_status": info["crc32_status"]})
    print("#" * _LINE_LENGTH)
