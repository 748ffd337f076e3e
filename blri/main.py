#! /usr/bin/env python3
#
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

import logging
import os.path
import sys

import click
from elftools.common.exceptions import ELFError
from intelhex import IntelHexError

from blri import blri_version, image, session
from blri.dumpinfo import dump_imginfo
from blri.elf2bin import elf_to_bin
from blri.header import ImageFormatError
from blri.isp import IspError

MIN_PYTHON_VERSION = (3, 6)
if sys.version_info < MIN_PYTHON_VERSION:
    sys.exit("Python %s.%s or newer is required by blri."
             % MIN_PYTHON_VERSION)


def require_file(path, kind="Image"):
    if not os.path.exists(path):
        raise click.UsageError("{} file not found ({})".format(kind, path))


def patch_image(infile, outfile):
    require_file(infile)
    try:
        ops = image.patch_image(infile, outfile)
    except (ImageFormatError, OSError) as e:
        raise click.ClickException(str(e))
    for op in ops:
        print(op.describe())
    print("patched image saved to {}".format(outfile))


def select_port():
    ports = session.available_ports()
    if not ports:
        raise click.UsageError("No serial port found, use --port")
    return click.prompt("Select a serial port", type=click.Choice(ports),
                        default=ports[0])


def print_progress(written, total):
    print("flashing: {}/{}".format(written, total))


@click.argument('outfile', required=False)
@click.argument('infile')
@click.command(help='Apply patches to an image, such as fixing CRC32 '
                    'checksums and the image hash. OUTFILE defaults to '
                    'INFILE, which is then patched in place.')
def patch(infile, outfile):
    patch_image(infile, outfile or infile)


@click.argument('imgfile')
@click.command(help='Check an image without modifying it')
def check(imgfile):
    require_file(imgfile)
    try:
        with open(imgfile, 'rb') as f:
            ops = image.check(f)
    except (ImageFormatError, OSError) as e:
        raise click.ClickException(str(e))
    if not ops:
        print("image is consistent")
        return
    for op in ops:
        print("needs patch: {}".format(op.describe()))
    sys.exit(1)


@click.argument('imgfile')
@click.option('-b', '--baudrate', type=int, default=session.BAUDRATE,
              show_default=True, help='Serial baud rate.')
@click.option('-p', '--port', metavar='name',
              help='The serial port to use for flashing. If not provided, '
                   'a list of available ports will be shown.')
@click.command(help='''Flash an image to a device\n
               IMGFILE is parsed as Intel HEX if it has a .hex extension,
               otherwise binary format is used''')
def flash(imgfile, port, baudrate):
    require_file(imgfile)
    try:
        data = image.load_image(imgfile)
    except (IntelHexError, OSError) as e:
        raise click.ClickException(str(e))
    try:
        session.check_image_size(data)
        if port is None:
            port = select_port()
        transport = session.open_port(port, baudrate)
        session.flash(transport, data, progress=print_progress, report=print)
    except IspError as e:
        raise click.ClickException(str(e))
    print("flashing done.")


@click.argument('infile')
@click.option('-p', '--patch', 'do_patch', default=False, is_flag=True,
              help='Patch the output binary after conversion.')
@click.option('-o', '--output', metavar='filename',
              help='The path to save the output binary file. Defaults to '
                   'INFILE with a .bin suffix.')
@click.command(help='Convert an ELF file to a binary file')
def elf2bin(infile, output, do_patch):
    output = output or infile + ".bin"
    require_file(infile, "ELF")
    try:
        size = elf_to_bin(infile, output)
    except ELFError as e:
        raise click.ClickException("invalid ELF file: {}".format(e))
    except OSError as e:
        raise click.ClickException(str(e))
    print("converted {} bytes into {}".format(size, output))
    if do_patch:
        patch_image(output, output)


@click.argument('imgfile')
@click.option('-o', '--outfile', metavar='filename', required=False,
              help='Save header information to outfile in YAML format')
@click.option('-s', '--silent', default=False, is_flag=True,
              help='Do not print header information to output')
@click.command(help='Print the boot header of an image')
def dumpinfo(imgfile, outfile, silent):
    dump_imginfo(imgfile, outfile, silent)
    if not silent:
        print("dumpinfo has run successfully")


@click.command(help='Print blri version information')
def version():
    print(blri_version)


@click.option('-v', '--verbose', default=False, is_flag=True,
              help='Log protocol and validation details.')
@click.group(context_settings=dict(help_option_names=['-h', '--help'],
                                   auto_envvar_prefix='BLRI'),
             help='Bouffalo ROM image helper')
def blri(verbose):
    if verbose:
        logging.basicConfig(format='%(levelname)5s: %(message)s',
                            level=logging.DEBUG, stream=sys.stdout)


blri.add_command(patch)
blri.add_command(check)
blri.add_command(flash)
blri.add_command(elf2bin)
blri.add_command(dumpinfo)
blri.add_command(version)


if __name__ == '__main__':
    blri()
