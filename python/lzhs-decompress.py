#!/usr/bin/python
# -*- coding: utf-8 -*-
"""
Sliding-window lossless compression, heatshrink-style token stream
Decompress a file produced by lzhs-compress.py, reading it in chunks.

This code is licensed according to the MIT license as follows:
----------------------------------------------------------------------------
Copyright (c) 2017 Craig McQueen

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in
all copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
SOFTWARE.
----------------------------------------------------------------------------
"""

import argparse
import logging
import sys

from lzhs import *

def file_chunks_iter(file_object, chunksize=1024):
    while True:
        chunk = file_object.read(chunksize)
        if not chunk:
            break
        yield chunk

def decompress_file(in_path, out_path, window_bits, lookahead_bits, expected_length=None):
    decoder = Decoder(window_bits, lookahead_bits)
    with open(in_path, "rb") as in_stream:
        for chunk in file_chunks_iter(in_stream):
            decoder.process(chunk)
    out_data = decoder.finish(expected_length)
    with open(out_path, "wb") as out_stream:
        out_stream.write(out_data)
    return len(out_data)

def main():
    parser = argparse.ArgumentParser(description=u"Decompress an lzhs token stream")
    parser.add_argument("input", help=u"Compressed file")
    parser.add_argument("output", help=u"Decompressed output file")
    parser.add_argument(
        "-w", "--window-bits", action="store", type=int, dest="window_bits", default=8,
        help=u"log2 of the back-reference window (default is 8)")
    parser.add_argument(
        "-l", "--lookahead-bits", action="store", type=int, dest="lookahead_bits", default=4,
        help=u"log2 of the longest match (default is 4)")
    parser.add_argument(
        "-n", "--length", action="store", type=int, dest="length", default=None,
        help=u"Expected decompressed length; output is cut to it")
    parser.add_argument(
        "-v", "--verbose", action="store_true", dest="verbose",
        help=u"Show debug output")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s: %(message)s")
    try:
        out_len = decompress_file(args.input, args.output, args.window_bits, args.lookahead_bits, args.length)
    except LzhsError as e:
        print(u"error: {0}".format(e), file=sys.stderr)
        return 1
    logging.debug(u"Decompressed {0} bytes".format(out_len))
    return 0

if __name__ == '__main__':
    sys.exit(main())
