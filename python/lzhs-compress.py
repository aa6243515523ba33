#!/usr/bin/python
# -*- coding: utf-8 -*-
"""
Sliding-window lossless compression, heatshrink-style token stream
Compress a file. The same window/lookahead bits must be given to decompress it.
"""

import argparse
import logging
import sys

from lzhs import *

def compress_file(in_path, out_path, window_bits, lookahead_bits):
    encoder = Encoder(window_bits, lookahead_bits)
    with open(in_path, "rb") as in_stream:
        in_data = in_stream.read()
    compressed_data = encoder.compress(in_data)
    with open(out_path, "wb") as out_stream:
        out_stream.write(compressed_data)
    return len(in_data), len(compressed_data)

def main():
    parser = argparse.ArgumentParser(description=u"Compress a file to an lzhs token stream")
    parser.add_argument("input", help=u"File to compress")
    parser.add_argument("output", help=u"Compressed output file")
    parser.add_argument(
        "-w", "--window-bits", action="store", type=int, dest="window_bits", default=8,
        help=u"log2 of the back-reference window (default is 8)")
    parser.add_argument(
        "-l", "--lookahead-bits", action="store", type=int, dest="lookahead_bits", default=4,
        help=u"log2 of the longest match (default is 4)")
    parser.add_argument(
        "-v", "--verbose", action="store_true", dest="verbose",
        help=u"Show debug output")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s: %(message)s")
    try:
        in_len, out_len = compress_file(args.input, args.output, args.window_bits, args.lookahead_bits)
    except ConfigError as e:
        print(u"error: {0}".format(e), file=sys.stderr)
        return 1
    if in_len:
        logging.info(u"Compressed size is {0:0.0f}%".format(float(out_len) / in_len * 100))
    return 0

if __name__ == '__main__':
    sys.exit(main())
