#!/usr/bin/python
# -*- coding: utf-8 -*-
"""
Sliding-window lossless compression, heatshrink-style token stream
Based on LZ77/LZSS work
Aiming to be suitable for embedded systems

Wire format, bit-packed MSB-first, zero-padded to a whole byte at the end:

    literal := 1 <8-bit byte>
    backref := 0 <window_bits: offset - 1> <lookahead_bits: length - 1>

Fields wider than 8 bits are written as the high (width - 8) bits followed by
the low 8 bits. There is no header, end marker or checksum, so window_bits and
lookahead_bits (and the original length, where needed) travel out-of-band.

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

import logging
from collections import defaultdict, deque, namedtuple
from enum import Enum

__all__ = [
    'MIN_WINDOW_BITS', 'MAX_WINDOW_BITS', 'MIN_LOOKAHEAD_BITS',
    'LzhsError', 'ConfigError', 'StreamExhausted', 'TruncatedDataError', 'CorruptDataError',
    'validate_params', 'Literal', 'BackRef',
    'BitFieldQueue', 'GrowableBytesBuffer', 'BitWriter', 'BitReader',
    'MatchIndex', 'Encoder', 'Decoder', 'DecoderState', 'compress', 'decompress',
]

logger = logging.getLogger(__name__)

MIN_WINDOW_BITS = 4
MAX_WINDOW_BITS = 15
MIN_LOOKAHEAD_BITS = 1

LITERAL_MARKER = 1
BACKREF_MARKER = 0

# Shortest match worth a back-reference
MIN_MATCH_LEN = 2


class LzhsError(Exception):
    pass

class ConfigError(LzhsError, ValueError):
    """Invalid window_bits/lookahead_bits combination"""
    pass

class StreamExhausted(LzhsError):
    """Fewer bits remain in the stream than were asked for"""
    pass

class TruncatedDataError(LzhsError):
    """Compressed data ended part way through a token"""
    pass

class CorruptDataError(LzhsError):
    """Back-reference points before the start of the output"""
    pass


def validate_params(window_bits, lookahead_bits):
    for name, value in ((u"window_bits", window_bits), (u"lookahead_bits", lookahead_bits)):
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConfigError(u"{0} must be an integer, not {1!r}".format(name, value))
    if window_bits <= 0 or lookahead_bits < MIN_LOOKAHEAD_BITS:
        raise ConfigError(u"window_bits must be > 0 and lookahead_bits at least {0} (got {1}, {2})".format(
            MIN_LOOKAHEAD_BITS, window_bits, lookahead_bits))
    if lookahead_bits >= window_bits:
        raise ConfigError(u"lookahead_bits ({0}) must be smaller than window_bits ({1})".format(
            lookahead_bits, window_bits))
    if not MIN_WINDOW_BITS <= window_bits <= MAX_WINDOW_BITS:
        raise ConfigError(u"window_bits must be in [{0}, {1}], got {2}".format(
            MIN_WINDOW_BITS, MAX_WINDOW_BITS, window_bits))


Literal = namedtuple('Literal', ['byte'])
BackRef = namedtuple('BackRef', ['offset', 'length'])


class BitFieldQueue(object):
    """Bits held MSB-first in a single integer. Append at the tail, pop from the head."""
    __slots__ = [ 'value', 'width' ]
    MAX_WIDTH = 32

    def __init__(self, value = 0, width = 0):
        self.value = 0
        self.width = 0
        if width:
            self.append(value, width)
    def append(self, value, width):
        if (value & ((1 << width) - 1)) != value:
            raise LzhsError(u"value {0} is wider than {1} bits".format(value, width))
        if self.width + width > BitFieldQueue.MAX_WIDTH:
            raise LzhsError(u"new width is too big")
        self.value = (self.value << width) | value
        self.width += width
    def get(self, width):
        if width > self.width:
            raise LzhsError(u"requested get width is not available")
        return (self.value >> (self.width - width)) & ((1 << width) - 1)
    def pop(self, width):
        if width > self.width:
            raise LzhsError(u"requested pop width is not available")
        self.width -= width
        return_value = (self.value >> self.width) & ((1 << width) - 1)
        self.value &= ((1 << self.width) - 1)
        return return_value
    def __str__(self):
        return u"{0}, width {1}".format(self.value, self.width)


class GrowableBytesBuffer(object):
    """Append-only bytearray buffer, doubling its capacity when full"""
    def __init__(self, capacity = 256):
        self.buffer_size = max(1, capacity)

        self.buffer = bytearray(self.buffer_size)
        self.num_items = 0

    def _ensure(self, count):
        needed = self.num_items + count
        if needed <= self.buffer_size:
            return
        new_size = max(self.buffer_size * 2, needed)
        self.buffer.extend(bytes(new_size - self.buffer_size))
        self.buffer_size = new_size

    def append(self, value):
        self._ensure(1)
        self.buffer[self.num_items] = value
        self.num_items += 1

    def extend(self, item):
        item_len = len(item)
        self._ensure(item_len)
        self.buffer[self.num_items:self.num_items+item_len] = item
        self.num_items += item_len

    def __len__(self):
        return self.num_items

    def _normalise_index(self, index):
        if index < 0:
            index += self.num_items
        if not 0 <= index < self.num_items:
            raise IndexError(u"GrowableBytesBuffer index out of range")
        return index

    def __getitem__(self, key):
        if isinstance(key, int):
            return self.buffer[self._normalise_index(key)]
        elif isinstance(key, slice):
            (start, end, step) = key.indices(self.num_items)
            return bytes(self.buffer[start:end:step])
        else:
            raise TypeError(u"GrowableBytesBuffer index must be integer, not %s" % type(key))

    def getvalue(self):
        return bytes(self.buffer[:self.num_items])


class BitWriter(object):
    """Packs bit fields MSB-first into a growable byte buffer"""
    # Largest piece handed to the queue at once; leaves room for 7 pending bits
    CHUNK_BITS = 16

    def __init__(self, capacity = 256):
        self.bit_field_queue = BitFieldQueue()
        self.out_data = GrowableBytesBuffer(capacity)

    def _do_output(self):
        while self.bit_field_queue.width >= 8:
            self.out_data.append(self.bit_field_queue.pop(8))

    def write_bits(self, value, count):
        """
        Append the low `count` bits of `value`, most significant bit first.
        A count of zero or less writes nothing.
        """
        while count > 0:
            chunk = min(count, BitWriter.CHUNK_BITS)
            count -= chunk
            self.bit_field_queue.append((value >> count) & ((1 << chunk) - 1), chunk)
            self._do_output()

    def write_byte(self, value):
        self.write_bits(value, 8)

    def write_field(self, value, width):
        """
        Write a `width`-bit field. Fields wider than 8 bits go out as the
        high (width - 8) bits, then the low 8 bits.
        """
        if width > 8:
            self.write_bits(value >> 8, width - 8)
            self.write_bits(value & 0xFF, 8)
        else:
            self.write_bits(value, width)

    def flush(self):
        """Zero-pad the final partial byte and return everything written."""
        # Calculate number of bits of padding needed to make a complete byte
        needed_pad = 7 - ((self.bit_field_queue.width + 7) % 8)
        self.bit_field_queue.append(0, needed_pad)
        self._do_output()
        return self.out_data.getvalue()


class BitReader(object):
    """
    Reads bit fields MSB-first from bytes fed to it, possibly in several
    pieces. A read that cannot be satisfied raises StreamExhausted and
    consumes nothing, so it can be retried once more data is fed.
    """
    def __init__(self, in_data = b""):
        self.buffer = bytearray()
        self.cursor = 0
        self.bit_field_queue = BitFieldQueue()
        self.feed(in_data)

    def feed(self, in_data):
        if self.cursor:
            del self.buffer[:self.cursor]
            self.cursor = 0
        self.buffer.extend(in_data)

    def bits_available(self):
        return self.bit_field_queue.width + 8 * (len(self.buffer) - self.cursor)

    def _check_available(self, count):
        available = self.bits_available()
        if count > available:
            raise StreamExhausted(u"{0} bits requested, {1} available".format(count, available))

    def read_bits(self, count):
        if count <= 0:
            return 0
        self._check_available(count)
        value = 0
        while count > 0:
            if self.bit_field_queue.width == 0:
                self.bit_field_queue.append(self.buffer[self.cursor], 8)
                self.cursor += 1
            chunk = min(count, self.bit_field_queue.width)
            value = (value << chunk) | self.bit_field_queue.pop(chunk)
            count -= chunk
        return value

    def read_field(self, width):
        """Inverse of BitWriter.write_field()."""
        self._check_available(width)
        if width > 8:
            high = self.read_bits(width - 8)
            return (high << 8) | self.read_bits(8)
        return self.read_bits(width)

    def at_padding(self):
        """True if what is left could only be the zero padding of a final byte."""
        return self.bits_available() < 8 and self.bit_field_queue.value == 0


class MatchIndex(object):
    """
    Positions of each byte value in the trailing window of in_data, oldest
    first. Positions must be added in increasing order; each one added
    pushes out the position that has just left the window.
    """
    def __init__(self, in_data, window_size):
        self.in_data = in_data
        self.window_size = window_size
        self.match_dict = defaultdict(deque)
        self.num_items = 0

    def add(self, offset):
        self.match_dict[self.in_data[offset]].append(offset)
        self.num_items += 1
        # Searches from offset + 1 onwards start at offset + 1 - window_size
        old_offset = offset - self.window_size
        if old_offset >= 0:
            old_byte = self.in_data[old_offset]
            positions = self.match_dict.get(old_byte)
            if positions and positions[0] == old_offset:
                positions.popleft()
                self.num_items -= 1
                if not positions:
                    del self.match_dict[old_byte]

    def candidates(self, byte):
        return self.match_dict.get(byte, ())

    def __len__(self):
        return self.num_items


class Encoder(object):
    """
    Greedy longest-match encoder. Instances hold only their parameters, so
    one encoder can be reused for any number of compress() calls.
    """
    def __init__(self, window_bits, lookahead_bits):
        validate_params(window_bits, lookahead_bits)
        self.window_bits = window_bits
        self.lookahead_bits = lookahead_bits
        self.window_size = 1 << window_bits
        self.lookahead_size = 1 << lookahead_bits

    def find_tokens(self, in_data):
        """
        Split in_data into a list of Literal and BackRef tokens.

        Candidates in the window are tried oldest first; a later candidate
        only replaces the best match if it is strictly longer.
        """
        in_data = bytes(in_data)
        in_len = len(in_data)
        match_index = MatchIndex(in_data, self.window_size)
        out_data = []

        in_data_offset = 0
        while in_data_offset < in_len:
            max_match = min(self.lookahead_size, in_len - in_data_offset)

            best_len = 0
            best_offset = 0
            for match_offset in match_index.candidates(in_data[in_data_offset]):
                match_len = 1
                while (match_len < max_match and
                       in_data[match_offset + match_len] == in_data[in_data_offset + match_len]):
                    match_len += 1
                if match_len > best_len:
                    best_len = match_len
                    best_offset = in_data_offset - match_offset
                    if best_len == max_match:
                        break

            if best_len >= MIN_MATCH_LEN:
                out_data.append(BackRef(best_offset, best_len))
                token_len = best_len
            else:
                out_data.append(Literal(in_data[in_data_offset]))
                token_len = 1
            for i in range(in_data_offset, in_data_offset + token_len):
                match_index.add(i)
            in_data_offset += token_len
        return out_data

    def encode(self, tokens):
        """Encode the compressed tokens to a binary stream"""
        writer = BitWriter()
        for token in tokens:
            if isinstance(token, Literal):
                if not 0 <= token.byte <= 0xFF:
                    raise LzhsError(u"Literal {0} is not a byte value".format(token.byte))
                writer.write_bits(LITERAL_MARKER, 1)
                writer.write_byte(token.byte)
            else:
                offset, length = token
                if not 1 <= offset <= self.window_size:
                    raise LzhsError(u"Offset {0} is outside the {1} byte window".format(
                        offset, self.window_size))
                if not 1 <= length <= self.lookahead_size:
                    raise LzhsError(u"Length {0} is longer than the {1} byte lookahead".format(
                        length, self.lookahead_size))
                writer.write_bits(BACKREF_MARKER, 1)
                writer.write_field(offset - 1, self.window_bits)
                writer.write_field(length - 1, self.lookahead_bits)
        return writer.flush()

    def compress(self, in_data):
        tokens = self.find_tokens(in_data)
        encoded = self.encode(tokens)
        logger.debug(u"compressed %d bytes to %d bytes in %d tokens (window_bits=%d, lookahead_bits=%d)",
                     len(in_data), len(encoded), len(tokens), self.window_bits, self.lookahead_bits)
        return encoded


class DecoderState(Enum):
    TAG_BIT = 0
    YIELD_LITERAL = 1
    BACKREF_INDEX = 2
    BACKREF_COUNT = 3


class Decoder(object):
    """
    Streaming decoder. Feed compressed data with process(), in as many pieces
    as convenient, and collect the result with get_output().

    The format has no end marker. Fewer than 8 trailing zero bits are taken
    to be the padding of the final byte and are left undecoded; the encoder
    never produces a token made only of zero bits (its shortest match is 2),
    so nothing it writes is lost this way. Call finish() once the whole
    stream has been fed to check that it did not end part way through a
    token.

    An instance must not be shared between threads.
    """
    def __init__(self, window_bits, lookahead_bits, initial_capacity = 1024):
        validate_params(window_bits, lookahead_bits)
        self.window_bits = window_bits
        self.lookahead_bits = lookahead_bits

        self.reader = BitReader()
        self.output = GrowableBytesBuffer(initial_capacity)
        self.state = DecoderState.TAG_BIT
        self.backref_offset = 0

    def process(self, in_data):
        for _token in self.gen_tokens(in_data):
            pass

    def gen_tokens(self, in_data):
        """Like process(), yielding each token once its bytes are in the output."""
        self.reader.feed(in_data)
        while True:
            token = self._next_token()
            if token is None:
                return
            yield token

    def _next_token(self):
        # Runs the state machine until a token completes. Returns None when
        # it has to wait for more input.
        reader = self.reader
        try:
            while True:
                if self.state is DecoderState.TAG_BIT:
                    if reader.at_padding():
                        return None
                    if reader.read_bits(1) == LITERAL_MARKER:
                        self.state = DecoderState.YIELD_LITERAL
                    else:
                        self.state = DecoderState.BACKREF_INDEX
                elif self.state is DecoderState.YIELD_LITERAL:
                    byte = reader.read_bits(8)
                    self.output.append(byte)
                    self.state = DecoderState.TAG_BIT
                    return Literal(byte)
                elif self.state is DecoderState.BACKREF_INDEX:
                    self.backref_offset = reader.read_field(self.window_bits) + 1
                    self.state = DecoderState.BACKREF_COUNT
                else:
                    length = reader.read_field(self.lookahead_bits) + 1
                    self._copy_backref(self.backref_offset, length)
                    self.state = DecoderState.TAG_BIT
                    return BackRef(self.backref_offset, length)
        except StreamExhausted:
            return None

    def _copy_backref(self, offset, length):
        output = self.output
        if offset > len(output):
            logger.warning(u"back-reference offset %d with only %d bytes decoded", offset, len(output))
            raise CorruptDataError(u"Back-reference offset {0} exceeds the {1} bytes decoded so far".format(
                offset, len(output)))
        # One byte at a time: the source may overlap the bytes being produced
        match_offset = len(output) - offset
        for i in range(match_offset, match_offset + length):
            output.append(output[i])

    def get_output(self):
        return self.output.getvalue()

    def finish(self, expected_length = None):
        """
        Declare the stream complete. Raises TruncatedDataError if it stopped
        part way through a token; otherwise returns the decoded bytes.
        If expected_length is given, the result is cut to that length, and
        a shorter result is also a TruncatedDataError.
        """
        if self.state is not DecoderState.TAG_BIT or not self.reader.at_padding():
            raise TruncatedDataError(u"Compressed data ends mid-token ({0}, {1} bits left)".format(
                self.state.name, self.reader.bits_available()))
        out_data = self.get_output()
        if expected_length is not None:
            if len(out_data) < expected_length:
                raise TruncatedDataError(u"Decoded {0} bytes, expected {1}".format(len(out_data), expected_length))
            out_data = out_data[:expected_length]
        return out_data


def compress(in_data, window_bits, lookahead_bits):
    return Encoder(window_bits, lookahead_bits).compress(in_data)

def decompress(in_data, window_bits, lookahead_bits, expected_length = None):
    """
    Decode a complete compressed buffer. Truncated input raises
    TruncatedDataError. If expected_length is given, the result is cut to
    that length, and a shorter result is an error.
    """
    decoder = Decoder(window_bits, lookahead_bits, max(len(in_data) * 2, expected_length or 0))
    decoder.process(in_data)
    return decoder.finish(expected_length)
