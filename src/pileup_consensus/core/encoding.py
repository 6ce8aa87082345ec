"""
Base encoding for pileup-consensus.
Maps nucleotides and colours to 2-bit codes and translates between
colour space and nucleotide space.

In colour space each digit describes the transition between two
consecutive bases: with A=0, C=1, G=2, T=3 the colour of a dinucleotide
is the XOR of the two base codes.
"""

import numpy as np
from Bio.Seq import reverse_complement as _bio_reverse_complement

NUCLEOTIDES = "ACGT"
COLOURS = "0123"

BASE_TO_CODE = {
    'A': 0, 'C': 1, 'G': 2, 'T': 3,
    'a': 0, 'c': 1, 'g': 2, 't': 3,
    '0': 0, '1': 1, '2': 2, '3': 3,
}

# Byte lookup used to encode whole reads at once; -1 marks symbols that cast no vote
_CODE_LOOKUP = np.full(256, -1, dtype=np.int8)
for _symbol, _code in BASE_TO_CODE.items():
    _CODE_LOOKUP[ord(_symbol)] = _code


def base_to_code(base: str) -> int:
    """
    Return the 2-bit code of a nucleotide (any case) or colour digit.

    :param base: One of ACGTacgt0123.
    :return: Code in 0..3.
    """
    try:
        return BASE_TO_CODE[base]
    except KeyError:
        raise ValueError(f"Cannot encode base {base!r}") from None


def code_to_base(code: int, colour_space: bool = False) -> str:
    """
    Return the symbol for a 2-bit code: an uppercase nucleotide, or a colour digit.
    """
    alphabet = COLOURS if colour_space else NUCLEOTIDES
    return alphabet[code]


def encode_sequence(sequence: str) -> np.ndarray:
    """
    Encode a read into an array of codes, with -1 for uncountable symbols such as N.
    """
    raw = np.frombuffer(sequence.encode('ascii'), dtype=np.uint8)
    return _CODE_LOOKUP[raw]


def nucleotide_to_colour_space(base1: str, base2: str) -> str:
    """
    Return the colour digit for the transition base1 -> base2, or '.' if either is ambiguous.
    """
    if base1.upper() not in NUCLEOTIDES or base2.upper() not in NUCLEOTIDES:
        return '.'
    return COLOURS[base_to_code(base1) ^ base_to_code(base2)]


def colour_to_nucleotide_space(anchor: str, colours: str) -> str:
    """
    Decode a colour string starting from a known anchor base.
    Each decoded base becomes the anchor for the next colour.

    :param anchor: Nucleotide preceding the first colour.
    :param colours: Colour digits 0-3. A lone '.' (missing colour) decodes to N.
    :return: One nucleotide per colour; the anchor itself is not included.
    """
    if colours == '.':
        return 'N'
    code = base_to_code(anchor)
    decoded = []
    for colour in colours:
        if colour not in COLOURS:
            raise ValueError(f"Invalid colour {colour!r} in colour-space sequence")
        code ^= BASE_TO_CODE[colour]
        decoded.append(NUCLEOTIDES[code])
    return ''.join(decoded)


def decode_colour_read(anchor: str, colours: str) -> str:
    """
    Convert a colour-space read to nucleotide space, keeping the anchor as its first base.
    """
    return anchor.upper() + colour_to_nucleotide_space(anchor, colours)


def is_colour_sequence(sequence: str) -> bool:
    return bool(sequence) and all(symbol in COLOURS for symbol in sequence)


def reverse_complement(sequence: str) -> str:
    """
    Reverse complement a read. Colour digits have no complement, so colour reads are reversed.
    """
    return _bio_reverse_complement(sequence)
