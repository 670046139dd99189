"""
Content identifier encoding.

File range CIDs are stored in the database as raw binary and CAR sections
carry raw CID bytes as well. Both sides are rendered through ``encode_cid`` so
that lookups compare like with like.
"""

import base64

MULTIBASE_BASE32_PREFIX = "b"


def encode_cid(cid: bytes) -> str:
    """
    Render a binary CID in multibase base32 form.

    Lower-case RFC 4648 alphabet, no padding, ``b`` prefix. This is the
    canonical string form of a CIDv1.

    Args:
        cid: Raw CID bytes

    Returns:
        Encoded identifier string

    Example:
        >>> encode_cid(bytes.fromhex("01551220" + "00" * 32))[:8]
        'bafkreia'
    """
    encoded = base64.b32encode(bytes(cid)).decode("ascii")
    return MULTIBASE_BASE32_PREFIX + encoded.rstrip("=").lower()
