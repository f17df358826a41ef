"""Webhook signature verification: constant-time HMAC helpers.

Security contract:
- All comparisons use hmac.compare_digest() (constant-time, no timing attacks)
- Signatures of different decoded length fail before any byte comparison
- Missing, malformed or undecodable signatures fail closed (False, never raise)
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
from collections.abc import Callable, Mapping
from typing import Literal

from hookgate.webhooks.models import RawBody, body_bytes

logger = logging.getLogger(__name__)

HmacAlgorithm = Literal["sha1", "sha256", "sha384", "sha512"]
SignatureEncoding = Literal["hex", "base64"]

Verifier = Callable[[RawBody, Mapping[str, str], str], bool]

_ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha384": hashlib.sha384,
    "sha512": hashlib.sha512,
}


def secure_compare(a: str, b: str) -> bool:
    """Constant-time string comparison.  Different lengths are never equal."""
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def decode_signature(signature: str, encoding: SignatureEncoding) -> bytes | None:
    """Decode a hex or base64 signature; None if it is malformed."""
    try:
        if encoding == "hex":
            return bytes.fromhex(signature)
        return base64.b64decode(signature, validate=True)
    except (ValueError, binascii.Error):
        return None


def compute_hmac(
    algorithm: HmacAlgorithm,
    key: str | bytes,
    message: RawBody,
) -> bytes:
    """Compute a raw HMAC digest of *message* under *key*."""
    digestmod = _ALGORITHMS.get(algorithm)
    if digestmod is None:
        raise ValueError(f"Unsupported HMAC algorithm: {algorithm}")
    key_bytes = key.encode("utf-8") if isinstance(key, str) else key
    return hmac.new(key_bytes, body_bytes(message), digestmod).digest()


def digests_match(expected: bytes, supplied: bytes | None) -> bool:
    """Compare two digests in constant time, failing fast on length mismatch."""
    if supplied is None or len(supplied) != len(expected):
        return False
    return hmac.compare_digest(expected, supplied)


def verify_hmac(
    *,
    algorithm: HmacAlgorithm,
    raw_body: RawBody,
    secret: str | bytes,
    signature: str | None,
    signature_prefix: str | None = None,
    signature_encoding: SignatureEncoding = "hex",
) -> bool:
    """Verify an HMAC signature over the raw request body.

    Args:
        algorithm: HMAC hash (sha1, sha256, sha384, sha512)
        raw_body: Raw request body exactly as received
        secret: Shared signing secret
        signature: Signature header value (None if the header was absent)
        signature_prefix: Required prefix such as ``"sha256="``; a signature
            without it fails
        signature_encoding: Encoding of the signature (hex or base64)

    Returns:
        True if the signature is valid
    """
    if not signature:
        return False

    if signature_prefix:
        if not signature.startswith(signature_prefix):
            return False
        signature = signature[len(signature_prefix):]

    try:
        computed = compute_hmac(algorithm, secret, raw_body)
    except ValueError:
        logger.warning("Unsupported HMAC algorithm %r, rejecting webhook", algorithm)
        return False

    return digests_match(computed, decode_signature(signature, signature_encoding))


def create_hmac_verifier(
    *,
    algorithm: HmacAlgorithm,
    signature_header: str,
    signature_prefix: str | None = None,
    signature_encoding: SignatureEncoding = "hex",
) -> Verifier:
    """Build a provider ``verify`` function that reads *signature_header*.

    >>> verify = create_hmac_verifier(
    ...     algorithm="sha256", signature_header="X-Signature", signature_prefix="sha256="
    ... )
    >>> verify(b"{}", {"x-signature": "sha256=00"}, "secret")
    False
    """
    header_name = signature_header.lower()

    def verify(raw_body: RawBody, headers: Mapping[str, str], secret: str) -> bool:
        return verify_hmac(
            algorithm=algorithm,
            raw_body=raw_body,
            secret=secret,
            signature=headers.get(header_name),
            signature_prefix=signature_prefix,
            signature_encoding=signature_encoding,
        )

    return verify
