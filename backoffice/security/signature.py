"""
Webhook and redirect signature codec.

The canonical string is built the way the legacy South African gateways
expect it:

  1. drop the ``signature`` key and every key with an empty value
  2. sort the remaining keys lexicographically
  3. URL-encode each value like JavaScript's ``encodeURIComponent``
     (space becomes ``%20``, ``-_.!~*'()`` stay literal)
  4. join ``key=value`` pairs with ``&``
  5. append ``&passphrase=<encoded>`` when a passphrase is set

Two digests are supported: MD5 over the passphrase-suffixed string (PayFast)
and HMAC-SHA256 keyed by the secret over the bare string.
"""

import hashlib
import hmac
from typing import Any, Mapping, Optional
from urllib.parse import quote

from backoffice.errors import ValidationError

SIGNATURE_FIELD = "signature"
ALGORITHMS = ("md5", "hmac-sha256")

# encodeURIComponent leaves these unescaped in addition to alphanumerics.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_component(value: Any) -> str:
    """URL-encode like JavaScript's encodeURIComponent."""
    return quote(str(value), safe=_URI_COMPONENT_SAFE)


def canonical_string(params: Mapping[str, Any], passphrase: str = "") -> str:
    """Build the string that gets digested. Absent passphrase means no suffix."""
    pairs = [
        f"{key}={encode_component(params[key])}"
        for key in sorted(params)
        if key != SIGNATURE_FIELD and params[key] is not None and str(params[key]) != ""
    ]
    result = "&".join(pairs)
    if passphrase:
        result += f"&passphrase={encode_component(passphrase)}"
    return result


def sign(params: Mapping[str, Any], secret: str, algorithm: str = "md5") -> str:
    """Return the lowercase hex signature for ``params``."""
    if algorithm == "md5":
        return hashlib.md5(canonical_string(params, secret).encode("utf-8")).hexdigest()
    if algorithm == "hmac-sha256":
        return hmac.new(
            secret.encode("utf-8"),
            canonical_string(params).encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
    raise ValidationError(f"Unsupported signature algorithm: {algorithm}")


def verify(params: Mapping[str, Any], secret: str, algorithm: str = "md5") -> bool:
    """
    Check the ``signature`` carried in ``params``.

    Missing or empty signatures fail. Comparison is case-insensitive and
    constant-time over the full digest.
    """
    provided: Optional[str] = params.get(SIGNATURE_FIELD)
    if not provided:
        return False
    expected = sign(params, secret, algorithm)
    return hmac.compare_digest(expected.lower(), str(provided).lower())
