"""
Canonical parameter encoding and request key derivation.

Parameters are a mapping from name to a sequence of values. The canonical
string sorts names, then values, so two requests carrying the same parameters
in a different order encode (and key) identically.
"""

import hashlib
from typing import Dict, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

MAX_KEY_LENGTH = 200

# Stands in for a missing parameter value in keys
MISSING_VALUE = "null"

Parameters = Mapping[str, Sequence[Optional[str]]]


def _sorted_values(values: Iterable[Optional[str]]) -> Sequence[Optional[str]]:
    # A missing value sorts ahead of any string
    return sorted(values, key=lambda v: (v is not None, v or ""))


def _sorted_pairs(params: Parameters) -> Iterator[Tuple[str, Optional[str]]]:
    for name in sorted(params):
        for value in _sorted_values(params[name]):
            yield name, value


def encode_parameters(params: Optional[Parameters]) -> str:
    """
    Encode parameters as a canonical query string.

    :param params: Mapping of parameter name to its values.
    :returns: ``name=value`` pairs joined by ``&``, sorted by name then value.
        A ``None`` value is rendered as the bare name.
    """
    if not params:
        return ""

    parts = []
    for name, value in _sorted_pairs(params):
        parts.append(name if value is None else f"{name}={value}")
    return "&".join(parts)


def decode_parameters(param_string: Optional[str]) -> Dict[str, Tuple[Optional[str], ...]]:
    """
    Decode a query string produced by ``encode_parameters``.

    :param param_string: Encoded parameters, may be empty or None.
    :returns: Mapping of parameter name to a tuple of values in string order.
    """
    decoded: Dict[str, Tuple[Optional[str], ...]] = {}
    if not param_string:
        return decoded

    for binding in param_string.split("&"):
        if not binding:
            continue
        name, sep, value = binding.partition("=")
        decoded[name] = decoded.get(name, ()) + (value if sep else None,)
    return decoded


def _key_value(value: Optional[str]) -> str:
    return MISSING_VALUE if value is None else value


def derive_key(request_uri: str, params: Optional[Parameters]) -> str:
    """
    Derive the deduplication key of a request.

    The key is the request URI followed by ``_name`` and ``_value`` for every
    parameter in canonical order, with ``/`` escaped as ``%2F``. A parameter
    without a value contributes ``null``. Keys longer than ``MAX_KEY_LENGTH``
    are replaced by an MD5 hex digest.

    :param request_uri: Target resource of the request.
    :param params: Mapping of parameter name to its values.
    :returns: The request key.
    """
    params = params or {}

    parts = [request_uri]
    for name in sorted(params):
        parts.append(name)
        parts.extend(_key_value(value) for value in _sorted_values(params[name]))
    key = "_".join(parts).replace("/", "%2F")

    if len(key) <= MAX_KEY_LENGTH:
        return key

    digest = hashlib.md5()
    digest.update(request_uri.encode("utf-8"))
    for name, value in _sorted_pairs(params):
        digest.update(f"{name}={_key_value(value)}".encode("utf-8"))
    return digest.hexdigest()
