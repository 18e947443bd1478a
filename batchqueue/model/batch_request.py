"""
BatchRequest model: a unit of work submitted to the queue.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence, Tuple

from ..helper.codec import (
    MAX_KEY_LENGTH,
    decode_parameters,
    derive_key,
    encode_parameters,
)

DEFAULT_ESTIMATED_TIME = 60000


@dataclass(frozen=True)
class BatchRequest:
    """
    A request, usually originating from some REST front end, to be run as a batch job.
    Comprises a request URI and a set of parameter values. Immutable.

    The key identifying the request is derived from the URI and the canonical
    parameters unless one is given explicitly.
    """

    request_uri: str
    parameters: Dict[str, Tuple[Optional[str], ...]] = field(default_factory=dict)
    estimated_time: Optional[int] = DEFAULT_ESTIMATED_TIME
    explicit_key: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        """Normalise parameter values to tuples and validate an explicit key."""
        normalised = {
            name: tuple(values) for name, values in (self.parameters or {}).items()
        }
        object.__setattr__(self, "parameters", normalised)

        if self.explicit_key is not None and (
            len(self.explicit_key) > MAX_KEY_LENGTH or "/" in self.explicit_key
        ):
            raise ValueError(f"Illegal request key: {self.explicit_key}")

    def __hash__(self) -> int:
        # Equal requests share a canonical parameter string
        return hash((self.request_uri, self.parameter_string, self.estimated_time))

    @property
    def key(self) -> str:
        """Key used to detect duplicate submissions."""
        if self.explicit_key is not None:
            return self.explicit_key
        return derive_key(self.request_uri, self.parameters)

    @property
    def parameter_string(self) -> str:
        """Parameters as a canonical query string."""
        return encode_parameters(self.parameters)

    def get_first(self, name: str) -> Optional[str]:
        """Return the first value of a parameter, or None if it has no value."""
        values: Sequence[Optional[str]] = self.parameters.get(name, ())
        return values[0] if values else None

    @classmethod
    def from_parameter_string(
        cls,
        request_uri: str,
        parameter_string: Optional[str],
        estimated_time: Optional[int] = DEFAULT_ESTIMATED_TIME,
        key: Optional[str] = None,
    ) -> "BatchRequest":
        """
        Create a request from an encoded query string such as ``foo=x&bar=y``.

        :param request_uri: Target resource of the request.
        :param parameter_string: Encoded parameters.
        :param estimated_time: Processing time hint in milliseconds.
        :param key: Optional explicit key.
        :returns: New BatchRequest.
        """
        return cls(
            request_uri=request_uri,
            parameters=decode_parameters(parameter_string),
            estimated_time=estimated_time,
            explicit_key=key,
        )


def new_batch_request(
    request_uri: str,
    parameters: Optional[Mapping[str, Sequence[Optional[str]]]] = None,
    estimated_time: Optional[int] = DEFAULT_ESTIMATED_TIME,
    key: Optional[str] = None,
) -> BatchRequest:
    """
    Create a new batch request from a parameter mapping.

    :param request_uri: Target resource of the request.
    :param parameters: Mapping of parameter name to values.
    :param estimated_time: Processing time hint in milliseconds.
    :param key: Optional explicit key, at most MAX_KEY_LENGTH characters and without "/".
    :returns: New BatchRequest.
    :raises ValueError: If the explicit key is illegal.
    """
    return BatchRequest(
        request_uri=request_uri,
        parameters={name: tuple(values) for name, values in (parameters or {}).items()},
        estimated_time=estimated_time,
        explicit_key=key,
    )
