"""
Reply model shared by the REST server and the SDK client.

A reply is either {"result": <value>} or {"error": "<message>"}. A pipeline
reply is a JSON array of such objects, positionally aligned with the
commands of the request.

Invariants:
    - A Result with a non-empty error is a failure, whatever its result
    - The result payload stays undecoded until a destination type is given
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, TypeAdapter


class Result(BaseModel):
    """Outcome of a single command.

    Attributes:
        error: Error message returned by the store, empty on success
        result: Raw JSON payload of a successful reply
    """

    error: str = ""
    result: Any = None

    @classmethod
    def ok(cls, value: Any) -> Result:
        return cls(result=value)

    @classmethod
    def fail(cls, message: str) -> Result:
        return cls(error=message)

    @classmethod
    def from_envelope(cls, data: Any) -> Result:
        """Build a Result from a decoded JSON reply object.

        Raises:
            ValueError: If data is not a reply object
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected a reply object, got {type(data).__name__}")
        error = data.get("error") or ""
        if not isinstance(error, str):
            error = str(error)
        return cls(error=error, result=data.get("result"))

    @property
    def failed(self) -> bool:
        return bool(self.error)

    def to_envelope(self) -> dict[str, Any]:
        """Return the JSON reply object for this result."""
        if self.error:
            return {"error": self.error}
        return {"result": self.result}

    def decode(self, dst: Any) -> Any:
        """Decode the payload into the destination type.

        Args:
            dst: Any type a pydantic TypeAdapter accepts (str, int,
                list[str], a model, typing.Any for the raw value)

        Returns:
            The decoded value, or None for a null payload

        Raises:
            pydantic.ValidationError: If the payload does not fit dst
        """
        if self.result is None:
            return None
        return TypeAdapter(dst).validate_python(self.result)


def parse_batch(data: Any) -> list[Result]:
    """Parse a decoded pipeline reply into Results.

    Raises:
        ValueError: If data is not an array of reply objects
    """
    if not isinstance(data, list):
        raise ValueError(f"expected a reply array, got {type(data).__name__}")
    return [Result.from_envelope(item) for item in data]
