"""
Serialization codec shared by the memory and persistent tiers.

Values are stored as JSON text.  Encoding failures and malformed stored
content are both reported as :class:`SerializationError`.
"""

import json
from typing import Any, Optional

from tiercache.exceptions import SerializationError


class JsonCodec:
    """JSON text codec.

    Args:
        indent: Optional indentation for written files.  ``None`` keeps
            output compact.
    """

    def __init__(self, indent: Optional[int] = None) -> None:
        self._indent = indent

    def serialize(self, value: Any) -> str:
        """Encode *value* as JSON text.

        Raises:
            SerializationError: If the value is not JSON-serializable.
        """
        try:
            return json.dumps(value, indent=self._indent, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Value is not serializable: {e}") from e

    def deserialize(self, text: str) -> Any:
        """Decode JSON text back to a value.

        Raises:
            SerializationError: If *text* is not valid JSON.
        """
        try:
            return json.loads(text)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Stored content is not valid JSON: {e}") from e
