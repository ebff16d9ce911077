"""
Typed merge keys.

A merge key is extracted from one column of every record and decides where
the record lands in the merged output. One key type is chosen per run:

    Unsigned32Integer   0 .. 4294967295, optional leading '+'
    Signed32Integer     -2147483648 .. 2147483647, optional sign
    String              any text, compared lexicographically

Example:
    >>> from file_merge_tools.keys import KeyType
    >>> KeyType.UNSIGNED_32.parse("124") < KeyType.UNSIGNED_32.parse("1000")
    True
    >>> KeyType.STRING.parse("124") < KeyType.STRING.parse("1000")
    False
"""

import re
from enum import Enum
from typing import Union

from .errors import FileMergeError

_UNSIGNED_RE = re.compile(r"\+?[0-9]+")
_SIGNED_RE = re.compile(r"[+-]?[0-9]+")

_BOUNDS = {
    "Unsigned32Integer": (0, 2**32 - 1),
    "Signed32Integer": (-(2**31), 2**31 - 1),
}


class KeyParseError(FileMergeError, ValueError):
    """Raised when column text does not parse as the configured key type."""

    def __init__(self, text: str, key_type: "KeyType"):
        super().__init__(f"Cannot parse {text!r} as {key_type.value}")
        self.text = text
        self.key_type = key_type


class KeyType(Enum):
    """The data type of the merge key, selected once per run."""

    UNSIGNED_32 = "Unsigned32Integer"
    SIGNED_32 = "Signed32Integer"
    STRING = "String"

    @classmethod
    def from_name(cls, name: str) -> "KeyType":
        """Look up a key type by its command-line name."""
        for key_type in cls:
            if key_type.value == name.strip():
                return key_type
        raise ValueError(
            f"Unknown key type {name!r}, valid choices: "
            + ", ".join(key_type.value for key_type in cls)
        )

    def parse(self, text: str) -> "KeyValue":
        """
        Parse column text into a KeyValue of this type.

        Args:
            text: Raw column text (no surrounding whitespace is tolerated
                for integer types)

        Returns:
            KeyValue tagged with this key type

        Raises:
            KeyParseError: If text does not match the type's format or range
        """
        if self is KeyType.STRING:
            return KeyValue(self, text)

        pattern = _UNSIGNED_RE if self is KeyType.UNSIGNED_32 else _SIGNED_RE
        if not pattern.fullmatch(text):
            raise KeyParseError(text, self)

        value = int(text)
        low, high = _BOUNDS[self.value]
        if not low <= value <= high:
            raise KeyParseError(text, self)
        return KeyValue(self, value)


class KeyValue:
    """
    A merge key: one scalar tagged with the KeyType it was parsed as.

    Keys compare with the native order of their payload (numeric for the
    integer types, lexicographic for strings). Keys of different types
    never compare; mixing them is a programming error.
    """

    __slots__ = ("key_type", "value")

    def __init__(self, key_type: KeyType, value: Union[int, str]):
        self.key_type = key_type
        self.value = value

    def _check(self, other):
        if not isinstance(other, KeyValue):
            return False
        if other.key_type is not self.key_type:
            raise TypeError(
                f"Cannot compare {self.key_type.value} key with {other.key_type.value} key"
            )
        return True

    def __lt__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.value < other.value

    def __le__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.value <= other.value

    def __gt__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.value > other.value

    def __ge__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.value >= other.value

    def __eq__(self, other):
        if not isinstance(other, KeyValue):
            return NotImplemented
        return self.key_type is other.key_type and self.value == other.value

    def __hash__(self):
        return hash((self.key_type, self.value))

    def __str__(self):
        # Manifest text form; parses back with key_type.parse()
        return str(self.value)

    def __repr__(self):
        return f"KeyValue({self.key_type.value}, {self.value!r})"
