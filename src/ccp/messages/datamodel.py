# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Wire data model for CCP messages and the ILP packets that carry them.

All data is encoded using the Octet Encoding Rules (OER) as used by ILP:

    - fixed size unsigned integers are in network byte order
    - variable length data is prefixed by a length determinant, which is
      a single byte for lengths up to 127, or a byte with the high bit set
      and the number of length bytes in the lower 7 bits, followed by the
      length bytes (in network byte order) for larger lengths
    - variable length unsigned integers are encoded as the minimal number
      of bytes needed to represent the value, prefixed by a length determinant
    - lists are prefixed by the number of items, as a variable length
      unsigned integer

"""

import enum
import re
from collections.abc import Buffer, Iterable, MutableMapping
from datetime import UTC, datetime
from functools import reduce
from io import BytesIO
from operator import or_
from types import GenericAlias, NotImplementedType, new_class
from typing import ClassVar, Protocol, Self, SupportsBytes, SupportsIndex, TypeVar, overload, runtime_checkable
from uuid import uuid4

from .exceptions import FormatError

__all__ = (  # noqa: RUF022
    # Protocols and types

    'WireData',
    'DataWireProtocol',
    'DataWireAdapter',

    # Adapters and the adapter registry

    'AdapterRegistry',

    'BooleanAdapter',

    'UnsignedIntegerAdapter',
    'UInt8Adapter',
    'UInt16Adapter',
    'UInt32Adapter',
    'UInt64Adapter',
    'VarUIntAdapter',

    'OpaqueAdapter',
    'DataAdapter',
    'FixedBytesAdapter',
    'Bytes32Adapter',
    'FixedStringAdapter',
    'ErrorCodeAdapter',
    'StringAdapter',
    'ASCIIStringAdapter',
    'IdentifierAdapter',
    'TimestampAdapter',

    # Abstract types

    'Enum',
    'Flag',

    'FixedSize',
    'String',

    'List',
    'make_list_type',

    # Concrete types

    'PacketType',
    'RoutePropFlags',

    'Identifier',
    'Text',
    'Address',

    # Helpers

    'byte_length',
    'encode_length',
    'read_length',
)


type WireData = bytes | bytearray | memoryview | BytesIO


# Protocols

@runtime_checkable
class DataWireProtocol(Protocol):
    """The wire protocol for CCP message data elements"""

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self: ...

    def to_wire(self) -> bytes: ...

    def wire_length(self) -> int: ...


@runtime_checkable
class DataWireAdapter[T](Protocol):
    """Wire protocol adapter for a CCP message data element of type T"""

    _abstract_: ClassVar[bool] = True

    @staticmethod
    def from_wire(buffer: WireData) -> T: ...

    @staticmethod
    def to_wire(value: T, /) -> bytes: ...

    @staticmethod
    def wire_length(value: T, /) -> int: ...

    @staticmethod
    def validate(value: T, /) -> T: ...


class AdapterRegistry[T]:
    _adapters: ClassVar[MutableMapping[type, type[DataWireAdapter]]] = {}

    @classmethod
    def associate(cls, data_type: type[T], adapter: type[DataWireAdapter[T]]) -> None:
        if issubclass(data_type, DataWireProtocol):
            raise TypeError('Adapters for types that already implement DataWireProtocol must be explicitly provided with the element descriptors.')
        cls._adapters[data_type] = adapter

    @classmethod
    def get_adapter(cls, data_type: type[T]) -> type[DataWireAdapter[T]] | None:
        return cls._adapters.get(data_type, None)


# Helpers

def byte_length(number: int) -> int:
    """Return the number of bytes needed to represent the number"""
    return (number.bit_length() + 7) // 8


def encode_length(length: int) -> bytes:
    """Return the OER length determinant for the given length"""
    if length < 0x80:  # noqa: PLR2004
        return length.to_bytes(1)
    size = byte_length(length)
    return (0x80 | size).to_bytes(1) + length.to_bytes(size, byteorder='big')


def read_length(buffer: BytesIO) -> int:
    """Read an OER length determinant from the buffer"""
    prefix = buffer.read(1)
    if not prefix:
        raise FormatError('Insufficient data in buffer to extract the length prefix')
    if prefix[0] & 0x80 == 0:
        return prefix[0]
    size = prefix[0] & 0x7f
    if size == 0:
        raise FormatError('Invalid length prefix: the long form must specify at least one length byte')
    length_data = buffer.read(size)
    if len(length_data) < size:
        raise FormatError('Insufficient data in buffer to extract the length prefix')
    if length_data[0] == 0:
        raise FormatError('Length prefix encoding is not canonical: the length has leading zero bytes')
    length = int.from_bytes(length_data, byteorder='big')
    if length < 0x80:  # noqa: PLR2004
        raise FormatError(f'Length prefix encoding is not canonical: the long form was used for length {length}')
    return length


# Adapters

class BooleanAdapter:
    _abstract_: ClassVar[bool] = False

    @staticmethod
    def from_wire(buffer: WireData) -> bool:
        if isinstance(buffer, BytesIO):
            buffer = buffer.read(1)
        if not buffer:
            raise FormatError('Insufficient data in buffer to extract boolean value')
        match buffer[0]:
            case 0:
                return False
            case 1:
                return True
            case value:
                raise FormatError(f'Invalid boolean value: {value!r}')

    @staticmethod
    def to_wire(value: bool, /) -> bytes:  # noqa: FBT001
        return value.to_bytes(1)

    @staticmethod
    def wire_length(_: bool, /) -> int:  # noqa: FBT001
        return 1

    @staticmethod
    def validate(value: bool) -> bool:  # noqa: FBT001
        if not isinstance(value, bool):
            raise ValueError(f'Invalid boolean value: {value!r}')
        return value


AdapterRegistry.associate(bool, BooleanAdapter)


class UnsignedIntegerAdapter:
    _abstract_: ClassVar[bool] = True
    _bits_: ClassVar[int] = NotImplemented
    _size_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, bits: int = NotImplemented, **kw: object) -> None:
        if bits is not NotImplemented:
            cls._bits_ = bits
            cls._size_ = bits // 8
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, buffer: WireData) -> int:
        if isinstance(buffer, BytesIO):
            data = buffer.read(cls._size_)
        else:
            data = buffer[:cls._size_]
        if len(data) < cls._size_:
            raise FormatError(f'Insufficient data in buffer to extract an unsigned {cls._bits_}-bit integer')
        return int.from_bytes(data, byteorder='big')

    @classmethod
    def to_wire(cls, value: int, /) -> bytes:
        return value.to_bytes(cls._size_, byteorder='big')

    @classmethod
    def wire_length(cls, _: int, /) -> int:
        return cls._size_

    @classmethod
    def validate(cls, value: int, /) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f'Expected an integer value, got {value!r}')
        if value < 0 or value.bit_length() > cls._bits_:
            raise ValueError(f'Value is out of range for unsigned {cls._bits_}-bits integer: {value!r}')
        return value


class UInt8Adapter(UnsignedIntegerAdapter, bits=8):
    pass


class UInt16Adapter(UnsignedIntegerAdapter, bits=16):
    pass


class UInt32Adapter(UnsignedIntegerAdapter, bits=32):
    pass


class UInt64Adapter(UnsignedIntegerAdapter, bits=64):
    pass


class VarUIntAdapter:
    """Adapter for unsigned integers encoded with the minimal number of bytes, prefixed with their length"""

    _abstract_: ClassVar[bool] = False
    _maxsize_: ClassVar[int] = 8  # values are limited to 64 bits

    @classmethod
    def from_wire(cls, buffer: WireData) -> int:
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        data_length = read_length(buffer)
        if data_length == 0:
            raise FormatError('Variable length unsigned integer cannot have zero length')
        if data_length > cls._maxsize_:
            raise FormatError(f'Variable length unsigned integer is too long ({data_length} > {cls._maxsize_} bytes)')
        data = buffer.read(data_length)
        if len(data) < data_length:
            raise FormatError('Insufficient data in buffer to extract the variable length unsigned integer')
        return int.from_bytes(data, byteorder='big')

    @classmethod
    def to_wire(cls, value: int, /) -> bytes:
        size = max(byte_length(value), 1)
        return encode_length(size) + value.to_bytes(size, byteorder='big')

    @classmethod
    def wire_length(cls, value: int, /) -> int:
        return 1 + max(byte_length(value), 1)

    @classmethod
    def validate(cls, value: int, /) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f'Expected an integer value, got {value!r}')
        if value < 0 or byte_length(value) > cls._maxsize_:
            raise ValueError(f'Value is out of range for a variable length unsigned integer: {value!r}')
        return value


class OpaqueAdapter:
    """Adapter for a bytes buffer prefixed with its length, optionally limited to maxsize bytes"""

    _abstract_: ClassVar[bool] = False
    _maxsize_: ClassVar[int | None] = None

    def __init_subclass__(cls, *, maxsize: int | None = None, **kw: object) -> None:
        if maxsize is not None:
            cls._maxsize_ = maxsize
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, buffer: WireData) -> bytes:
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        data_length = read_length(buffer)
        if cls._maxsize_ is not None and data_length > cls._maxsize_:
            raise FormatError(f'Data length is too big for opaque bytes ({data_length} > {cls._maxsize_})')
        opaque_data = buffer.read(data_length)
        if len(opaque_data) < data_length:
            raise FormatError('Insufficient data in buffer to extract the opaque bytes')
        return opaque_data

    @classmethod
    def to_wire(cls, value: bytes, /) -> bytes:
        return encode_length(len(value)) + value

    @classmethod
    def wire_length(cls, value: bytes, /) -> int:
        return len(encode_length(len(value))) + len(value)

    @classmethod
    def validate(cls, value: bytes, /) -> bytes:
        if not isinstance(value, bytes | bytearray | memoryview):
            raise ValueError(f'Expected a bytes-like value, got {value!r}')
        if cls._maxsize_ is not None and len(value) > cls._maxsize_:
            raise ValueError(f'Value is too long for opaque bytes (max length is {cls._maxsize_}, value has {len(value)} bytes)')
        return bytes(value)


class DataAdapter(OpaqueAdapter, maxsize=32767):
    """The data carried by ILP packets"""


class FixedBytesAdapter:
    """Adapter for a bytes buffer of exactly size bytes, without a length prefix"""

    _abstract_: ClassVar[bool] = True
    _size_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, size: int = NotImplemented, **kw: object) -> None:
        if size is not NotImplemented:
            cls._size_ = size
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, buffer: WireData) -> bytes:
        if isinstance(buffer, BytesIO):
            data = buffer.read(cls._size_)
        else:
            data = buffer[:cls._size_]
        if len(data) < cls._size_:
            raise FormatError(f'Insufficient data in buffer to extract {cls._size_} bytes')
        return bytes(data)

    @classmethod
    def to_wire(cls, value: bytes, /) -> bytes:
        return value

    @classmethod
    def wire_length(cls, _: bytes, /) -> int:
        return cls._size_

    @classmethod
    def validate(cls, value: bytes, /) -> bytes:
        if not isinstance(value, bytes | bytearray | memoryview):
            raise ValueError(f'Expected a bytes-like value, got {value!r}')
        if len(value) != cls._size_:
            raise ValueError(f'Value must have exactly {cls._size_} bytes (value has {len(value)} bytes)')
        return bytes(value)


class Bytes32Adapter(FixedBytesAdapter, size=32):
    pass


class FixedStringAdapter:
    """Adapter for an ASCII string of exactly size characters, without a length prefix"""

    _abstract_: ClassVar[bool] = True
    _size_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, size: int = NotImplemented, **kw: object) -> None:
        if size is not NotImplemented:
            cls._size_ = size
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, buffer: WireData) -> str:
        if isinstance(buffer, BytesIO):
            data = buffer.read(cls._size_)
        else:
            data = buffer[:cls._size_]
        if len(data) < cls._size_:
            raise FormatError(f'Insufficient data in buffer to extract a {cls._size_} characters string')
        try:
            return bytes(data).decode('ascii')
        except UnicodeDecodeError as exc:
            raise FormatError(f'Cannot decode bytes to string: {exc}') from exc

    @classmethod
    def to_wire(cls, value: str, /) -> bytes:
        return value.encode('ascii')

    @classmethod
    def wire_length(cls, _: str, /) -> int:
        return cls._size_

    @classmethod
    def validate(cls, value: str, /) -> str:
        if not isinstance(value, str) or not value.isascii():
            raise ValueError(f'Expected an ASCII string, got {value!r}')
        if len(value) != cls._size_:
            raise ValueError(f'Value must have exactly {cls._size_} characters (value has {len(value)})')
        return value


class ErrorCodeAdapter(FixedStringAdapter, size=3):
    pass


class TimestampAdapter:
    """Adapter for interledger timestamps (YYYYMMDDHHMMSSfff in UTC) represented as timezone aware datetime objects"""

    _abstract_: ClassVar[bool] = False
    _size_: ClassVar[int] = 17

    @classmethod
    def from_wire(cls, buffer: WireData) -> datetime:
        if isinstance(buffer, BytesIO):
            data = buffer.read(cls._size_)
        else:
            data = buffer[:cls._size_]
        if len(data) < cls._size_:
            raise FormatError('Insufficient data in buffer to extract a timestamp')
        data = bytes(data)
        if not data.isdigit():
            raise FormatError(f'Invalid timestamp: {data!r}')
        text = data.decode('ascii')
        try:
            return datetime(int(text[0:4]), int(text[4:6]), int(text[6:8]), int(text[8:10]), int(text[10:12]), int(text[12:14]), int(text[14:17]) * 1000, tzinfo=UTC)
        except ValueError as exc:
            raise FormatError(f'Invalid timestamp {text!r}: {exc}') from exc

    @classmethod
    def to_wire(cls, value: datetime, /) -> bytes:
        value = value.astimezone(UTC)
        return f'{value.year:04d}{value.month:02d}{value.day:02d}{value.hour:02d}{value.minute:02d}{value.second:02d}{value.microsecond // 1000:03d}'.encode('ascii')

    @classmethod
    def wire_length(cls, _: datetime, /) -> int:
        return cls._size_

    @classmethod
    def validate(cls, value: datetime, /) -> datetime:
        if not isinstance(value, datetime) or value.tzinfo is None:
            raise ValueError(f'Expected a timezone aware datetime, got {value!r}')
        value = value.astimezone(UTC)
        return value.replace(microsecond=value.microsecond - value.microsecond % 1000)  # timestamps have millisecond precision


# Enumeration and flag types

class Enum(enum.IntEnum):
    _size_: ClassVar[int]

    def __init_subclass__(cls, *, size: int = 1, **kw: object) -> None:
        cls._size_ = size
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if isinstance(buffer, BytesIO):
            data = buffer.read(cls._size_)
        else:
            data = buffer[:cls._size_]
        if len(data) < cls._size_:
            raise FormatError(f'Insufficient data in buffer to extract {cls.__qualname__!r}')
        try:
            return cls(int.from_bytes(data, byteorder='big'))
        except ValueError as exc:
            raise FormatError(str(exc)) from exc

    def to_wire(self) -> bytes:
        return self.to_bytes(self._size_, byteorder='big')

    def wire_length(self) -> int:
        return self._size_


class Flag(enum.IntFlag):
    _size_: ClassVar[int]

    def __init_subclass__(cls, *, size: int = 1, **kw: object) -> None:
        cls._size_ = size
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if isinstance(buffer, BytesIO):
            data = buffer.read(cls._size_)
        else:
            data = buffer[:cls._size_]
        if len(data) < cls._size_:
            raise FormatError(f'Insufficient data in buffer to extract {cls.__qualname__!r}')
        # Bits that do not belong to any of the defined flags are reserved and are ignored
        return cls(int.from_bytes(data, byteorder='big') & reduce(or_, cls, cls(0)))

    def to_wire(self) -> bytes:
        return self.to_bytes(self._size_, byteorder='big')

    def wire_length(self) -> int:
        return self._size_


class PacketType(Enum):
    prepare = 12
    fulfill = 13
    reject = 14


class RoutePropFlags(Flag):
    # The lower 4 bits are reserved
    UTF8 = 0x10
    PARTIAL = 0x20
    TRANSITIVE = 0x40
    WELL_KNOWN = 0x80


# Byte strings

class FixedSize(bytes):
    """A fixed size bytes buffer"""

    _size_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, size: int = NotImplemented, **kw: object) -> None:
        if size is not NotImplemented:
            cls._size_ = size
        super().__init_subclass__(**kw)

    @overload
    def __new__(cls) -> Self: ...

    @overload
    def __new__(cls, o: Iterable[SupportsIndex] | SupportsIndex | SupportsBytes | Buffer, /) -> Self: ...

    @overload
    def __new__(cls, string: str, /, encoding: str, errors: str = ...) -> Self: ...

    def __new__(cls, *args, **kw):
        if cls._size_ is NotImplemented:
            raise TypeError(f'Cannot instantiate fixed size bytes type {cls.__qualname__!r} that does not define its size')
        instance = super().__new__(cls, *args, **kw)
        if len(instance) != cls._size_:
            raise FormatError(f'{cls.__qualname__!r} objects must have {cls._size_} bytes')
        return instance

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({super().__repr__()})'

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if cls._size_ is NotImplemented:
            raise TypeError(f'Cannot instantiate fixed size bytes type {cls.__qualname__!r} that does not define its size')
        if isinstance(buffer, BytesIO):
            data = buffer.read(cls._size_)
        else:
            data = buffer[:cls._size_]
        if len(data) < cls._size_:
            raise FormatError(f'Insufficient data in buffer to extract {cls.__qualname__!r}')
        return cls(data)

    def to_wire(self) -> bytes:
        return bytes(self)

    def wire_length(self) -> int:
        return self._size_


# IDs

class Identifier(FixedSize, size=16):
    """A 16 bytes identifier, represented as text in the canonical hyphenated UUID form"""

    _pattern_: ClassVar[re.Pattern[str]] = re.compile(r'[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}')

    def __repr__(self) -> str:
        return f'<{self.__class__.__qualname__}: {self}>'

    def __str__(self) -> str:
        value = self.hex()
        return f'{value[:8]}-{value[8:12]}-{value[12:16]}-{value[16:20]}-{value[20:]}'

    @classmethod
    def from_string(cls, value: str) -> Self:
        if not isinstance(value, str) or cls._pattern_.fullmatch(value) is None:
            raise FormatError(f'Invalid identifier: {value!r} (expected the xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx form)')
        return cls(bytes.fromhex(value.replace('-', '')))

    @classmethod
    def generate(cls) -> Self:
        return cls(uuid4().bytes)


# Text strings

class String(str):
    """A string encoded as length prefixed bytes"""

    _encoding_: ClassVar[str] = 'utf-8'

    def __init_subclass__(cls, *, encoding: str = NotImplemented, **kw: object) -> None:
        if encoding is not NotImplemented:
            cls._encoding_ = encoding
        super().__init_subclass__(**kw)

    def __new__(cls, value: str = '', /) -> Self:
        if not isinstance(value, str):
            raise TypeError(f'{cls.__qualname__!r} objects can only be created from strings, got {value!r}')
        instance = super().__new__(cls, value)
        try:
            instance.encode(cls._encoding_)
        except UnicodeEncodeError as exc:
            raise ValueError(f'{cls.__qualname__!r} objects can only contain characters that can be encoded with {cls._encoding_}: {value!r}') from exc
        return instance

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({super().__repr__()})'

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        data_length = read_length(buffer)
        data = buffer.read(data_length)
        if len(data) < data_length:
            raise FormatError(f'Insufficient data in buffer to extract {cls.__qualname__!r}')
        try:
            return cls(data.decode(cls._encoding_))
        except UnicodeDecodeError as exc:
            raise FormatError(f'Cannot decode bytes to {cls.__qualname__!r}: {exc}') from exc

    def to_wire(self) -> bytes:
        data = self.encode(self._encoding_)
        return encode_length(len(data)) + data

    def wire_length(self) -> int:
        data_length = len(self.encode(self._encoding_))
        return len(encode_length(data_length)) + data_length


class Text(String, encoding='utf-8'):
    pass


class Address(String, encoding='ascii'):
    """An address, address prefix or node name (ASCII only)"""


# Adapters for strings and identifiers that are exposed as plain str values

class StringAdapter:
    """Represent strings as UTF-8 encoded length prefixed bytes"""

    _abstract_: ClassVar[bool] = False
    _type_: ClassVar[type[String]] = Text

    @classmethod
    def from_wire(cls, buffer: WireData) -> str:
        return cls._type_.from_wire(buffer)

    @classmethod
    def to_wire(cls, value: str, /) -> bytes:
        return cls._type_(value).to_wire()

    @classmethod
    def wire_length(cls, value: str, /) -> int:
        return cls._type_(value).wire_length()

    @classmethod
    def validate(cls, value: str, /) -> str:
        if not isinstance(value, str):
            raise ValueError(f'Expected a string value, got {value!r}')
        return cls._type_(value)


class ASCIIStringAdapter(StringAdapter):
    """Represent strings as ASCII encoded length prefixed bytes"""

    _type_ = Address


class IdentifierAdapter:
    """Represent identifiers as canonical strings, while using their 16 bytes binary form on the wire"""

    _abstract_: ClassVar[bool] = False
    _size_: ClassVar[int] = Identifier._size_

    @classmethod
    def from_wire(cls, buffer: WireData) -> str:
        return str(Identifier.from_wire(buffer))

    @classmethod
    def to_wire(cls, value: str, /) -> bytes:
        return Identifier.from_string(value).to_wire()

    @classmethod
    def wire_length(cls, _: str, /) -> int:
        return cls._size_

    @classmethod
    def validate(cls, value: str, /) -> str:
        return str(Identifier.from_string(value))


# List types

class List[T: DataWireProtocol](list[T]):
    """A list of items, prefixed with the number of items it contains"""

    _type_: type[T] = NotImplementedType

    def __init_subclass__(cls, *, custom_repr: bool = True, **kw: object) -> None:
        if not custom_repr:
            cls.__repr__ = list.__repr__  # type: ignore[method-assign]
        for base in getattr(cls, '__orig_bases__', ()):
            if isinstance(base, GenericAlias) and isinstance(base.__origin__, type) and issubclass(base.__origin__, List):
                match base.__args__[0]:
                    case TypeVar():
                        pass  # new type is still generic
                    case type() as list_type:
                        cls._type_ = list_type
                    case _:
                        raise TypeError(f'The {cls.__qualname__!r} type can only be parameterized with a single base type or a type variable')
        super().__init_subclass__(**kw)

    def __init__(self, iterable: Iterable[T] = (), /) -> None:
        if self._type_ is NotImplementedType:
            raise TypeError(f'Cannot instantiate abstract list {self.__class__.__qualname__!r} that does not define its item type')
        super().__init__(self._coerce(item) for item in iterable)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({super().__repr__()})'

    # Items are converted to the item type however they are added, so the list can always be encoded.

    def _coerce(self, item: object) -> T:
        item_type = self._type_
        return item if isinstance(item, item_type) else item_type(item)  # type: ignore[call-arg]

    def append(self, item: T, /) -> None:
        super().append(self._coerce(item))

    def insert(self, index: SupportsIndex, item: T, /) -> None:
        super().insert(index, self._coerce(item))

    def extend(self, iterable: Iterable[T], /) -> None:
        super().extend(self._coerce(item) for item in iterable)

    def __iadd__(self, iterable: Iterable[T], /) -> Self:  # type: ignore[override,misc]
        self.extend(iterable)
        return self

    @overload
    def __setitem__(self, index: SupportsIndex, value: T, /) -> None: ...

    @overload
    def __setitem__(self, index: slice, value: Iterable[T], /) -> None: ...

    def __setitem__(self, index: SupportsIndex | slice, value: T | Iterable[T], /) -> None:
        if isinstance(index, slice):
            super().__setitem__(index, [self._coerce(item) for item in value])  # type: ignore[union-attr]
        else:
            super().__setitem__(index, self._coerce(value))

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if cls._type_ is NotImplementedType:
            raise TypeError(f'Cannot instantiate abstract list {cls.__qualname__!r} that does not define its item type')
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        try:
            count = VarUIntAdapter.from_wire(buffer)
        except FormatError as exc:
            raise FormatError(f'Could not read the number of items for {cls.__qualname__!r}: {exc}') from exc
        items = []
        for _ in range(count):
            item = cls._type_.from_wire(buffer)
            items.append(item)
        return cls(items)

    def to_wire(self) -> bytes:
        return VarUIntAdapter.to_wire(len(self)) + b''.join(item.to_wire() for item in self)

    def wire_length(self) -> int:
        return VarUIntAdapter.wire_length(len(self)) + sum(item.wire_length() for item in self)


def make_list_type[T: DataWireProtocol](item_type: type[T], *, custom_repr: bool = True) -> type[List[T]]:
    return new_class(f'{item_type.__name__}List', (List[item_type],), kwds={'custom_repr': custom_repr})  # type: ignore[valid-type]
