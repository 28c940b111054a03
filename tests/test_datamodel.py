# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from datetime import UTC, datetime, timedelta, timezone
from io import BytesIO

import pytest
from ccp.messages.datamodel import (
    AdapterRegistry,
    Address,
    ASCIIStringAdapter,
    BooleanAdapter,
    Bytes32Adapter,
    DataAdapter,
    DataWireAdapter,
    DataWireProtocol,
    Enum,
    ErrorCodeAdapter,
    FixedBytesAdapter,
    FixedSize,
    FixedStringAdapter,
    Flag,
    Identifier,
    IdentifierAdapter,
    List,
    OpaqueAdapter,
    PacketType,
    RoutePropFlags,
    String,
    StringAdapter,
    Text,
    TimestampAdapter,
    UInt8Adapter,
    UInt16Adapter,
    UInt32Adapter,
    UInt64Adapter,
    UnsignedIntegerAdapter,
    VarUIntAdapter,
    encode_length,
    make_list_type,
    read_length,
)
from ccp.messages.exceptions import FormatError


class TestDataModel:

    def test_protocols(self) -> None:
        # Adapters have non-method members, so they can only be checked with isinstance.

        assert isinstance(BooleanAdapter, DataWireAdapter)
        assert isinstance(UnsignedIntegerAdapter, DataWireAdapter)
        assert isinstance(VarUIntAdapter, DataWireAdapter)
        assert isinstance(OpaqueAdapter, DataWireAdapter)
        assert isinstance(FixedBytesAdapter, DataWireAdapter)
        assert isinstance(FixedStringAdapter, DataWireAdapter)
        assert isinstance(StringAdapter, DataWireAdapter)
        assert isinstance(IdentifierAdapter, DataWireAdapter)
        assert isinstance(TimestampAdapter, DataWireAdapter)

        assert issubclass(Enum, DataWireProtocol)
        assert issubclass(Flag, DataWireProtocol)
        assert issubclass(FixedSize, DataWireProtocol)
        assert issubclass(String, DataWireProtocol)
        assert issubclass(List, DataWireProtocol)

    def test_adapter_registry(self) -> None:
        class MyInt(int):
            pass

        AdapterRegistry.associate(MyInt, UInt32Adapter)

        assert AdapterRegistry.get_adapter(bool) is BooleanAdapter  # this is pre-registered
        assert AdapterRegistry.get_adapter(MyInt) is UInt32Adapter
        assert AdapterRegistry.get_adapter(float) is None

        with pytest.raises(TypeError, match=r'Adapters for types that already implement DataWireProtocol must .*'):
            AdapterRegistry.associate(Identifier, IdentifierAdapter)

    def test_length_determinant(self) -> None:
        assert encode_length(0) == b'\x00'
        assert encode_length(127) == b'\x7f'
        assert encode_length(128) == b'\x81\x80'
        assert encode_length(256) == b'\x82\x01\x00'

        for length in (0, 1, 127, 128, 255, 256, 32767, 65536):
            assert read_length(BytesIO(encode_length(length))) == length

        buffer = BytesIO(b'\x81\xc8rest')
        assert read_length(buffer) == 200
        assert buffer.read() == b'rest'

        with pytest.raises(FormatError, match='Insufficient data in buffer to extract the length prefix'):
            read_length(BytesIO(b''))
        with pytest.raises(FormatError, match='Insufficient data in buffer to extract the length prefix'):
            read_length(BytesIO(b'\x82\x01'))
        with pytest.raises(FormatError, match='the long form must specify at least one length byte'):
            read_length(BytesIO(b'\x80'))
        with pytest.raises(FormatError, match='the length has leading zero bytes'):
            read_length(BytesIO(b'\x82\x00\x90'))
        with pytest.raises(FormatError, match='the long form was used for length 5'):
            read_length(BytesIO(b'\x81\x05'))

    def test_boolean_adapter(self) -> None:
        assert BooleanAdapter.from_wire(BytesIO(b'\x00')) is False
        assert BooleanAdapter.from_wire(b'\x00') is False
        assert BooleanAdapter.from_wire(b'\x01') is True
        with pytest.raises(ValueError, match='Invalid boolean value: '):
            BooleanAdapter.from_wire(b'\x02')
        with pytest.raises(ValueError, match='Insufficient data in buffer to extract boolean value'):
            BooleanAdapter.from_wire(b'')
        with pytest.raises(ValueError, match='Invalid boolean value: '):
            BooleanAdapter.validate(1)  # type: ignore[arg-type]
        for value in (False, True):
            assert BooleanAdapter.from_wire(BooleanAdapter.to_wire(value)) is value
            assert len(BooleanAdapter.to_wire(value)) == BooleanAdapter.wire_length(value) == 1

    def test_unsigned_adapters(self) -> None:
        for adapter in (UInt8Adapter, UInt16Adapter, UInt32Adapter, UInt64Adapter):
            max_value = 2**adapter._bits_ - 1
            for value in (0, 1, max_value):
                assert adapter.validate(value) == value
                assert adapter.from_wire(adapter.to_wire(value)) == value
                assert adapter.from_wire(BytesIO(adapter.to_wire(value))) == value
                assert len(adapter.to_wire(value)) == adapter.wire_length(value) == adapter._size_
            with pytest.raises(ValueError, match='Value is out of range for unsigned'):
                adapter.validate(max_value + 1)
            with pytest.raises(ValueError, match='Value is out of range for unsigned'):
                adapter.validate(-1)
            with pytest.raises(ValueError, match='Expected an integer value'):
                adapter.validate(True)  # noqa: FBT003
            with pytest.raises(FormatError, match='Insufficient data in buffer to extract an unsigned'):
                adapter.from_wire(bytes(adapter._size_ - 1))

        assert UInt32Adapter.to_wire(0x01020304) == b'\x01\x02\x03\x04'  # network byte order
        assert UnsignedIntegerAdapter._abstract_ is True
        assert UInt16Adapter._abstract_ is False

    def test_var_uint_adapter(self) -> None:
        assert VarUIntAdapter.to_wire(0) == b'\x01\x00'
        assert VarUIntAdapter.to_wire(255) == b'\x01\xff'
        assert VarUIntAdapter.to_wire(256) == b'\x02\x01\x00'
        assert VarUIntAdapter.to_wire(2**64 - 1) == b'\x08' + b'\xff' * 8

        for value in (0, 1, 127, 128, 65535, 2**32, 2**64 - 1):
            assert VarUIntAdapter.from_wire(VarUIntAdapter.to_wire(value)) == value
            assert len(VarUIntAdapter.to_wire(value)) == VarUIntAdapter.wire_length(value)

        with pytest.raises(FormatError, match='cannot have zero length'):
            VarUIntAdapter.from_wire(b'\x00')
        with pytest.raises(FormatError, match='is too long'):
            VarUIntAdapter.from_wire(b'\x09' + bytes(9))
        with pytest.raises(FormatError, match='Insufficient data in buffer to extract the variable length unsigned integer'):
            VarUIntAdapter.from_wire(b'\x02\x01')
        with pytest.raises(ValueError, match='Value is out of range for a variable length unsigned integer'):
            VarUIntAdapter.validate(2**64)
        with pytest.raises(ValueError, match='Value is out of range for a variable length unsigned integer'):
            VarUIntAdapter.validate(-1)

    def test_bytes_adapters(self) -> None:
        assert OpaqueAdapter.to_wire(b'') == b'\x00'
        assert OpaqueAdapter.to_wire(b'test') == b'\x04test'
        assert OpaqueAdapter.to_wire(bytes(200))[:2] == b'\x81\xc8'
        assert OpaqueAdapter.from_wire(b'\x04test') == b'test'
        assert OpaqueAdapter.validate(bytearray(b'test')) == b'test'
        for value in (b'', b'test', bytes(127), bytes(128), bytes(1000)):
            assert OpaqueAdapter.from_wire(OpaqueAdapter.to_wire(value)) == value
            assert len(OpaqueAdapter.to_wire(value)) == OpaqueAdapter.wire_length(value)
        with pytest.raises(FormatError, match='Insufficient data in buffer to extract the opaque bytes'):
            OpaqueAdapter.from_wire(b'\x04tes')
        with pytest.raises(ValueError, match='Expected a bytes-like value'):
            OpaqueAdapter.validate('test')  # type: ignore[arg-type]

        assert DataAdapter._maxsize_ == 32767
        assert DataAdapter.validate(bytes(32767)) == bytes(32767)
        with pytest.raises(ValueError, match='Value is too long for opaque bytes'):
            DataAdapter.validate(bytes(32768))
        with pytest.raises(FormatError, match='Data length is too big for opaque bytes'):
            DataAdapter.from_wire(b'\x82\x80\x00' + bytes(32768))

        value = bytes(range(32))
        assert Bytes32Adapter.to_wire(value) == value
        assert Bytes32Adapter.from_wire(value + b'extra') == value
        assert Bytes32Adapter.wire_length(value) == 32
        with pytest.raises(ValueError, match=r'Value must have exactly 32 bytes \(value has 31 bytes\)'):
            Bytes32Adapter.validate(bytes(31))
        with pytest.raises(FormatError, match='Insufficient data in buffer to extract 32 bytes'):
            Bytes32Adapter.from_wire(BytesIO(bytes(31)))

    def test_string_adapters(self) -> None:
        assert StringAdapter.to_wire('héllo') == b'\x06h\xc3\xa9llo'
        assert StringAdapter.wire_length('héllo') == 7
        assert StringAdapter.from_wire(b'\x06h\xc3\xa9llo') == 'héllo'
        assert isinstance(StringAdapter.validate('test'), Text)
        with pytest.raises(ValueError, match='Expected a string value'):
            StringAdapter.validate(b'test')  # type: ignore[arg-type]

        assert ASCIIStringAdapter.to_wire('g.alice') == b'\x07g.alice'
        assert isinstance(ASCIIStringAdapter.validate('g.alice'), Address)
        with pytest.raises(ValueError, match='can only contain characters that can be encoded with ascii'):
            ASCIIStringAdapter.validate('g.héllo')
        with pytest.raises(FormatError, match='Cannot decode bytes to'):
            ASCIIStringAdapter.from_wire(b'\x02\xc3\xa9')

        assert ErrorCodeAdapter.from_wire(b'F99rest') == 'F99'
        assert ErrorCodeAdapter.to_wire('T04') == b'T04'
        with pytest.raises(ValueError, match='Value must have exactly 3 characters'):
            ErrorCodeAdapter.validate('F0')
        with pytest.raises(FormatError, match='Insufficient data in buffer to extract a 3 characters string'):
            ErrorCodeAdapter.from_wire(b'F0')

    def test_identifier_adapter(self) -> None:
        text = '0123abcd-4567-89ab-cdef-0123456789ab'
        assert IdentifierAdapter.to_wire(text) == bytes.fromhex('0123abcd456789abcdef0123456789ab')
        assert IdentifierAdapter.from_wire(IdentifierAdapter.to_wire(text)) == text
        assert IdentifierAdapter.validate(text.upper()) == text
        assert IdentifierAdapter.wire_length(text) == 16
        with pytest.raises(FormatError, match='Invalid identifier'):
            IdentifierAdapter.validate('not-an-identifier')

    def test_timestamp_adapter(self) -> None:
        value = datetime(2017, 12, 23, 1, 21, 40, 549000, tzinfo=UTC)
        assert TimestampAdapter.to_wire(value) == b'20171223012140549'
        assert TimestampAdapter.from_wire(b'20171223012140549') == value
        assert TimestampAdapter.from_wire(BytesIO(b'20171223012140549')) == value
        assert TimestampAdapter.wire_length(value) == 17

        # Values are converted to UTC and truncated to millisecond precision
        local = datetime(2017, 12, 23, 3, 21, 40, 549999, tzinfo=timezone(timedelta(hours=2)))
        assert TimestampAdapter.validate(local) == value
        assert TimestampAdapter.validate(local).tzinfo is UTC

        with pytest.raises(ValueError, match='Expected a timezone aware datetime'):
            TimestampAdapter.validate(datetime(2017, 12, 23))  # noqa: DTZ001
        with pytest.raises(FormatError, match='Insufficient data in buffer to extract a timestamp'):
            TimestampAdapter.from_wire(b'2017122301214054')
        with pytest.raises(FormatError, match='Invalid timestamp'):
            TimestampAdapter.from_wire(b'2017122301214054x')
        with pytest.raises(FormatError, match='Invalid timestamp'):
            TimestampAdapter.from_wire(b'20171323012140549')  # month 13

    def test_enums(self) -> None:
        assert PacketType.from_wire(b'\x0c') is PacketType.prepare
        assert PacketType.from_wire(BytesIO(b'\x0d')) is PacketType.fulfill
        assert PacketType.reject.to_wire() == b'\x0e'
        assert PacketType.reject.wire_length() == 1
        with pytest.raises(FormatError, match='is not a valid PacketType'):
            PacketType.from_wire(b'\x01')
        with pytest.raises(FormatError, match='Insufficient data in buffer to extract'):
            PacketType.from_wire(b'')

    def test_flags(self) -> None:
        flags = RoutePropFlags.TRANSITIVE | RoutePropFlags.PARTIAL
        assert flags.to_wire() == b'\x60'
        assert flags.wire_length() == 1
        assert RoutePropFlags.from_wire(b'\x60') == flags
        assert RoutePropFlags.from_wire(b'\x80') is RoutePropFlags.WELL_KNOWN

        # The lower 4 bits are reserved and are ignored when read from the wire
        assert RoutePropFlags.from_wire(b'\x8f') is RoutePropFlags.WELL_KNOWN
        assert RoutePropFlags.from_wire(b'\x0f') == 0
        assert RoutePropFlags.from_wire(b'\xff') == 0xf0

        with pytest.raises(FormatError, match='Insufficient data in buffer to extract'):
            RoutePropFlags.from_wire(b'')

    def test_fixed_size_bytes(self) -> None:
        class Token(FixedSize, size=4):
            pass

        token = Token(b'abcd')
        assert token.to_wire() == b'abcd'
        assert token.wire_length() == 4
        assert Token.from_wire(b'abcdef') == token
        assert isinstance(Token.from_wire(BytesIO(b'abcd')), Token)
        assert repr(token) == "Token(b'abcd')"

        with pytest.raises(FormatError, match='objects must have 4 bytes'):
            Token(b'abc')
        with pytest.raises(FormatError, match='Insufficient data in buffer to extract'):
            Token.from_wire(b'abc')
        with pytest.raises(TypeError, match='Cannot instantiate fixed size bytes type'):
            FixedSize(b'abc')

    def test_identifiers(self) -> None:
        identifier = Identifier.from_string('0123ABCD-4567-89ab-CDEF-0123456789ab')
        assert identifier == bytes.fromhex('0123abcd456789abcdef0123456789ab')
        assert str(identifier) == '0123abcd-4567-89ab-cdef-0123456789ab'
        assert Identifier.from_string(str(identifier)) == identifier
        assert str(Identifier(bytes(16))) == '00000000-0000-0000-0000-000000000000'
        assert repr(Identifier(bytes(16))) == '<Identifier: 00000000-0000-0000-0000-000000000000>'

        for text in ('{0123abcd-4567-89ab-cdef-0123456789ab}',
                     'urn:uuid:0123abcd-4567-89ab-cdef-0123456789ab',
                     '0123abcd456789abcdef0123456789ab',
                     '0123abcd-4567-89ab-cdef-0123456789a',
                     '0123abcd-4567-89ab-cdef-0123456789abc',
                     '0123abcg-4567-89ab-cdef-0123456789ab',
                     ''):
            with pytest.raises(FormatError, match='Invalid identifier'):
                Identifier.from_string(text)

        with pytest.raises(FormatError, match='objects must have 16 bytes'):
            Identifier(bytes(15))

        generated = Identifier.generate()
        assert len(generated) == 16
        assert generated[6] >> 4 == 4  # random UUIDs are version 4
        assert generated != Identifier.generate()

    def test_strings(self) -> None:
        text = Text('héllo')
        assert text == 'héllo'
        assert text.to_wire() == b'\x06h\xc3\xa9llo'
        assert text.wire_length() == 7
        assert Text.from_wire(text.to_wire()) == text
        assert isinstance(Text.from_wire(text.to_wire()), Text)
        assert repr(text) == "Text('héllo')"

        long_text = Text('x' * 200)
        assert long_text.to_wire()[:2] == b'\x81\xc8'
        assert Text.from_wire(long_text.to_wire()) == long_text
        assert len(long_text.to_wire()) == long_text.wire_length()

        address = Address('g.alice')
        assert address.to_wire() == b'\x07g.alice'
        assert Address.from_wire(BytesIO(b'\x07g.alicetrailing')) == address

        with pytest.raises(ValueError, match='can only contain characters that can be encoded with ascii'):
            Address('g.héllo')
        with pytest.raises(TypeError, match='objects can only be created from strings'):
            Address(5)  # type: ignore[arg-type]
        with pytest.raises(FormatError, match='Cannot decode bytes to'):
            Text.from_wire(b'\x02\xff\xfe')
        with pytest.raises(FormatError, match='Insufficient data in buffer to extract'):
            Text.from_wire(b'\x05test')

    def test_list_types(self) -> None:
        AddressList = make_list_type(Address)  # noqa: N806

        value = AddressList(['g.a', 'g.b'])
        assert all(isinstance(item, Address) for item in value)
        assert value.to_wire() == b'\x01\x02\x03g.a\x03g.b'
        assert value.wire_length() == len(value.to_wire())
        assert AddressList.from_wire(value.to_wire()) == value
        assert AddressList.from_wire(BytesIO(value.to_wire())) == ['g.a', 'g.b']
        assert AddressList().to_wire() == b'\x01\x00'
        assert repr(AddressList(['g.a'])) == "AddressList([Address('g.a')])"

        with pytest.raises(ValueError, match='can only contain characters that can be encoded with ascii'):
            AddressList(['g.é'])
        with pytest.raises(FormatError, match='Could not read the number of items'):
            AddressList.from_wire(b'')
        with pytest.raises(FormatError, match='Insufficient data in buffer to extract'):
            AddressList.from_wire(b'\x01\x02\x03g.a')
        with pytest.raises(TypeError, match='Cannot instantiate abstract list'):
            List()

    def test_list_mutation(self) -> None:
        AddressList = make_list_type(Address)  # noqa: N806

        value = AddressList(['g.a'])
        value.append('g.b')
        value.insert(0, 'g.c')
        value.extend(['g.d'])
        value += ['g.e']
        value[0] = 'g.f'
        value[1:2] = ['g.g', 'g.h']
        assert value == ['g.f', 'g.g', 'g.h', 'g.b', 'g.d', 'g.e']
        assert all(isinstance(item, Address) for item in value)
        assert type(value) is AddressList
        assert AddressList.from_wire(value.to_wire()) == value

        with pytest.raises(ValueError, match='can only contain characters that can be encoded with ascii'):
            value.append('g.é')
        with pytest.raises(TypeError, match='can only be created from strings'):
            value[0] = 1  # type: ignore[call-overload]
        assert value == ['g.f', 'g.g', 'g.h', 'g.b', 'g.d', 'g.e']
