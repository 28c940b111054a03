# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
ILPv4 packets used as the transport envelope for CCP messages.

   Every ILP packet is a one byte packet type followed by the packet body
   as a variable length octet string:

       uint8              type
       var octet string   body

   The bodies for the packet types used by CCP are:

       ILP Prepare (type 12):
           uint64             amount
           timestamp          expires_at           (YYYYMMDDHHMMSSfff in UTC)
           uint8[32]          execution_condition
           var ASCII string   destination
           var octet string   data                 (at most 32767 bytes)

       ILP Fulfill (type 13):
           uint8[32]          fulfillment
           var octet string   data

       ILP Reject (type 14):
           char[3]            code
           var ASCII string   triggered_by
           var UTF-8 string   message
           var octet string   data

"""

from datetime import datetime

from .datamodel import (
    ASCIIStringAdapter,
    Bytes32Adapter,
    DataAdapter,
    ErrorCodeAdapter,
    PacketType,
    StringAdapter,
    TimestampAdapter,
    UInt64Adapter,
    WireData,
)
from .elements import AnnotatedStructure, DependentElementSpec, Element, FieldDependentElement
from .exceptions import ProtocolMismatch

__all__ = (  # noqa: RUF022
    'IlpPrepare',
    'IlpFulfill',
    'IlpReject',
    'IlpPacket',

    'serialize_request_envelope',
    'deserialize_request_envelope',
    'serialize_response_envelope',
    'deserialize_response_envelope',
)


class IlpPrepare(AnnotatedStructure):
    amount: Element[int] = Element(int, default=0, adapter=UInt64Adapter)
    expires_at: Element[datetime] = Element(datetime, adapter=TimestampAdapter)
    execution_condition: Element[bytes] = Element(bytes, adapter=Bytes32Adapter)
    destination: Element[str] = Element(str, adapter=ASCIIStringAdapter)
    data: Element[bytes] = Element(bytes, default=b'', adapter=DataAdapter)


class IlpFulfill(AnnotatedStructure):
    fulfillment: Element[bytes] = Element(bytes, adapter=Bytes32Adapter)
    data: Element[bytes] = Element(bytes, default=b'', adapter=DataAdapter)


class IlpReject(AnnotatedStructure):
    code: Element[str] = Element(str, adapter=ErrorCodeAdapter)
    triggered_by: Element[str] = Element(str, default='', adapter=ASCIIStringAdapter)
    message: Element[str] = Element(str, default='', adapter=StringAdapter)
    data: Element[bytes] = Element(bytes, default=b'', adapter=DataAdapter)


type IlpPacketBody = IlpPrepare | IlpFulfill | IlpReject


class IlpPacket(AnnotatedStructure):
    type: Element[PacketType] = Element(PacketType)
    packet: FieldDependentElement[IlpPacketBody, PacketType] = FieldDependentElement(
        control_field=type,
        specification=DependentElementSpec(
            type_map={
                PacketType.prepare: IlpPrepare,
                PacketType.fulfill: IlpFulfill,
                PacketType.reject: IlpReject,
            },
        ),
    )

    @classmethod
    def wrap(cls, packet: IlpPacketBody) -> 'IlpPacket':
        match packet:
            case IlpPrepare():
                packet_type = PacketType.prepare
            case IlpFulfill():
                packet_type = PacketType.fulfill
            case IlpReject():
                packet_type = PacketType.reject
            case _:
                raise TypeError(f'Cannot wrap {packet!r} into an ILP packet')
        return cls(type=packet_type, packet=packet)


def serialize_request_envelope(*, amount: int, destination: str, execution_condition: bytes, expires_at: datetime, data: bytes) -> bytes:
    prepare = IlpPrepare(amount=amount, destination=destination, execution_condition=execution_condition, expires_at=expires_at, data=data)
    return IlpPacket.wrap(prepare).to_wire()


def deserialize_request_envelope(data: WireData) -> IlpPrepare:
    packet = IlpPacket.from_wire(data).packet
    if not isinstance(packet, IlpPrepare):
        raise ProtocolMismatch(f'Expected an ILP Prepare packet, got an {packet.__class__.__qualname__}')
    return packet


def serialize_response_envelope(*, fulfillment: bytes, data: bytes = b'') -> bytes:
    return IlpPacket.wrap(IlpFulfill(fulfillment=fulfillment, data=data)).to_wire()


def deserialize_response_envelope(data: WireData) -> IlpFulfill | IlpReject:
    packet = IlpPacket.from_wire(data).packet
    if isinstance(packet, IlpPrepare):
        raise ProtocolMismatch('Expected an ILP Fulfill or Reject packet, got an IlpPrepare')
    return packet
