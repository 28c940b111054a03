# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Connector-to-Connector Protocol (CCP) messages.

   CCP is the route distribution protocol used between adjacent ILP
   connectors.  A connector asks its peer for routing table updates using
   a route control request and the peer pushes its routing table changes
   using route update requests.  Both requests are acknowledged with an
   empty response.

   The messages are carried as the data of ILP Prepare packets that use a
   fixed destination address, a fixed execution condition and an expiry
   of 60 seconds.  The responses are ILP Fulfill packets that carry the
   fixed fulfillment (32 zero bytes) whose SHA-256 hash is the condition.

   Route control request:

       var ASCII string   speaker
       uint8[16]          last_known_routing_table_id
       uint32             last_known_epoch
       var UTF-8 string   features<var uint count>

   Route update request:

       uint8[16]          routing_table_id
       uint32             current_epoch_index
       uint32             from_epoch_index
       uint32             to_epoch_index
       Route              new_routes<var uint count>
       var ASCII string   withdrawn_routes<var uint count>

   Route:

       var ASCII string   prefix
       var ASCII string   path<var uint count>
       uint8[32]          auth
       RouteProp          props<var uint count>

   RouteProp:

       uint8              metadata   (well-known, transitive, partial, utf8, 4 reserved bits)
       uint16             id
       var octet string   value      (UTF-8 text if the utf8 bit is set)

"""

from binascii import a2b_base64 as base64decode
from collections.abc import MutableMapping
from datetime import timedelta
from io import BytesIO
from typing import ClassVar, Self

from .datamodel import (
    ASCIIStringAdapter,
    Address,
    Bytes32Adapter,
    IdentifierAdapter,
    OpaqueAdapter,
    RoutePropFlags,
    StringAdapter,
    Text,
    UInt16Adapter,
    UInt32Adapter,
    WireData,
)
from .elements import AnnotatedStructure, Element, ListElement, Structure
from .exceptions import FormatError, ProtocolMismatch, ValidationError

__all__ = (  # noqa: RUF022
    # Constants

    'CCP_CONTROL_DESTINATION',
    'CCP_UPDATE_DESTINATION',
    'PEER_PROTOCOL_FULFILLMENT',
    'PEER_PROTOCOL_CONDITION',
    'PEER_PROTOCOL_EXPIRY_DURATION',
    'NULL_ROUTING_TABLE_ID',

    # Structures

    'RouteProp',
    'OpaqueRouteProp',
    'TextRouteProp',
    'Route',

    # Messages

    'Message',
    'RouteControlRequest',
    'RouteUpdateRequest',
)


CCP_CONTROL_DESTINATION = 'peer.route.control'
CCP_UPDATE_DESTINATION = 'peer.route.update'

PEER_PROTOCOL_FULFILLMENT = bytes(32)
PEER_PROTOCOL_CONDITION = base64decode('Zmh6rfhivXdsj8GLjp+OIAiXFIVu4jOzkCpZHQ1fKSU=')  # SHA-256 of PEER_PROTOCOL_FULFILLMENT
PEER_PROTOCOL_EXPIRY_DURATION = timedelta(milliseconds=60000)

NULL_ROUTING_TABLE_ID = '00000000-0000-0000-0000-000000000000'


# Route structures

class RouteProp(AnnotatedStructure):
    """A route property (use OpaqueRouteProp or TextRouteProp depending on the value type)"""

    is_utf8: ClassVar[bool]

    _flag_names_: ClassVar[frozenset[str]] = frozenset({'is_well_known', 'is_transitive', 'is_partial'})

    is_well_known: Element[bool] = Element(bool, default=False)
    is_transitive: Element[bool] = Element(bool, default=False)
    is_partial: Element[bool] = Element(bool, default=False)
    id: Element[int] = Element(int, adapter=UInt16Adapter)

    def __new__(cls, **kw: object) -> Self:
        if cls is RouteProp:
            raise TypeError('Cannot instantiate RouteProp directly, use either OpaqueRouteProp or TextRouteProp')
        return super().__new__(cls, **kw)

    def __init__(self, **kw: object) -> None:
        super().__init__(**kw)
        self._check_flags()

    def __setattr__(self, name: str, value: object) -> None:
        # Once all the flags are set, changing one of them must keep them consistent.
        if name not in self._flag_names_ or not self._flag_names_ <= self.__dict__.keys():
            super().__setattr__(name, value)
            return
        previous = self.__dict__[name]
        super().__setattr__(name, value)
        try:
            self._check_flags()
        except ValidationError:
            self.__dict__[name] = previous
            raise

    def _check_flags(self) -> None:
        if self.is_well_known and self.is_transitive:
            raise ValidationError(f'Invalid flags for {self._describe_()}: a well-known property cannot be transitive')
        if self.is_partial and not self.is_transitive:
            raise ValidationError(f'Invalid flags for {self._describe_()}: only transitive properties can be partial')

    @property
    def flags(self) -> RoutePropFlags:
        # The transitive flag only applies to properties that are not well-known and the partial flag only to transitive ones.
        flags = RoutePropFlags(0)
        if self.is_well_known:
            flags |= RoutePropFlags.WELL_KNOWN
        elif self.is_transitive:
            flags |= RoutePropFlags.TRANSITIVE
            if self.is_partial:
                flags |= RoutePropFlags.PARTIAL
        if self.is_utf8:
            flags |= RoutePropFlags.UTF8
        return flags

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        flags = RoutePropFlags.from_wire(buffer)
        prop_type = TextRouteProp if RoutePropFlags.UTF8 in flags else OpaqueRouteProp
        if not issubclass(prop_type, cls):
            raise FormatError(f'Expected a {cls.__qualname__!r}, but the buffer contains a {prop_type.__qualname__!r}')
        instance = super(Structure, prop_type).__new__(prop_type)
        instance.__dict__['is_well_known'] = RoutePropFlags.WELL_KNOWN in flags
        instance.__dict__['is_transitive'] = RoutePropFlags.TRANSITIVE in flags
        instance.__dict__['is_partial'] = RoutePropFlags.PARTIAL in flags
        prop_type.id.from_wire(instance, buffer)
        prop_type.value.from_wire(instance, buffer)
        return instance

    def to_wire(self) -> bytes:
        return self.flags.to_wire() + self.__class__.id.to_wire(self) + self.__class__.value.to_wire(self)

    def wire_length(self) -> int:
        return self.flags.wire_length() + self.__class__.id.wire_length(self) + self.__class__.value.wire_length(self)


class OpaqueRouteProp(RouteProp):
    is_utf8 = False

    value: Element[bytes] = Element(bytes, default=b'', adapter=OpaqueAdapter)


class TextRouteProp(RouteProp):
    is_utf8 = True

    value: Element[str] = Element(str, default='', adapter=StringAdapter)


class Route(AnnotatedStructure):
    prefix: Element[str] = Element(str, adapter=ASCIIStringAdapter)
    path: ListElement[Address] = ListElement(Address, default=())
    auth: Element[bytes] = Element(bytes, adapter=Bytes32Adapter)
    props: ListElement[RouteProp] = ListElement(RouteProp, default=())

    def _describe_(self) -> str:
        prefix = self.__dict__.get('prefix', None)
        return f'{self.__class__.__qualname__}(prefix={str(prefix)!r})' if prefix is not None else super()._describe_()


# Messages

type MessageType = type[Message]


class Message(AnnotatedStructure):
    # Each message type is identified by the ILP destination address it is sent to.
    # The destination should be provided by the subclasses.

    _destination_: ClassVar[str | None] = None
    _name_: ClassVar[str] = 'message'
    _registry_: ClassVar[MutableMapping[str, MessageType]] = {}

    def __init_subclass__(cls, *, destination: str | None = None, name: str | None = None, **kw: object) -> None:
        super().__init_subclass__(**kw)
        cls._destination_ = destination
        cls._name_ = name or cls.__qualname__
        if destination is not None and cls._registry_.setdefault(destination, cls) is not cls:
            raise TypeError(f'Destination {destination!r} is already used by {cls._registry_[destination].__qualname__!r}')

    def __class_getitem__(cls, destination: str) -> MessageType:
        try:
            return cls._registry_[destination]
        except KeyError as exc:
            raise ProtocolMismatch(f'Unknown CCP destination {destination!r}') from exc


class RouteControlRequest(Message, destination=CCP_CONTROL_DESTINATION, name='route control request'):
    speaker: Element[str] = Element(str, adapter=ASCIIStringAdapter)
    last_known_routing_table_id: Element[str] = Element(str, default=NULL_ROUTING_TABLE_ID, adapter=IdentifierAdapter)
    last_known_epoch: Element[int] = Element(int, default=0, adapter=UInt32Adapter)
    features: ListElement[Text] = ListElement(Text, default=())


class RouteUpdateRequest(Message, destination=CCP_UPDATE_DESTINATION, name='route update request'):
    routing_table_id: Element[str] = Element(str, adapter=IdentifierAdapter)
    current_epoch_index: Element[int] = Element(int, adapter=UInt32Adapter)
    from_epoch_index: Element[int] = Element(int, adapter=UInt32Adapter)
    to_epoch_index: Element[int] = Element(int, adapter=UInt32Adapter)
    new_routes: ListElement[Route] = ListElement(Route, default=())
    withdrawn_routes: ListElement[Address] = ListElement(Address, default=())
