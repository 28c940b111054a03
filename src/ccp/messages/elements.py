# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Declarative structures for CCP messages.

A structure is defined by a sequence of field descriptors. The fields are
encoded to and decoded from the wire in the order they are defined in and
their values are validated when they are assigned. Decoding does not go
through the structure constructor, so a decoded structure mirrors what was
found on the wire.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from functools import reduce
from inspect import Parameter, Signature
from io import BytesIO
from operator import or_
from types import new_class
from typing import Any, ClassVar, Self, cast, dataclass_transform, overload

from .datamodel import AdapterRegistry, DataWireAdapter, DataWireProtocol, List, WireData, encode_length, make_list_type, read_length
from .exceptions import FormatError, ValidationError

__all__ = (  # noqa: RUF022
    'Structure',
    'AnnotatedStructure',

    'DependentElementSpec',

    'Element',
    'FieldDependentElement',
    'ListElement',
)


class Structure:  # noqa: PLW1641
    __signature__: ClassVar[Signature] = Signature()

    _fields_: ClassVar[dict[str, 'FieldDescriptor']] = {}

    _all_arguments: ClassVar[frozenset[str]]
    _mandatory_arguments: ClassVar[frozenset[str]]
    _default_arguments: ClassVar[dict[str, object]]

    def __new__(cls, **kw: object) -> Self:
        if not cls._all_arguments.issuperset(kw):
            raise TypeError(f'Got an unexpected keyword argument {next(iter(set(kw) - cls._all_arguments))!r}')
        if not cls._mandatory_arguments.issubset(kw):
            raise TypeError(f'Missing a required keyword argument {next(iter(cls._mandatory_arguments - set(kw)))!r}')
        return super().__new__(cls)

    def __init__(self, **kw: object) -> None:
        # Assign in definition order, as validation errors for later fields may refer to earlier ones.
        kw = self._default_arguments | kw
        for name in self._fields_:
            setattr(self, name, kw[name])

    def __init_subclass__(cls, **kw: object) -> None:
        super().__init_subclass__(**kw)
        cls._fields_ = cls._fields_ | {name: value for name, value in cls.__dict__.items() if isinstance(value, FieldDescriptor)}
        parameters = [descriptor.signature_parameter for descriptor in cls._fields_.values()]
        cls.__signature__ = Signature(parameters=parameters)
        cls._all_arguments = frozenset(p.name for p in parameters)
        cls._mandatory_arguments = frozenset(p.name for p in parameters if p.default is Parameter.empty)
        cls._default_arguments = {p.name: p.default for p in parameters if p.default is not Parameter.empty}

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({', '.join(f'{name}={_reprproxy(getattr(self, name))!r}' for name in self._fields_)})'

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Structure):
            return self.__class__ is other.__class__ and all(getattr(self, name) == getattr(other, name) for name in self._fields_)
        return NotImplemented

    def _describe_(self) -> str:
        """Identify the structure in validation error messages"""
        return self.__class__.__qualname__

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        instance = super().__new__(cls)
        for field in cls._fields_.values():
            field.from_wire(instance, buffer)
        return instance

    def to_wire(self) -> bytes:
        return b''.join(field.to_wire(self) for field in self._fields_.values())

    def wire_length(self) -> int:
        return sum(field.wire_length(self) for field in self._fields_.values())


# Helpers

class _reprproxy:  # noqa: N801
    # Represent enum members and types by their names, so they can be evaluated back.

    def __init__(self, value: object) -> None:
        self.value = value

    def __repr__(self) -> str:
        match self.value:
            case Enum() as value:  # this also covers Flag which is a subclass of Enum
                return f'{value.__class__.__qualname__}.{value.name}'
            case type() as value:
                return value.__qualname__
            case value:
                return repr(value)

    __str__ = __repr__


def _protocol2adapter[T: DataWireProtocol](proto: type[T]) -> type[DataWireAdapter[T]]:
    # Create a stand-in adapter for a type that implements DataWireProtocol, so that
    # elements can handle all their values through an adapter. The validate method
    # of the stand-in only checks the value type.

    def type_validate(value: T, /) -> T:
        if not isinstance(value, proto):
            raise ValueError(f'Expected a {proto.__qualname__!r} value, got {value!r}')
        return value

    def prepare(ns: dict) -> None:
        ns['_abstract_'] = False
        ns['from_wire'] = staticmethod(proto.from_wire)
        ns['to_wire'] = staticmethod(proto.to_wire)
        ns['wire_length'] = staticmethod(proto.wire_length)
        ns['validate'] = staticmethod(type_validate)

    adapter = new_class(f'{proto.__name__}AdapterStandIn', (DataWireAdapter[T],), exec_body=prepare)
    adapter.__module__ = __name__
    adapter.__qualname__ = f'_protocol2adapter.<generated>.{adapter.__name__}'

    return adapter


type DataWireAdapterType[T] = type[DataWireAdapter[T]]


# Field descriptors

class FieldDescriptor(ABC):
    """Base class for the descriptors that define the fields of a structure"""

    name: str | None = None
    default: Any = NotImplemented

    @property
    @abstractmethod
    def annotation(self) -> object: ...

    @property
    def signature_parameter(self) -> Parameter:
        name = self._require_name()
        if self.default is NotImplemented:
            return Parameter(name=name, kind=Parameter.KEYWORD_ONLY, annotation=self.annotation)
        return Parameter(name=name, kind=Parameter.KEYWORD_ONLY, annotation=self.annotation, default=self.default)

    def _require_name(self) -> str:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        return self.name

    def __set_name__(self, owner: type[Structure], name: str) -> None:
        if self.name is None:
            self.name = name
        elif name != self.name:
            raise TypeError(f'Cannot assign the same {self.__class__.__qualname__!r} to two different names: {self.name!r} and {name!r}')

    @overload
    def __get__(self, instance: None, owner: type[Structure]) -> Self: ...

    @overload
    def __get__(self, instance: Structure, owner: type[Structure] | None = None) -> Any: ...

    def __get__(self, instance: Structure | None, owner: type[Structure] | None = None) -> Any:
        if instance is None:
            return self
        name = self._require_name()
        try:
            return instance.__dict__[name]
        except KeyError as exc:
            raise AttributeError(f'Attribute {name!r} of object {instance.__class__.__qualname__!r} is not set') from exc

    def __delete__(self, instance: Structure) -> None:
        raise AttributeError(f'Attribute {self.name!r} of {instance.__class__.__qualname__!r} object cannot be deleted')

    def _read_error(self, instance: Structure, exc: ValueError) -> FormatError:
        return FormatError(f'Failed to read the {instance.__class__.__qualname__}.{self.name} element from wire: {exc}')

    def _value_error(self, instance: Structure, exc: ValueError) -> ValidationError:
        return ValidationError(f'Invalid value for the {instance._describe_()}.{self.name} element: {exc}')

    @abstractmethod
    def __set__(self, instance: Structure, value: Any) -> None: ...

    @abstractmethod
    def from_wire(self, instance: Structure, buffer: WireData) -> None: ...

    @abstractmethod
    def to_wire(self, instance: Structure) -> bytes: ...

    @abstractmethod
    def wire_length(self, instance: Structure) -> int: ...


class Element[T](FieldDescriptor):
    """A field holding a single value that is encoded using an adapter"""

    def __init__(self, element_type: type[T], /, *, default: T = NotImplemented, adapter: DataWireAdapterType[T] | None = None) -> None:
        self.type = element_type
        self.default = default
        self.provided_adapter = adapter
        if adapter is None:
            if issubclass(element_type, DataWireProtocol):
                adapter = cast(DataWireAdapterType[T], _protocol2adapter(element_type))
            else:
                adapter = AdapterRegistry.get_adapter(element_type)
        if adapter is None:
            raise TypeError('Either the element type must implement the DataWireProtocol or an adapter must be provided')
        if adapter._abstract_:
            raise TypeError(f'Cannot use abstract adapter {adapter.__qualname__!r} (need to select a concrete implementation of it, usually one that defines its size)')
        self.adapter = adapter

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({_reprproxy(self.type)!r}, default={self.default!r}, adapter={_reprproxy(self.provided_adapter)!r})'

    @property
    def annotation(self) -> object:
        return self.type

    def __set__(self, instance: Structure, value: T) -> None:
        name = self._require_name()
        try:
            instance.__dict__[name] = self.adapter.validate(value)
        except ValueError as exc:
            raise self._value_error(instance, exc) from exc

    def from_wire(self, instance: Structure, buffer: WireData) -> None:
        name = self._require_name()
        try:
            instance.__dict__[name] = self.adapter.from_wire(buffer)
        except ValueError as exc:
            raise self._read_error(instance, exc) from exc

    def to_wire(self, instance: Structure) -> bytes:
        return self.adapter.to_wire(self.__get__(instance))

    def wire_length(self, instance: Structure) -> int:
        return self.adapter.wire_length(self.__get__(instance))


@dataclass(kw_only=True, slots=True)
class DependentElementSpec[T: DataWireProtocol, U]:
    """
    Describe the types a dependent element can take.

    The type is selected from type_map by the control value. The element is
    encoded as an OER length followed by the element data.
    """

    type_map: Mapping[U, type[T]]

    def __post_init__(self) -> None:
        if not self.type_map:
            raise TypeError(f'A {self.__class__.__qualname__!r} must have a non-empty type_map')

    def __repr__(self) -> str:
        type_map = {_reprproxy(name): _reprproxy(value) for name, value in self.type_map.items()}
        return f'{self.__class__.__qualname__}({type_map=})'


class DependentElement[T: DataWireProtocol, U](FieldDescriptor):
    """A field whose type depends on a control value"""

    specification: DependentElementSpec[T, U]

    @abstractmethod
    def _get_control_value(self, instance: Structure, /) -> U: ...

    @property
    def annotation(self) -> object:
        return reduce(or_, self.specification.type_map.values())

    def _element_type(self, instance: Structure) -> tuple[U, type[T] | None]:
        control_value = self._get_control_value(instance)
        return control_value, self.specification.type_map.get(control_value, None)

    def __set__(self, instance: Structure, value: T) -> None:
        name = self._require_name()
        control_value, element_type = self._element_type(instance)
        if element_type is None:
            raise ValidationError(f'Cannot find associated type for dependent element {instance._describe_()}.{name} with control value {_reprproxy(control_value)!r}')
        if not isinstance(value, element_type):
            raise TypeError(f'The value for the {name!r} field should be of type {element_type.__qualname__!r}')
        instance.__dict__[name] = value

    def from_wire(self, instance: Structure, buffer: WireData) -> None:
        name = self._require_name()
        control_value, element_type = self._element_type(instance)
        if element_type is None:
            raise FormatError(f'Cannot find associated type for dependent element {instance.__class__.__qualname__}.{name} with control value {_reprproxy(control_value)!r}')
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        try:
            length = read_length(buffer)
        except FormatError as exc:
            raise FormatError(f'Failed to get the length for the {instance.__class__.__qualname__}.{name} element: {exc}') from exc
        element_data = buffer.read(length)
        if len(element_data) < length:
            raise FormatError(f'Insufficient data in buffer to get the {instance.__class__.__qualname__}.{name} element')
        try:
            instance.__dict__[name] = element_type.from_wire(element_data)
        except ValueError as exc:
            raise self._read_error(instance, exc) from exc

    def to_wire(self, instance: Structure) -> bytes:
        data = self.__get__(instance).to_wire()
        return encode_length(len(data)) + data

    def wire_length(self, instance: Structure) -> int:
        length = self.__get__(instance).wire_length()
        return len(encode_length(length)) + length


class FieldDependentElement[T: DataWireProtocol, U](DependentElement[T, U]):
    """A dependent element controlled by the value of a previous field of the same structure"""

    def __init__(self, *, control_field: Element[U], specification: DependentElementSpec[T, U], default: T = NotImplemented) -> None:
        self.control_field = control_field
        self.specification = specification
        self.default = default

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(control_field={self.control_field.name!s}, specification={self.specification!r}, default={self.default!r})'

    def _get_control_value(self, instance: Structure, /) -> U:
        if self.control_field.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on its control field.')
        try:
            return instance.__dict__[self.control_field.name]
        except KeyError as exc:
            raise ValueError(f'Control element {instance.__class__.__qualname__}.{self.control_field.name} is not set') from exc


class ListElement[T: DataWireProtocol](FieldDescriptor):
    """A field holding a list of items, prefixed with the number of items"""

    def __init__(self, item_type: type[T], /, *, default: Sequence[T] = NotImplemented) -> None:
        self.default = default
        self.item_type = item_type
        self.list_type: type[List[T]] = make_list_type(item_type, custom_repr=False)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.item_type.__qualname__}, default={self.default!r})'

    @property
    def annotation(self) -> object:
        return list[self.item_type]  # type: ignore[name-defined]

    def __set__(self, instance: Structure, value: Sequence[T]) -> None:
        name = self._require_name()
        if isinstance(value, str | bytes):
            raise TypeError(f'The value for the {name!r} field should be a sequence of {self.item_type.__qualname__!r} items, not a {value.__class__.__qualname__!r}')
        try:
            instance.__dict__[name] = self.list_type(value)
        except ValueError as exc:
            raise self._value_error(instance, exc) from exc

    def from_wire(self, instance: Structure, buffer: WireData) -> None:
        name = self._require_name()
        try:
            instance.__dict__[name] = self.list_type.from_wire(buffer)
        except ValueError as exc:
            raise self._read_error(instance, exc) from exc

    def to_wire(self, instance: Structure) -> bytes:
        return self.__get__(instance).to_wire()

    def wire_length(self, instance: Structure) -> int:
        return self.__get__(instance).wire_length()


@dataclass_transform(kw_only_default=True, field_specifiers=(Element, FieldDependentElement, ListElement))
class AnnotatedStructure(Structure):
    pass
