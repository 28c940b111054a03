# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Encoding and decoding of CCP requests and responses carried inside ILP packets"""

import logging
from datetime import UTC, datetime

from ccp.messages import (
    CCP_CONTROL_DESTINATION,
    CCP_UPDATE_DESTINATION,
    NULL_ROUTING_TABLE_ID,
    PEER_PROTOCOL_CONDITION,
    PEER_PROTOCOL_EXPIRY_DURATION,
    PEER_PROTOCOL_FULFILLMENT,
    Message,
    RouteControlRequest,
    RouteUpdateRequest,
)
from ccp.messages.datamodel import WireData
from ccp.messages.envelope import (
    IlpPrepare,
    IlpReject,
    deserialize_request_envelope,
    deserialize_response_envelope,
    serialize_request_envelope,
    serialize_response_envelope,
)
from ccp.messages.exceptions import AuthenticationError, Expired, ProtocolMismatch

__all__ = (  # noqa: RUF022
    'CCP_CONTROL_DESTINATION',
    'CCP_UPDATE_DESTINATION',
    'PEER_PROTOCOL_FULFILLMENT',
    'PEER_PROTOCOL_CONDITION',
    'PEER_PROTOCOL_EXPIRY_DURATION',
    'NULL_ROUTING_TABLE_ID',

    'serialize_route_control_request',
    'deserialize_route_control_request',
    'serialize_route_update_request',
    'deserialize_route_update_request',
    'deserialize_request',
    'serialize_response',
    'deserialize_response',
)


log = logging.getLogger(__name__)


def _current_time(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(UTC)
    if now.utcoffset() is None:
        raise ValueError(f'The current time must be a timezone aware datetime, got {now!r}')
    return now


def _serialize_request(request: Message, now: datetime | None) -> bytes:
    expires_at = _current_time(now) + PEER_PROTOCOL_EXPIRY_DURATION
    log.debug('Encoding %s for %s (expires at %s)', request._name_, request._destination_, expires_at)
    return serialize_request_envelope(
        amount=0,
        destination=request._destination_,
        execution_condition=PEER_PROTOCOL_CONDITION,
        expires_at=expires_at,
        data=request.to_wire(),
    )


def _validate_envelope(prepare: IlpPrepare, message_type: type[Message], now: datetime | None) -> None:
    if prepare.destination != message_type._destination_:
        log.debug('Rejected packet for %s: expected a %s', prepare.destination, message_type._name_)
        raise ProtocolMismatch(f'packet is not a CCP {message_type._name_}.')
    if prepare.execution_condition != PEER_PROTOCOL_CONDITION:
        log.debug('Rejected %s: the packet does not contain the peer protocol condition', message_type._name_)
        raise AuthenticationError('packet does not contain correct condition for a peer protocol request.')
    now = _current_time(now)
    if prepare.expires_at <= now:
        log.debug('Rejected %s: the packet expired at %s', message_type._name_, prepare.expires_at)
        raise Expired(f'CCP {message_type._name_} has expired at {prepare.expires_at.isoformat()}.')


def _deserialize_request[M: Message](data: WireData, message_type: type[M], now: datetime | None) -> M:
    prepare = deserialize_request_envelope(data)
    _validate_envelope(prepare, message_type, now)
    return message_type.from_wire(prepare.data)


def serialize_route_control_request(request: RouteControlRequest, *, now: datetime | None = None) -> bytes:
    """Encode a route control request as an ILP Prepare packet that expires 60 seconds from now"""
    return _serialize_request(request, now)


def deserialize_route_control_request(data: WireData, *, now: datetime | None = None) -> RouteControlRequest:
    """
    Decode a route control request from an ILP Prepare packet.

    The packet must be sent to the route control destination, must use the
    peer protocol condition and must not have expired, otherwise one of
    ProtocolMismatch, AuthenticationError or Expired is raised (the checks
    are done in this order, before the payload is decoded).

    The current time is taken from the system clock, unless provided with
    now, which must be a timezone aware datetime.
    """
    return _deserialize_request(data, RouteControlRequest, now)


def serialize_route_update_request(request: RouteUpdateRequest, *, now: datetime | None = None) -> bytes:
    """Encode a route update request as an ILP Prepare packet that expires 60 seconds from now"""
    return _serialize_request(request, now)


def deserialize_route_update_request(data: WireData, *, now: datetime | None = None) -> RouteUpdateRequest:
    """Decode a route update request from an ILP Prepare packet (see deserialize_route_control_request)"""
    return _deserialize_request(data, RouteUpdateRequest, now)


def deserialize_request(data: WireData, *, now: datetime | None = None) -> RouteControlRequest | RouteUpdateRequest:
    """Decode either CCP request type, based on the destination of the ILP Prepare packet that carries it"""
    prepare = deserialize_request_envelope(data)
    try:
        message_type = Message[prepare.destination]
    except ProtocolMismatch:
        log.debug('Rejected packet for %s: not a CCP request', prepare.destination)
        raise
    _validate_envelope(prepare, message_type, now)
    return message_type.from_wire(prepare.data)


def serialize_response() -> bytes:
    """Encode the CCP response, which is the same for both request types"""
    return serialize_response_envelope(fulfillment=PEER_PROTOCOL_FULFILLMENT, data=b'')


def deserialize_response(data: WireData) -> None:
    """Check that the ILP packet is a valid CCP response (the response has no content)"""
    response = deserialize_response_envelope(data)
    if isinstance(response, IlpReject):
        log.debug('Rejected CCP response: the request was rejected with %s (%s)', response.code, response.message)
        raise ProtocolMismatch(f'CCP request was rejected with {response.code}: {response.message}')
    if response.fulfillment != PEER_PROTOCOL_FULFILLMENT:
        log.debug('Rejected CCP response: the packet does not contain the peer protocol fulfillment')
        raise AuthenticationError('CCP response does not contain the expected fulfillment.')
