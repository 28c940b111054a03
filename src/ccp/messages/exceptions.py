# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later


__all__ = 'CCPError', 'FormatError', 'ValidationError', 'ProtocolMismatch', 'AuthenticationError', 'Expired'


class CCPError(Exception):
    """Base class for the errors raised while encoding or decoding CCP messages."""


class FormatError(CCPError, ValueError):
    """
    Raised when data cannot be decoded.

    This covers truncated buffers, malformed length prefixes, text that is
    not properly encoded and identifiers that do not have the canonical form.

    """


class ValidationError(CCPError, ValueError):
    """Raised when a value assigned to a message element is not valid for it."""


class ProtocolMismatch(CCPError, TypeError):
    """Raised when a packet is not the CCP message it was expected to be."""


class AuthenticationError(CCPError):
    """Raised when a packet does not carry the fixed peer protocol condition or fulfillment."""


class Expired(CCPError):  # noqa: N818
    """Raised when a request packet has expired."""
