# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""Exception hierarchy for the RPC gateway.

Every request-level failure is a GatewayError subclass carrying the HTTP
status it maps to. Handlers catch GatewayError and turn it into a JSON
response; nothing here is ever fatal to the process.
"""


class GatewayError(Exception):
    """Base class for all request-level errors."""

    status = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


# --- 400: bad input --------------------------------------------------------

class ValidationError(GatewayError):
    status = 400


class MissingPort(ValidationError):
    pass


class InvalidPort(ValidationError):
    pass


class NonPositivePort(ValidationError):
    pass


class MissingDevice(ValidationError):
    pass


class InvalidPowerState(ValidationError):
    pass


class InvalidParams(ValidationError):
    pass


# --- 404: lookups ----------------------------------------------------------

class NotFoundError(GatewayError):
    status = 404


class DeviceNotFound(NotFoundError):
    pass


class PortNotFound(NotFoundError):
    pass


class UnsupportedMethodError(GatewayError):
    status = 404


class UnknownMethod(UnsupportedMethodError):
    pass


# --- 500: backend ----------------------------------------------------------

class BackendError(GatewayError):
    status = 500


class MalformedOutput(BackendError):
    pass


class EmptyResult(BackendError):
    pass


class UnknownPowerState(BackendError):
    pass


class BackendTimeout(BackendError):
    pass


class AuthenticationError(BackendError):
    pass


class UnsupportedOperation(BackendError):
    status = 501
