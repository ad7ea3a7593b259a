class GatewayError(Exception):
    pass


class ValidationError(GatewayError):
    """Bad caller input; nothing was changed."""


class ForbiddenAddressError(ValidationError):
    """Caller address is outside the allowed address family."""


class NotFoundError(GatewayError):
    pass


class DeviceError(GatewayError):
    """The WireGuard device rejected or failed a configuration call."""


class InternalError(GatewayError):
    """Something that should never happen for internally generated state."""
