from qr_offers.core.errors import ForbiddenError, InvalidRequestError, NotFoundError


class VendorValidationError(InvalidRequestError):
    code = "E_VENDOR_INVALID"


class VendorNotFoundError(NotFoundError):
    code = "E_VENDOR_NOT_FOUND"


class VendorAuthenticationError(ForbiddenError):
    code = "E_FORBIDDEN"
