from qr_offers.core.errors import ConflictError, ExpiredError, ForbiddenError, NotFoundError


class RedemptionNotFoundError(NotFoundError):
    code = "E_REDEMPTION_NOT_FOUND"


class RedemptionVendorMismatchError(ForbiddenError):
    code = "E_REDEMPTION_VENDOR_MISMATCH"


class RedemptionAlreadyRedeemedError(ConflictError):
    code = "E_REDEMPTION_ALREADY_REDEEMED"


class OtpSessionNotVerifiedError(ConflictError):
    code = "E_SESSION_NOT_VERIFIED"


class RedemptionExpiredError(ExpiredError):
    code = "E_REDEMPTION_EXPIRED"


class OtpSessionHasNoOfferError(ConflictError):
    code = "E_SESSION_HAS_NO_OFFER"
