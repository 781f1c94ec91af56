from qr_offers.core.errors import (
    ExpiredError,
    InvalidRequestError,
    MismatchError,
    NotFoundError,
    RateLimitedError,
)


class InvalidPhoneNumberError(InvalidRequestError):
    code = "E_PHONE_INVALID"


class OtpValidationError(InvalidRequestError):
    code = "E_OTP_INVALID_REQUEST"


class OtpNotFoundError(NotFoundError):
    code = "E_OTP_NOT_FOUND"


class OtpExpiredError(ExpiredError):
    code = "E_OTP_EXPIRED"


class OtpMismatchError(MismatchError):
    code = "E_OTP_MISMATCH"


class OtpLockedError(RateLimitedError):
    code = "E_OTP_LOCKED"
