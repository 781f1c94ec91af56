from qr_offers.core.errors import ForbiddenError, NotFoundError


class OfferNotAvailableError(NotFoundError):
    code = "E_OFFER_NOT_AVAILABLE"


class OptInNotVerifiedError(ForbiddenError):
    code = "E_OPT_IN_NOT_VERIFIED"
