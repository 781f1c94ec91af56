from qr_offers.core.errors import ConflictError, ExpiredError, InvalidRequestError, NotFoundError


class OfferValidationError(InvalidRequestError):
    code = "E_OFFER_INVALID"


class OfferEmptySelectionError(InvalidRequestError):
    code = "E_OFFER_EMPTY_SELECTION"


class OfferNotFoundError(NotFoundError):
    code = "E_OFFER_NOT_FOUND"


class DecisionNotFoundError(NotFoundError):
    code = "E_DECISION_NOT_FOUND"


class OfferAlreadyPublishedError(ConflictError):
    code = "E_OFFER_ALREADY_PUBLISHED"


class DecisionNotPendingError(ConflictError):
    code = "E_DECISION_NOT_PENDING"


class VendorNotAcceptedError(ConflictError):
    code = "E_VENDOR_NOT_ACCEPTED"


class OfferExpiredError(ExpiredError):
    code = "E_OFFER_EXPIRED"
