from qr_offers.core.errors import ConflictError, InvalidRequestError, NotFoundError


class TokenBatchValidationError(InvalidRequestError):
    code = "E_TOKEN_BATCH_INVALID"


class TokenNotFoundError(NotFoundError):
    code = "E_TOKEN_NOT_FOUND"


class TokenAlreadyClaimedError(ConflictError):
    code = "E_TOKEN_ALREADY_CLAIMED"
