from qr_offers.db.repo.offers_repo import OffersRepo
from qr_offers.db.repo.opt_ins_repo import OptInsRepo
from qr_offers.db.repo.otp_attempts_repo import OtpAttemptsRepo
from qr_offers.db.repo.otp_sessions_repo import OtpSessionsRepo
from qr_offers.db.repo.qr_tokens_repo import QRTokensRepo
from qr_offers.db.repo.redemptions_repo import RedemptionsRepo
from qr_offers.db.repo.vendors_repo import VendorsRepo

__all__ = [
    "OffersRepo",
    "OptInsRepo",
    "OtpAttemptsRepo",
    "OtpSessionsRepo",
    "QRTokensRepo",
    "RedemptionsRepo",
    "VendorsRepo",
]
