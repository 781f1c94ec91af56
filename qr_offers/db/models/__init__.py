from qr_offers.db.models.customer_opt_ins import CustomerOptIn
from qr_offers.db.models.offer_broadcasts import OfferBroadcast
from qr_offers.db.models.offers import Offer
from qr_offers.db.models.otp_attempts import OtpAttempt
from qr_offers.db.models.otp_sessions import OtpSession
from qr_offers.db.models.qr_token_batches import QRTokenBatch
from qr_offers.db.models.qr_tokens import QRToken
from qr_offers.db.models.redemptions import Redemption
from qr_offers.db.models.vendor_offer_decisions import VendorOfferDecision
from qr_offers.db.models.vendors import Vendor

__all__ = [
    "CustomerOptIn",
    "Offer",
    "OfferBroadcast",
    "OtpAttempt",
    "OtpSession",
    "QRToken",
    "QRTokenBatch",
    "Redemption",
    "Vendor",
    "VendorOfferDecision",
]
