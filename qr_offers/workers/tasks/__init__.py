from qr_offers.workers.tasks.maintenance import (
    run_otp_attempts_retention,
    run_otp_session_expiry,
    run_redemption_expiry,
)

__all__ = [
    "run_otp_attempts_retention",
    "run_otp_session_expiry",
    "run_redemption_expiry",
]
