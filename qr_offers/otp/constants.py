from datetime import timedelta

OTP_LENGTH = 6
OTP_TTL = timedelta(minutes=10)
OTP_MAX_VERIFY_FAILURES = 5
OTP_MAX_CODE_GENERATION_ATTEMPTS = 20
OTP_MAX_ISSUE_ATTEMPTS = 5
OTP_ATTEMPTS_RETENTION = timedelta(days=30)
CUSTOMER_NAME_MAX_LENGTH = 128
