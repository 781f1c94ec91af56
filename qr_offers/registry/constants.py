TOKEN_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TOKEN_PREFIX = "QR"
TOKEN_RANDOM_LENGTH = 8
MAX_TOKEN_INSERT_ROUNDS = 5
