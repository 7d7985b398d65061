import secrets

import bcrypt

# bcrypt's floor; tests drop to this to stay fast
MIN_ROUNDS = 4


def generate_code(length: int = 6) -> str:
    # secrets, not random: the code is a bearer credential until it expires
    return "".join(secrets.choice("0123456789") for _ in range(length))


def hash_code(code: str, rounds: int = 10) -> str:
    if not isinstance(code, str) or not code:
        raise ValueError("Code must be a non-empty string")

    salt = bcrypt.gensalt(rounds=max(rounds, MIN_ROUNDS))
    return bcrypt.hashpw(code.encode("utf-8"), salt).decode("utf-8")


def verify_code_hash(submitted: str, code_hash: str) -> bool:
    if not submitted or not code_hash:
        return False
    try:
        return bcrypt.checkpw(submitted.encode("utf-8"), code_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False
