DEFAULT_ROLE = "STUDENT"
ROLES = {"STUDENT", "EXPERT", "ADMIN"}


def normalize_role(value: str) -> str | None:
    name = (value or "").strip().upper()
    return name if name in ROLES else None
