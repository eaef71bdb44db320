import re
import secrets
import string
import time

_TARGET_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_TARGET_NAME_MAX_LENGTH = 64
_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_task_id() -> str:
    """Return an id of the form ``task_<epoch ms>_<7 random chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"task_{int(time.time() * 1000)}_{suffix}"


def is_valid_target_name(name: object) -> bool:
    return (
        isinstance(name, str)
        and 0 < len(name) <= _TARGET_NAME_MAX_LENGTH
        and _TARGET_NAME_RE.match(name) is not None
    )
