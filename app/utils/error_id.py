"""Error identifier generation."""

import random
import string
import time

ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_error_id() -> str:
    """Generate a unique error id.

    Returns:
        str: Error id like 'ERR_1718035200000_k3j9x0a1b'
    """
    timestamp_ms = int(time.time() * 1000)
    random_part = "".join(random.choices(ID_ALPHABET, k=9))
    return f"ERR_{timestamp_ms}_{random_part}"
