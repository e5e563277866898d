"""
Clock and party code helpers
"""
import random
import string
import time


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


def generate_party_code(length: int = 4) -> str:
    """Generate a short random party code"""
    alphabet = string.ascii_lowercase + string.digits
    return "".join(random.choice(alphabet) for _ in range(length))

