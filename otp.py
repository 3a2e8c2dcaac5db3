"""
One-time codes keyed by mobile number.

Codes live in process memory only. Each entry carries an expiry; expired
entries are swept whenever the store is touched. Request handlers run on
the threadpool, so every access goes through one lock.
"""
import logging
import secrets
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from config import Config

logger = logging.getLogger(__name__)


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


class OtpStore:
    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else Config.OTP_TTL_MIN * 60
        self.clock = clock
        self._codes: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            self._sweep()
            return len(self._codes)

    def _sweep(self):
        # caller holds the lock
        now = self.clock()
        for mobile in [m for m, (_, expires) in self._codes.items() if expires <= now]:
            del self._codes[mobile]

    def issue(self, mobile_no: str) -> str:
        """Create a code for the number, replacing any pending one."""
        code = generate_otp()
        with self._lock:
            self._sweep()
            self._codes[mobile_no] = (code, self.clock() + self.ttl_seconds)
        return code

    def consume(self, mobile_no: str, code: Optional[str]) -> bool:
        """Return True and forget the code if it matches the pending one."""
        if not mobile_no or not code:
            return False
        with self._lock:
            self._sweep()
            entry = self._codes.get(mobile_no)
            if entry is None or not secrets.compare_digest(entry[0], str(code)):
                return False
            del self._codes[mobile_no]
        return True


otp_store = OtpStore()


def get_otp_store() -> OtpStore:
    return otp_store
