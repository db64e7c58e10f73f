"""
lnurl_auth/audit.py

Tamper-evident audit log of login events.

One JSON object per line (JSONL), hash-chained:

  H_0 = "0"*64
  H_n = SHA3-256( bytes.fromhex(H_{n-1}) || canonical_json(event_without_hash_fields) )

Each line stores prev_hash and hash; the last hash is kept in a ".state" file
next to the log so appends do not re-read the whole file. Appends are
serialized with flock on a ".lock" file, so several worker processes may share
one log.

Challenges are secrets until they are answered, so events carry
sha3_256(k1) instead of k1. Linking public keys are public and stored as is.
"""

import fcntl
import hashlib
import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

GENESIS_HASH = "0" * 64


def _canonical_json_bytes(obj: Dict[str, Any]) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _sha3_256_hex(data: bytes) -> str:
    return hashlib.sha3_256(data).hexdigest()


def build_event(
    result: str,
    reason: str,
    *,
    k1: Optional[str] = None,
    linking_key: Optional[str] = None,
    signature: Optional[str] = None,
    request_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "ts": int(time.time()),
        "result": result,
        "reason": reason,
    }
    if k1:
        out["k1_sha3_256"] = _sha3_256_hex(k1.encode("utf-8"))
    if linking_key:
        out["linking_key"] = linking_key
    if signature:
        out["signature_len"] = len(signature)
        out["signature_sha3_256"] = _sha3_256_hex(signature.encode("utf-8"))
    if request_ip:
        out["request_ip"] = request_ip
    if user_agent:
        out["user_agent"] = user_agent[:200]
    return out


class AuditLog:
    def __init__(self, path):
        self.path = Path(path)
        self.state_path = self.path.with_suffix(self.path.suffix + ".state")
        self.lock_path = self.path.with_suffix(self.path.suffix + ".lock")

    def _read_last_hash_unlocked(self) -> str:
        if not self.state_path.exists():
            return GENESIS_HASH
        s = self.state_path.read_text(encoding="utf-8").strip().lower()
        if len(s) != 64:
            return GENESIS_HASH
        try:
            bytes.fromhex(s)
        except ValueError:
            return GENESIS_HASH
        return s

    def append(self, event: Dict[str, Any]) -> str:
        """Append one event and return its chain hash."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.lock_path, "a+", encoding="utf-8") as lockf:
            fcntl.flock(lockf.fileno(), fcntl.LOCK_EX)
            try:
                prev_hash = self._read_last_hash_unlocked()

                # callers never get to pick their own chain fields
                e = dict(event)
                e.pop("prev_hash", None)
                e.pop("hash", None)

                next_hash = _sha3_256_hex(bytes.fromhex(prev_hash) + _canonical_json_bytes(e))
                e["prev_hash"] = prev_hash
                e["hash"] = next_hash

                with open(self.path, "ab") as f:
                    f.write(_canonical_json_bytes(e) + b"\n")
                    f.flush()
                    os.fsync(f.fileno())

                self.state_path.write_text(next_hash + "\n", encoding="utf-8")
            finally:
                fcntl.flock(lockf.fileno(), fcntl.LOCK_UN)
        return next_hash

    def record(self, result: str, reason: str, **fields) -> str:
        return self.append(build_event(result, reason, **fields))

    def verify(self) -> bool:
        """Re-walk the chain. A missing log is trivially valid."""
        if not self.path.exists():
            return True

        prev = GENESIS_HASH
        with open(self.path, "rb") as f:
            for raw_line in f:
                raw_line = raw_line.strip()
                if not raw_line:
                    continue
                try:
                    obj = json.loads(raw_line.decode("utf-8"))
                except ValueError:
                    return False
                if obj.get("prev_hash") != prev:
                    return False

                line_hash = obj.pop("hash", None)
                obj.pop("prev_hash", None)
                if _sha3_256_hex(bytes.fromhex(prev) + _canonical_json_bytes(obj)) != line_hash:
                    return False
                prev = line_hash
        return True
