"""Unit tests for the hash-chained audit log."""

import json

import pytest

from lnurl_auth.audit import GENESIS_HASH, AuditLog, build_event


@pytest.mark.unit
class TestAuditLog:
    def test_missing_log_is_valid(self, tmp_path) -> None:
        assert AuditLog(tmp_path / "audit.jsonl").verify()

    def test_chain(self, tmp_path) -> None:
        log = AuditLog(tmp_path / "audit" / "audit.jsonl")
        h1 = log.record("issued", "challenge_issued", k1="ab" * 32)
        h2 = log.record("approved", "signature_valid", k1="ab" * 32, linking_key="02ff")

        lines = [json.loads(line) for line in log.path.read_text().splitlines()]
        assert [line["hash"] for line in lines] == [h1, h2]
        assert lines[0]["prev_hash"] == GENESIS_HASH
        assert lines[1]["prev_hash"] == h1
        assert log.state_path.read_text().strip() == h2
        assert log.verify()

    def test_tampering_detected(self, tmp_path) -> None:
        log = AuditLog(tmp_path / "audit.jsonl")
        log.record("denied", "InvalidSignatureError", linking_key="02ff")
        log.record("approved", "signature_valid", linking_key="02ff")

        lines = log.path.read_text().splitlines()
        first = json.loads(lines[0])
        first["result"] = "approved"
        lines[0] = json.dumps(first, sort_keys=True, separators=(",", ":"))
        log.path.write_text("\n".join(lines) + "\n")

        assert not log.verify()

    def test_caller_cannot_set_chain_fields(self, tmp_path) -> None:
        log = AuditLog(tmp_path / "audit.jsonl")
        log.append({"result": "issued", "prev_hash": "f" * 64, "hash": "e" * 64})
        assert json.loads(log.path.read_text())["prev_hash"] == GENESIS_HASH
        assert log.verify()

    def test_k1_is_not_logged(self) -> None:
        event = build_event("issued", "challenge_issued", k1="ab" * 32, user_agent="x" * 500)
        assert "ab" * 32 not in json.dumps(event)
        assert len(event["k1_sha3_256"]) == 64
        assert len(event["user_agent"]) == 200


@pytest.mark.unit
class TestAuditedFlow:
    async def test_issue_deny_approve(self, tmp_path, linking_key) -> None:
        from helpers import LinkingKey, make_settings
        from lnurl_auth.callback import CallbackHandler
        from lnurl_auth.challenge import ChallengeIssuer
        from lnurl_auth.storage import InMemoryStore

        log = AuditLog(tmp_path / "audit.jsonl")
        store = InMemoryStore()
        k1, _ = await ChallengeIssuer(make_settings(), store, audit=log).ensure_challenge({})
        handler = CallbackHandler(store, audit=log)

        bad = {"k1": k1, "sig": LinkingKey().sign(k1), "key": linking_key.public_hex()}
        assert (await handler.respond(bad)).status_code == 400
        assert (await handler.respond(linking_key.callback_params(k1))).ok

        events = [json.loads(line) for line in log.path.read_text().splitlines()]
        assert [(e["result"], e["reason"]) for e in events] == [
            ("issued", "challenge_issued"),
            ("denied", "InvalidSignatureError"),
            ("approved", "signature_valid"),
        ]
        assert events[2]["linking_key"] == linking_key.public_hex()
        assert log.verify()
