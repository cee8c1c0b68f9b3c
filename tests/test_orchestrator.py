"""Tests for the tokenization orchestrator write and read paths.

Covers:
- Write path: batching, placeholder skip, per-item degrade, expiry retry
- Read path: policy filtering, masking, expiry retry exactly once, degrade to tokens
- Single-field helpers used by search
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from tokengate.gateway.errors import ConfigurationError, MissingApiKeyError, SessionExpiredError
from tokengate.gateway.schemas import SENSITIVE_FIELDS, Role, SensitiveField


@pytest.fixture
def orchestrator(gateway):
    return gateway.orchestrator


async def _stored(orchestrator, record, role=Role.ADMIN):
    return await orchestrator.tokenize_record(record, role)


# ── Write path ───────────────────────────────────────────────────────


class TestTokenizeRecord:
    @pytest.mark.asyncio()
    async def test_all_sensitive_fields_tokenized_in_one_batch(self, orchestrator, dsm, plain_record):
        result = await orchestrator.tokenize_record(plain_record, Role.EDITOR)

        for field in SENSITIVE_FIELDS:
            assert result[field] == dsm.token_for(plain_record[field])
        assert result["account_number"] == "ACC-001"
        assert result["service_request"] == "SR-42"
        assert result["created_by"] == "alice"
        assert len(dsm.batch_calls) == 1
        assert dsm.batch_calls[0]["path"].endswith("/encrypt")
        assert dsm.auth_calls == ["editor-key"]

    @pytest.mark.asyncio()
    async def test_input_record_not_mutated(self, orchestrator, plain_record):
        original = dict(plain_record)
        await orchestrator.tokenize_record(plain_record, Role.ADMIN)
        assert plain_record == original

    @pytest.mark.asyncio()
    async def test_placeholder_key_passes_value_through(self, make_gateway, dsm, config, plain_record):
        config["dsm"]["fields"]["passport_number"]["key_id"] = "YOUR_PASSPORT_KEY_ID"
        orchestrator = make_gateway(config).orchestrator

        result = await orchestrator.tokenize_record(plain_record, Role.ADMIN)

        assert result["passport_number"] == "X1234567"
        assert "YOUR_PASSPORT_KEY_ID" not in dsm.kids()
        assert len(dsm.kids()) == 4

    @pytest.mark.asyncio()
    async def test_all_placeholders_makes_no_remote_call(self, make_gateway, dsm, config, plain_record):
        for field in config["dsm"]["fields"].values():
            field["key_id"] = "YOUR_KEY_ID"
        orchestrator = make_gateway(config).orchestrator

        result = await orchestrator.tokenize_record(plain_record, Role.ADMIN)

        assert result == plain_record
        assert dsm.auth_calls == []
        assert dsm.batch_calls == []

    @pytest.mark.asyncio()
    async def test_missing_key_id_is_configuration_error(self, make_gateway, config, plain_record):
        del config["dsm"]["fields"]["email"]
        orchestrator = make_gateway(config).orchestrator

        with pytest.raises(ConfigurationError, match="email"):
            await orchestrator.tokenize_record(plain_record, Role.ADMIN)

    @pytest.mark.asyncio()
    async def test_empty_fields_skipped(self, orchestrator, dsm, plain_record):
        plain_record["passport_number"] = ""
        plain_record.pop("email")

        result = await orchestrator.tokenize_record(plain_record, Role.ADMIN)

        assert result["passport_number"] == ""
        assert "email" not in result
        assert dsm.kids() == ["kid-name", "kid-phone", "kid-ssn"]

    @pytest.mark.asyncio()
    async def test_item_error_keeps_original_plaintext(self, orchestrator, dsm, plain_record):
        dsm.item_errors = {"kid-phone"}

        result = await orchestrator.tokenize_record(plain_record, Role.ADMIN)

        assert result["phone"] == "5551234567"
        assert result["name"] == dsm.token_for("Alice Smith")
        assert result["ssn"] == dsm.token_for("123456789")

    @pytest.mark.asyncio()
    async def test_role_without_api_key(self, make_gateway, config, plain_record):
        del config["dsm"]["roles"]["editor"]
        orchestrator = make_gateway(config).orchestrator

        with pytest.raises(MissingApiKeyError):
            await orchestrator.tokenize_record(plain_record, Role.EDITOR)


class TestTokenizeExpiryRetry:
    @pytest.mark.asyncio()
    async def test_expired_session_retried_once(self, gateway, dsm, plain_record):
        await gateway.sessions.acquire(Role.EDITOR)
        dsm.expire_next = 1

        with patch.object(gateway.sessions, "invalidate", wraps=gateway.sessions.invalidate) as spy:
            result = await gateway.orchestrator.tokenize_record(plain_record, Role.EDITOR)

        spy.assert_called_once_with("editor")
        assert result["name"] == dsm.token_for("Alice Smith")
        assert len(dsm.batch_calls) == 2
        assert dsm.auth_calls == ["editor-key", "editor-key"]
        # The retry used the fresh credential
        assert dsm.batch_calls[1]["authorization"] == "Bearer bearer-editor-key-2"

    @pytest.mark.asyncio()
    async def test_second_expiry_raises(self, orchestrator, dsm, plain_record):
        dsm.expire_next = 2

        with pytest.raises(SessionExpiredError):
            await orchestrator.tokenize_record(plain_record, Role.EDITOR)
        assert len(dsm.batch_calls) == 2

    @pytest.mark.asyncio()
    async def test_item_level_expiry_retried(self, orchestrator, dsm, plain_record):
        dsm.item_expire_next = 1

        result = await orchestrator.tokenize_record(plain_record, Role.ADMIN)

        assert result["email"] == dsm.token_for("alice@example.com")
        assert len(dsm.batch_calls) == 2


# ── Read path ────────────────────────────────────────────────────────


class TestDetokenizeRecord:
    @pytest.mark.asyncio()
    async def test_round_trip_for_admin(self, orchestrator, plain_record):
        stored = await _stored(orchestrator, plain_record)
        assert stored["name"] != plain_record["name"]

        restored = await orchestrator.detokenize_record(stored, Role.ADMIN)

        assert restored == plain_record

    @pytest.mark.asyncio()
    async def test_viewer_batch_contains_only_name(self, orchestrator, dsm, plain_record):
        stored = await _stored(orchestrator, plain_record)

        restored = await orchestrator.detokenize_record(stored, Role.VIEWER)

        assert dsm.batch_calls[-1]["path"].endswith("/decrypt")
        assert dsm.kids() == ["kid-name"]
        assert restored["name"] == "Alice Smith"
        for field in ("phone", "email", "ssn", "passport_number"):
            assert restored[field] == stored[field]

    @pytest.mark.asyncio()
    async def test_editor_ssn_masked(self, orchestrator, dsm, plain_record):
        stored = await _stored(orchestrator, plain_record)

        restored = await orchestrator.detokenize_record(stored, Role.EDITOR)

        body = {item["kid"]: item["request"] for item in dsm.batch_calls[-1]["body"]}
        assert body["kid-ssn"]["masked"] is True
        assert body["kid-name"]["masked"] is False
        assert restored["ssn"] == "6789"
        assert restored["name"] == "Alice Smith"
        assert restored["phone"] == stored["phone"]

    @pytest.mark.asyncio()
    async def test_item_error_keeps_token(self, orchestrator, dsm, plain_record):
        stored = await _stored(orchestrator, plain_record)
        dsm.item_errors = {"kid-email"}

        restored = await orchestrator.detokenize_record(stored, Role.ADMIN)

        assert restored["email"] == stored["email"]
        assert restored["phone"] == "5551234567"

    @pytest.mark.asyncio()
    async def test_unknown_role_makes_no_call(self, orchestrator, dsm, plain_record):
        stored = await _stored(orchestrator, plain_record)
        calls = len(dsm.batch_calls)

        restored = await orchestrator.detokenize_record(stored, "auditor")

        assert restored == stored
        assert len(dsm.batch_calls) == calls

    @pytest.mark.asyncio()
    async def test_transport_failure_returns_tokens(self, orchestrator, dsm, plain_record):
        stored = await _stored(orchestrator, plain_record)
        dsm.fail_next = 1

        restored = await orchestrator.detokenize_record(stored, Role.ADMIN)

        assert restored == stored

    @pytest.mark.asyncio()
    async def test_malformed_item_keeps_token(self, orchestrator, dsm, plain_record):
        stored = await _stored(orchestrator, plain_record)
        dsm.malformed = {"kid-name"}

        restored = await orchestrator.detokenize_record(stored, Role.VIEWER)

        assert restored["name"] == stored["name"]


class TestDetokenizeExpiryRetry:
    @pytest.mark.asyncio()
    async def test_expired_then_success(self, gateway, dsm, plain_record):
        stored = await _stored(gateway.orchestrator, plain_record, Role.VIEWER)
        batch_before = len(dsm.batch_calls)
        dsm.expire_next = 1

        with patch.object(gateway.sessions, "invalidate", wraps=gateway.sessions.invalidate) as spy:
            restored = await gateway.orchestrator.detokenize_record(stored, Role.VIEWER)

        spy.assert_called_once_with("viewer")
        assert restored["name"] == "Alice Smith"
        assert len(dsm.batch_calls) - batch_before == 2
        assert dsm.auth_calls == ["viewer-key", "viewer-key"]

    @pytest.mark.asyncio()
    async def test_expired_twice_returns_tokens_without_third_attempt(self, gateway, dsm, plain_record):
        stored = await _stored(gateway.orchestrator, plain_record)
        batch_before = len(dsm.batch_calls)
        dsm.expire_next = 3

        with patch.object(gateway.sessions, "invalidate", wraps=gateway.sessions.invalidate) as spy:
            restored = await gateway.orchestrator.detokenize_record(stored, Role.ADMIN)

        assert restored == stored
        assert spy.call_count == 1
        assert len(dsm.batch_calls) - batch_before == 2
        assert dsm.expire_next == 1

    @pytest.mark.asyncio()
    async def test_explicit_retry_attempt_forces_refresh(self, gateway, dsm, plain_record):
        stored = await _stored(gateway.orchestrator, plain_record)
        dsm.expire_next = 1

        restored = await gateway.orchestrator.detokenize_record(stored, Role.ADMIN, attempt=1)

        # attempt=1 is already the retry: refresh once, no further retry
        assert restored == stored
        assert dsm.auth_calls == ["admin-key", "admin-key"]

    @pytest.mark.asyncio()
    async def test_other_roles_sessions_untouched(self, gateway, dsm, plain_record):
        stored = await _stored(gateway.orchestrator, plain_record, Role.ADMIN)
        await gateway.sessions.acquire(Role.VIEWER)
        admin_bearer = gateway.sessions.cached(Role.ADMIN)
        dsm.expire_next = 1

        await gateway.orchestrator.detokenize_record(stored, Role.VIEWER)

        assert gateway.sessions.cached(Role.ADMIN) == admin_bearer


class TestDetokenizeRecords:
    @pytest.mark.asyncio()
    async def test_order_preserved_and_failures_isolated(self, orchestrator, dsm, plain_record):
        first = await _stored(orchestrator, plain_record)
        second = await _stored(orchestrator, {**plain_record, "name": "Bob Jones", "account_number": "ACC-002"})
        dsm.fail_next = 1

        restored = await orchestrator.detokenize_records([first, second], Role.VIEWER)

        assert [r["account_number"] for r in restored] == ["ACC-001", "ACC-002"]
        assert restored[0]["name"] == first["name"]  # batch failed: token kept
        assert restored[1]["name"] == "Bob Jones"

    @pytest.mark.asyncio()
    async def test_empty_sequence(self, orchestrator, dsm):
        assert await orchestrator.detokenize_records([], Role.ADMIN) == []
        assert dsm.batch_calls == []


# ── Single-field helpers ─────────────────────────────────────────────


class TestFieldHelpers:
    @pytest.mark.asyncio()
    async def test_tokenize_field_matches_record_path(self, orchestrator, plain_record):
        stored = await _stored(orchestrator, plain_record, Role.VIEWER)

        token = await orchestrator.tokenize_field("Alice Smith", "name", Role.VIEWER)

        assert token == stored["name"]

    @pytest.mark.asyncio()
    async def test_field_round_trip(self, orchestrator):
        token = await orchestrator.tokenize_field("alice@example.com", "email", Role.ADMIN)
        assert await orchestrator.detokenize_field(token, "email", Role.ADMIN) == "alice@example.com"

    @pytest.mark.asyncio()
    async def test_detokenize_field_denied_makes_no_call(self, orchestrator, dsm):
        assert await orchestrator.detokenize_field("tok_xyz", "email", Role.VIEWER) == "tok_xyz"
        assert dsm.batch_calls == []

    @pytest.mark.asyncio()
    async def test_tokenize_field_placeholder(self, make_gateway, dsm, config):
        config["dsm"]["fields"]["name"]["key_id"] = "YOUR_NAME_KEY_ID"
        orchestrator = make_gateway(config).orchestrator

        assert await orchestrator.tokenize_field("Alice", "name", Role.VIEWER) == "Alice"
        assert dsm.batch_calls == []

    @pytest.mark.asyncio()
    async def test_tokenize_field_expiry_retry(self, orchestrator, dsm):
        dsm.expire_next = 1

        token = await orchestrator.tokenize_field("Alice", "name", Role.VIEWER)

        assert token == dsm.token_for("Alice")
        assert len(dsm.batch_calls) == 2

    @pytest.mark.asyncio()
    async def test_tokenize_field_item_error_returns_value(self, orchestrator, dsm):
        dsm.item_errors = {"kid-name"}
        assert await orchestrator.tokenize_field("Al!ce", "name", Role.VIEWER) == "Al!ce"

    @pytest.mark.asyncio()
    async def test_tokenize_field_malformed_item_returns_value(self, orchestrator, dsm):
        dsm.malformed = {"kid-name"}
        assert await orchestrator.tokenize_field("Alice", "name", Role.VIEWER) == "Alice"

    @pytest.mark.asyncio()
    async def test_field_helpers_accept_enum_members(self, orchestrator, dsm):
        token = await orchestrator.tokenize_field("Alice", SensitiveField.NAME, Role.ADMIN)

        assert token == dsm.token_for("Alice")
        assert dsm.kids() == ["kid-name"]
        assert await orchestrator.detokenize_field(token, SensitiveField.NAME, Role.ADMIN) == "Alice"
