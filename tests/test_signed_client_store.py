"""Unit tests for the client-held, HMAC-signed history store."""

import logging
import random
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.base import ClientContext, SignedToken
from app.adapters.rate_limit.signed_token import (
    SignedClientStore,
    decode_history,
    encode_history,
)
from app.core.errors import TokenTamperedError

NOW = 1_700_000_000
SECRET = "unit-test-secret"


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=float(NOW))


@pytest.fixture
def store(clock: Mock) -> SignedClientStore:
    return SignedClientStore(SECRET, clock=clock)


def _flip_char(text: str, index: int, alphabet: str) -> str:
    current = text[index]
    replacement = next(c for c in alphabet if c != current)
    return text[:index] + replacement + text[index + 1 :]


def test_write_then_read_round_trip(store: SignedClientStore) -> None:
    ctx = ClientContext("ip:1.2.3.4")

    token = store.write(ctx, [NOW - 10, NOW - 10, NOW])

    assert ctx.token == token
    assert store.read(ctx) == [NOW - 10, NOW - 10, NOW]


def test_no_token_reads_empty_without_tamper_event(
    store: SignedClientStore, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        assert store.read(ClientContext("ip:1.2.3.4")) == []

    assert "rate_limit.token_tampered" not in caplog.messages


def test_same_history_signs_identically(store: SignedClientStore) -> None:
    first = store.issue([NOW - 3, NOW])
    second = store.issue([NOW - 3, NOW])

    assert first == second


def test_order_is_preserved() -> None:
    history = [NOW, NOW - 30, NOW - 10]

    assert decode_history(encode_history(history)) == history


def test_payload_is_cookie_safe(store: SignedClientStore) -> None:
    token = store.issue([NOW - 100, NOW - 50, NOW])
    allowed = set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")

    assert set(token.payload) <= allowed
    assert set(token.signature) <= set("0123456789abcdef")


def test_any_signature_change_yields_empty(store: SignedClientStore) -> None:
    token = store.issue([NOW - 1, NOW])

    for index in range(len(token.signature)):
        forged = SignedToken(
            payload=token.payload,
            signature=_flip_char(token.signature, index, "0123456789abcdef"),
        )
        assert store.read(ClientContext("ip:1.2.3.4", token=forged)) == []


def test_any_payload_change_yields_empty(store: SignedClientStore) -> None:
    token = store.issue([NOW - 1, NOW])

    for index in range(len(token.payload)):
        forged = SignedToken(
            payload=_flip_char(token.payload, index, "AQgw"),
            signature=token.signature,
        )
        assert store.read(ClientContext("ip:1.2.3.4", token=forged)) == []


def test_tampered_token_is_logged(
    store: SignedClientStore, caplog: pytest.LogCaptureFixture
) -> None:
    token = store.issue([NOW])
    forged = SignedToken(payload=token.payload, signature="0" * 64)

    with caplog.at_level(logging.WARNING):
        store.read(ClientContext("ip:1.2.3.4", token=forged))

    records = [r for r in caplog.records if r.getMessage() == "rate_limit.token_tampered"]
    assert len(records) == 1
    assert records[0].error_code == "token_signature_mismatch"


def test_rotated_secret_invalidates_tokens(clock: Mock) -> None:
    old = SignedClientStore("old-secret", clock=clock)
    new = SignedClientStore("new-secret", clock=clock)
    ctx = ClientContext("ip:1.2.3.4")

    old.write(ctx, [NOW])

    assert new.read(ctx) == []


def test_correctly_signed_garbage_payload_yields_empty(
    store: SignedClientStore, caplog: pytest.LogCaptureFixture
) -> None:
    payload = "not-a-valid-payload"
    token = SignedToken(payload=payload, signature=store.sign(payload))

    with caplog.at_level(logging.WARNING):
        assert store.read(ClientContext("ip:1.2.3.4", token=token)) == []

    records = [r for r in caplog.records if r.getMessage() == "rate_limit.token_tampered"]
    assert records[0].error_code == "token_malformed"


@pytest.mark.parametrize("payload", ["", "!!!!", "eJzLSM3JyQcABiwCFQ"])
def test_decode_rejects_malformed_payloads(payload: str) -> None:
    with pytest.raises(TokenTamperedError):
        decode_history(payload)


def test_read_and_write_prune_to_retention(clock: Mock) -> None:
    store = SignedClientStore(SECRET, retention_seconds=86400, clock=clock)
    ctx = ClientContext("ip:1.2.3.4", token=store.issue([NOW - 90000, NOW - 70]))

    assert store.read(ctx) == [NOW - 70]

    store.write(ctx, [NOW - 86400, NOW - 70, NOW])
    assert decode_history(ctx.token.payload) == [NOW - 70, NOW]


def test_oversized_token_is_reported(
    store: SignedClientStore, caplog: pytest.LogCaptureFixture
) -> None:
    rng = random.Random(0)
    history = [NOW - rng.randrange(86000) for _ in range(3000)]

    with caplog.at_level(logging.WARNING):
        store.write(ClientContext("ip:1.2.3.4"), history)

    assert "rate_limit.token_oversized" in caplog.messages


def test_empty_secret_is_rejected() -> None:
    with pytest.raises(ValueError):
        SignedClientStore("")
