import pytest

from app.services.credentials import AesGcmCredentialStore
from app.services.errors import CredentialError


@pytest.fixture
def store():
    return AesGcmCredentialStore("unit-test-key")


def test_round_trip(store):
    token = store.encrypt("rzp_live_secret")

    assert token != "rzp_live_secret"
    assert store.decrypt(token) == "rzp_live_secret"


def test_fresh_nonce_per_encryption(store):
    assert store.encrypt("same") != store.encrypt("same")


def test_empty_values_stay_empty(store):
    assert store.encrypt("") == ""
    assert store.decrypt("") == ""


def test_token_format(store):
    nonce, ciphertext = store.encrypt("value").split(":")

    assert len(bytes.fromhex(nonce)) == 12
    assert len(bytes.fromhex(ciphertext)) > 0


def test_wrong_key_fails(store):
    token = store.encrypt("value")

    with pytest.raises(CredentialError):
        AesGcmCredentialStore("another-key").decrypt(token)


@pytest.mark.parametrize("token", ["no-separator", "zz:zz", "00ff:00ff"])
def test_malformed_tokens(store, token):
    with pytest.raises(CredentialError):
        store.decrypt(token)


def test_tampered_ciphertext(store):
    nonce, ciphertext = store.encrypt("value").split(":")
    flipped = ("0" if ciphertext[0] != "0" else "1") + ciphertext[1:]

    with pytest.raises(CredentialError):
        store.decrypt(f"{nonce}:{flipped}")


def test_missing_key_material():
    with pytest.raises(CredentialError):
        AesGcmCredentialStore("")
