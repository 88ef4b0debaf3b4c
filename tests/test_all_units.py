"""
ss_aead — Unit Test Suite
=========================
Run with:  python -m pytest tests/ -v
       or:  python tests/test_all_units.py
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from ss_aead.errors        import (AuthenticationFailure, MalformedInput,
                                   NonceExhausted, UnsupportedCipherSuite)
from ss_aead.units.suites  import CIPHER_SUITES, lookup, supported_suites
from ss_aead.units.kdf     import derive_master_key
from ss_aead.units.subkey  import derive_session_key, SUBKEY_INFO
from ss_aead.units.nonce   import NonceCounter, increment
from ss_aead.units.codec   import (ChunkCipher, seal_chunk, open_chunk,
                                   MAX_PAYLOAD_SIZE)

PASSWORD = "test-password-123"
MSG      = b"Hello, Shadowsocks!"
SUITES   = sorted(CIPHER_SUITES)


def _session(name, password=PASSWORD, salt=None):
    suite  = lookup(name)
    master = derive_master_key(password, suite.key_length)
    if salt is None:
        salt = os.urandom(suite.salt_length)
    return suite, derive_session_key(master, salt, SUBKEY_INFO, suite.key_length)

# ── Registry ──────────────────────────────────────────────────────────────────
def test_registry_has_exactly_three_suites():
    assert set(supported_suites()) == {
        "aes-128-gcm", "aes-256-gcm", "chacha20-ietf-poly1305"}

@pytest.mark.parametrize("name,key_len", [
    ("aes-128-gcm", 16), ("aes-256-gcm", 32), ("chacha20-ietf-poly1305", 32)])
def test_registry_lengths(name, key_len):
    suite = lookup(name)
    assert suite.key_length   == key_len
    assert suite.salt_length  == key_len
    assert suite.nonce_length == 12
    assert suite.tag_length   == 16

def test_registry_lookup_is_case_insensitive():
    assert lookup("AES-256-GCM") is CIPHER_SUITES["aes-256-gcm"]

@pytest.mark.parametrize("name", ["rc4-md5", "aes-192-gcm", "", None])
def test_registry_rejects_unknown(name):
    with pytest.raises(UnsupportedCipherSuite):
        lookup(name)

# ── Master key (EVP_BytesToKey) ───────────────────────────────────────────────
def test_master_key_known_answer():
    key = derive_master_key(PASSWORD, 32)
    assert key.hex() == ("fbd2ac25c6b548705b6be94ca4438bc8"
                         "795147dea804b680e267604e59db0f99")
    assert derive_master_key(PASSWORD, 16) == key[:16]

@pytest.mark.parametrize("length", [0, 1, 16, 17, 32, 64])
def test_master_key_length(length):
    assert len(derive_master_key(PASSWORD, length)) == length

def test_master_key_deterministic():
    assert derive_master_key("same-password", 32) == derive_master_key("same-password", 32)

def test_master_key_differs_per_password():
    assert derive_master_key("password-1", 32) != derive_master_key("password-2", 32)

def test_master_key_empty_password():
    key = derive_master_key("", 16)
    assert key.hex() == "d41d8cd98f00b204e9800998ecf8427e"

def test_master_key_unicode_password():
    key = derive_master_key("密码测试🔑", 32)
    assert len(key) == 32
    assert key == derive_master_key("密码测试🔑".encode("utf-8"), 32)

def test_master_key_negative_length():
    with pytest.raises(ValueError):
        derive_master_key(PASSWORD, -1)

# ── Session subkey (HKDF-SHA1) ────────────────────────────────────────────────
def test_subkey_rfc5869_case4():
    okm = derive_session_key(b"\x0b" * 11, bytes(range(13)),
                             bytes(range(0xf0, 0xfa)), 42)
    assert okm.hex() == ("085a01ea1b10f36933068b56efa5ad81a4f14b822f5b091568a9"
                         "cdd4f155fda2c22e422478d305f3f896")

def test_subkey_known_answer():
    master = derive_master_key(PASSWORD, 32)
    key = derive_session_key(master, b"\x01" * 32, SUBKEY_INFO, 32)
    assert key.hex() == ("00f87429abbb19b9584f468e0922c8bb"
                         "906e73269e95b7f2ea013387fb457a48")

def test_subkey_deterministic():
    master = derive_master_key("test", 32)
    salt   = b"fixed-salt-for-test-000000000000"
    assert (derive_session_key(master, salt, SUBKEY_INFO, 32)
            == derive_session_key(master, salt, SUBKEY_INFO, 32))

def test_subkey_differs_per_salt():
    master = derive_master_key("test", 32)
    assert (derive_session_key(master, b"\x01" * 32, SUBKEY_INFO, 32)
            != derive_session_key(master, b"\x02" * 32, SUBKEY_INFO, 32))

def test_subkey_differs_per_label():
    master = derive_master_key("test", 32)
    salt   = b"\x01" * 32
    assert (derive_session_key(master, salt, b"ss-subkey", 32)
            != derive_session_key(master, salt, b"other-label", 32))

@pytest.mark.parametrize("length", [16, 32])
def test_subkey_length(length):
    master = derive_master_key("test", length)
    assert len(derive_session_key(master, os.urandom(length), SUBKEY_INFO, length)) == length

def test_subkey_rejects_zero_length():
    with pytest.raises(ValueError):
        derive_session_key(b"k" * 32, b"s" * 32, SUBKEY_INFO, 0)

def test_subkey_label_and_length_required():
    with pytest.raises(TypeError):
        derive_session_key(b"k" * 32, b"s" * 32)

# ── Nonce counter ─────────────────────────────────────────────────────────────
def test_nonce_increment_first_byte():
    nonce = bytearray(12)
    increment(nonce)
    assert nonce[0] == 1 and nonce[1] == 0

def test_nonce_carry():
    nonce = bytearray(12)
    nonce[0] = 0xFF
    increment(nonce)
    assert nonce[0] == 0 and nonce[1] == 1

def test_nonce_multi_byte_carry():
    nonce = bytearray(12)
    nonce[0] = nonce[1] = 0xFF
    increment(nonce)
    assert list(nonce[:3]) == [0, 0, 1]

def test_nonce_256_increments():
    nonce = bytearray(12)
    for _ in range(256):
        increment(nonce)
    assert nonce[0] == 0
    assert nonce[1] == 1
    assert not any(nonce[2:])

def test_nonce_full_wrap_returns_to_zero():
    nonce = bytearray(b"\xff" * 12)
    increment(nonce)
    assert nonce == bytearray(12)

def test_nonce_counter_advance():
    counter = NonceCounter(12)
    for _ in range(300):
        counter.advance()
    assert int(counter) == 300
    assert counter.value == (300).to_bytes(12, "little")

def test_nonce_counter_exhaustion():
    counter = NonceCounter.from_bytes(b"\xfe" + b"\xff" * 11)
    counter.advance()
    assert counter.exhausted
    with pytest.raises(NonceExhausted):
        counter.advance()

def test_nonce_counters_are_independent():
    a, b = NonceCounter(), NonceCounter()
    a.advance()
    assert int(a) == 1 and int(b) == 0

# ── AEAD chunk codec ──────────────────────────────────────────────────────────
@pytest.mark.parametrize("name", SUITES)
@pytest.mark.parametrize("size", [0, 1, MAX_PAYLOAD_SIZE])
def test_codec_roundtrip(name, size):
    suite, key = _session(name)
    enc_n, dec_n = bytearray(12), bytearray(12)
    plaintext = os.urandom(size)
    sealed = seal_chunk(plaintext, key, enc_n, suite)
    assert len(sealed) == size + suite.tag_length
    assert open_chunk(sealed, key, dec_n, suite) == plaintext
    assert enc_n == dec_n == bytearray(b"\x01" + bytes(11))

@pytest.mark.parametrize("name", SUITES)
def test_codec_empty_plaintext_is_just_tag(name):
    suite, key = _session(name)
    sealed = seal_chunk(b"", key, NonceCounter(), suite)
    assert len(sealed) == suite.tag_length

@pytest.mark.parametrize("name", SUITES)
def test_codec_nonce_changes_ciphertext(name):
    suite, key = _session(name)
    nonce = NonceCounter()
    assert seal_chunk(b"test data", key, nonce, suite) != seal_chunk(b"test data", key, nonce, suite)
    assert int(nonce) == 2

@pytest.mark.parametrize("name", SUITES)
def test_codec_every_bit_flip_detected(name):
    suite, key = _session(name)
    sealed = seal_chunk(b"secret", key, NonceCounter(), suite)
    for bit in range(len(sealed) * 8):
        tampered = bytearray(sealed)
        tampered[bit // 8] ^= 1 << (bit % 8)
        nonce = NonceCounter()
        with pytest.raises(AuthenticationFailure):
            open_chunk(bytes(tampered), key, nonce, suite)
        assert int(nonce) == 0

@pytest.mark.parametrize("name", SUITES)
def test_codec_wrong_key(name):
    suite = lookup(name)
    salt  = os.urandom(suite.salt_length)
    _, key       = _session(name, salt=salt)
    _, wrong_key = _session(name, password="wrong-password", salt=salt)
    sealed = seal_chunk(b"secret data", key, NonceCounter(), suite)
    dec_n  = NonceCounter()
    with pytest.raises(AuthenticationFailure):
        open_chunk(sealed, wrong_key, dec_n, suite)
    assert int(dec_n) == 0

def test_codec_nonce_out_of_step():
    suite, key = _session("aes-256-gcm")
    sealed = seal_chunk(MSG, key, NonceCounter(), suite)
    dec_n = NonceCounter()
    dec_n.advance()
    with pytest.raises(AuthenticationFailure):
        open_chunk(sealed, key, dec_n, suite)

def test_codec_short_input():
    suite, key = _session("aes-128-gcm")
    with pytest.raises(MalformedInput):
        open_chunk(b"\x00" * 15, key, NonceCounter(), suite)

def test_codec_oversize_plaintext():
    suite, key = _session("aes-128-gcm")
    nonce = NonceCounter()
    with pytest.raises(MalformedInput):
        seal_chunk(b"\x00" * (MAX_PAYLOAD_SIZE + 1), key, nonce, suite)
    assert int(nonce) == 0

def test_codec_wrong_key_length():
    with pytest.raises(MalformedInput):
        seal_chunk(MSG, b"\x00" * 32, NonceCounter(), lookup("aes-128-gcm"))

def test_codec_refuses_exhausted_nonce():
    suite, key = _session("chacha20-ietf-poly1305")
    with pytest.raises(NonceExhausted):
        seal_chunk(MSG, key, NonceCounter.from_bytes(b"\xff" * 12), suite)

@pytest.mark.parametrize("name", SUITES)
def test_codec_refuses_exhausted_bytearray_nonce(name):
    suite, key = _session(name)
    nonce = bytearray(b"\xff" * 12)
    with pytest.raises(NonceExhausted):
        seal_chunk(MSG, key, nonce, suite)
    with pytest.raises(NonceExhausted):
        open_chunk(bytes(16), key, nonce, suite)
    assert nonce == b"\xff" * 12

def test_codec_tag_failure_not_logged_as_warning(caplog):
    suite, key = _session("aes-256-gcm")
    sealed = bytearray(seal_chunk(MSG, key, NonceCounter(), suite))
    sealed[0] ^= 0x01
    with caplog.at_level("DEBUG", logger="ss_aead.units.codec"):
        with pytest.raises(AuthenticationFailure):
            open_chunk(bytes(sealed), key, NonceCounter(), suite)
    codec_records = [r for r in caplog.records if r.name == "ss_aead.units.codec"]
    assert codec_records
    assert all(r.levelname == "DEBUG" for r in codec_records)

def test_codec_aes256_gcm_known_tag():
    # GCM test case 13: zero key, zero IV, empty plaintext
    sealed = seal_chunk(b"", bytes(32), bytearray(12), lookup("aes-256-gcm"))
    assert sealed.hex() == "530f8afbc74536b9a963b4f1c4cb738b"

def test_codec_aes128_gcm_known_tag():
    sealed = seal_chunk(b"", bytes(16), bytearray(12), lookup("aes-128-gcm"))
    assert sealed.hex() == "58e2fccefa7e3061367f1d57a4e7455a"

def test_chunk_cipher_tracks_its_own_nonce():
    suite, key = _session("aes-256-gcm")
    sender, receiver = ChunkCipher(suite, key), ChunkCipher(suite, key)
    for i in range(5):
        assert receiver.open(sender.seal(MSG + bytes([i]))) == MSG + bytes([i])
    assert int(sender.nonce) == int(receiver.nonce) == 5

# ── End-to-end ────────────────────────────────────────────────────────────────
def test_end_to_end_hello_shadowsocks():
    suite  = lookup("aes-256-gcm")
    master = derive_master_key(PASSWORD, 32)
    salt   = os.urandom(32)
    key    = derive_session_key(master, salt, SUBKEY_INFO, suite.key_length)
    sealed = seal_chunk(MSG, key, NonceCounter(), suite)
    assert open_chunk(sealed, key, NonceCounter(), suite) == MSG

# ── run directly ─────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import time
    tests = [
        ("Registry — three suites",            test_registry_has_exactly_three_suites),
        ("Registry — case-insensitive",        test_registry_lookup_is_case_insensitive),
        ("Master key — known answer",          test_master_key_known_answer),
        ("Master key — empty password",        test_master_key_empty_password),
        ("Subkey — RFC 5869 case 4",           test_subkey_rfc5869_case4),
        ("Subkey — known answer",              test_subkey_known_answer),
        ("Nonce — 256 increments",             test_nonce_256_increments),
        ("Nonce — exhaustion",                 test_nonce_counter_exhaustion),
        ("Codec — AES-256-GCM known tag",      test_codec_aes256_gcm_known_tag),
        ("Codec — out-of-step nonce",          test_codec_nonce_out_of_step),
        ("End-to-end — Hello, Shadowsocks!",   test_end_to_end_hello_shadowsocks),
    ]
    for name in SUITES:
        tests.append((f"Codec — {name} max chunk",
                      lambda n=name: test_codec_roundtrip(n, MAX_PAYLOAD_SIZE)))
        tests.append((f"Codec — {name} bit flips",
                      lambda n=name: test_codec_every_bit_flip_detected(n)))

    print("\n" + "═" * 70)
    print("  ss_aead — Unit Test Suite")
    print("═" * 70)
    passed = failed = 0
    for name, fn in tests:
        t0 = time.perf_counter()
        try:
            fn()
            elapsed = time.perf_counter() - t0
            print(f"  ✓  {name:<45} {elapsed:.3f}s")
            passed += 1
        except Exception as e:
            print(f"  ✗  {name:<45} FAILED: {e}")
            failed += 1
    print("═" * 70)
    print(f"  {passed} passed  |  {failed} failed")
    print("═" * 70 + "\n")
    sys.exit(0 if failed == 0 else 1)
