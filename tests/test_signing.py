"""Tests for HMAC request signing."""

from friendle.shared.signing import canonical_json
from friendle.shared.signing import sign_body
from friendle.shared.signing import verify_signature

SECRET = "shh"


class TestSigning:
    def test_resigning_captured_body_reproduces_header(self):
        body = canonical_json({"guild_id": "42", "puzzle": {"game": "quotele", "date": "2024-01-01"}})
        header = sign_body(SECRET, body)

        assert sign_body(SECRET, body) == header
        assert verify_signature(SECRET, body, header)

    def test_one_byte_mutation_fails_verification(self):
        body = canonical_json({"guild_id": "42", "date": "2024-01-01"})
        header = sign_body(SECRET, body)

        for index in range(len(body)):
            mutated = bytearray(body)
            mutated[index] ^= 0x01
            assert not verify_signature(SECRET, bytes(mutated), header)

    def test_wrong_secret_fails(self):
        body = b'{"a":1}'

        assert not verify_signature("other", body, sign_body(SECRET, body))

    def test_missing_or_garbage_signature(self):
        body = b'{"a":1}'

        assert not verify_signature(SECRET, body, None)
        assert not verify_signature(SECRET, body, "")
        assert not verify_signature(SECRET, body, "zz-not-hex-ü")

    def test_uppercase_hex_is_accepted(self):
        body = b'{"a":1}'

        assert verify_signature(SECRET, body, sign_body(SECRET, body).upper())

    def test_canonical_json_is_key_order_independent(self):
        assert canonical_json({"b": 1, "a": "é"}) == canonical_json({"a": "é", "b": 1})
        assert canonical_json({"a": "é"}) == '{"a":"é"}'.encode("utf-8")
