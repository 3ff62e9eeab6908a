"""Unit tests for StatusList2021 bitstrings."""
import base64
import gzip

import pytest

from badgeserver.core.signing.status_list import (
    create_encoded_list,
    create_status_list_credential,
    index_from_uuid,
    is_revoked,
    set_status,
    status_entry,
)


class TestEncodedList:
    def test_new_list_has_nothing_revoked(self):
        encoded = create_encoded_list(64)
        assert not any(is_revoked(encoded, i) for i in range(64))

    def test_default_size(self):
        raw = gzip.decompress(base64.b64decode(create_encoded_list()))
        assert len(raw) == 16384 // 8

    def test_set_and_clear(self):
        encoded = set_status(create_encoded_list(), 42, True)
        assert is_revoked(encoded, 42)
        assert not is_revoked(encoded, 41)
        assert not is_revoked(encoded, 43)

        cleared = set_status(encoded, 42, False)
        assert not is_revoked(cleared, 42)

    def test_bit_zero_is_most_significant_bit(self):
        encoded = set_status(create_encoded_list(16), 0, True)
        raw = gzip.decompress(base64.b64decode(encoded))
        assert raw[0] == 0x80

    def test_encoding_is_stable(self):
        assert create_encoded_list(128) == create_encoded_list(128)

    @pytest.mark.parametrize("index", [-1, 64])
    def test_out_of_range(self, index):
        with pytest.raises(ValueError):
            is_revoked(create_encoded_list(64), index)

    def test_invalid_encoding(self):
        with pytest.raises(ValueError):
            is_revoked("bm90IGd6aXA=", 0)

    def test_zero_size_rejected(self):
        with pytest.raises(ValueError):
            create_encoded_list(0)


class TestHelpers:
    def test_index_from_uuid(self):
        assert index_from_uuid("00000001-0000-0000-0000-000000000000") == 1
        assert 0 <= index_from_uuid("ffffffff-ffff-ffff-ffff-ffffffffffff") < 16384

    def test_status_list_credential(self):
        credential = create_status_list_credential("https://badges.test/issuers/issuer-1", "https://badges.test/status/1")

        assert "StatusList2021Credential" in credential["type"]
        assert credential["credentialSubject"]["statusPurpose"] == "revocation"
        assert not is_revoked(credential["credentialSubject"]["encodedList"], 0)

    def test_status_entry(self):
        entry = {"type": "StatusList2021Entry", "statusListIndex": "5", "statusListCredential": "https://x"}
        assert status_entry({"credentialStatus": entry}) == entry
        assert status_entry({"credentialStatus": {"type": "RevocationList2020Status"}}) is None
        assert status_entry({}) is None
