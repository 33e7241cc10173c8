"""Unit tests for bearer token verification."""

from unittest.mock import MagicMock, patch

import pytest

from src.core.errors import Unauthorized
from src.services.identity_service import FirebaseIdentityVerifier, SignedTokenVerifier, bearer_token


@pytest.mark.unit
class TestSignedTokenVerifier:
    @pytest.mark.asyncio
    async def test_issued_token_verifies(self, verifier):
        token = verifier.issue("alice")
        assert await verifier.verify(token) == "alice"

    @pytest.mark.asyncio
    async def test_missing_token(self, verifier):
        with pytest.raises(Unauthorized, match="Missing"):
            await verifier.verify("")

    @pytest.mark.asyncio
    async def test_token_from_other_secret_rejected(self, verifier):
        forged = SignedTokenVerifier("another-secret").issue("alice")
        with pytest.raises(Unauthorized, match="Invalid"):
            await verifier.verify(forged)

    @pytest.mark.asyncio
    async def test_tampered_token_rejected(self, verifier):
        token = verifier.issue("alice")
        with pytest.raises(Unauthorized):
            await verifier.verify(token[:-2] + "xx")

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self):
        short_lived = SignedTokenVerifier("test-secret-key", max_age_seconds=-1)
        token = short_lived.issue("alice")
        with pytest.raises(Unauthorized, match="expired"):
            await short_lived.verify(token)


@pytest.mark.unit
class TestFirebaseIdentityVerifier:
    @pytest.mark.asyncio
    async def test_valid_token_returns_uid(self, test_settings):
        with (
            patch("src.services.identity_service.get_firebase_app", return_value=MagicMock()),
            patch("src.services.identity_service.auth.verify_id_token", return_value={"uid": "alice"}) as mock_verify,
        ):
            uid = await FirebaseIdentityVerifier(test_settings).verify("id-token")

        assert uid == "alice"
        assert mock_verify.call_args.args[0] == "id-token"

    @pytest.mark.asyncio
    async def test_rejected_token_is_unauthorized(self, test_settings):
        with (
            patch("src.services.identity_service.get_firebase_app", return_value=MagicMock()),
            patch("src.services.identity_service.auth.verify_id_token", side_effect=ValueError("malformed")),
            pytest.raises(Unauthorized),
        ):
            await FirebaseIdentityVerifier(test_settings).verify("garbage")

    @pytest.mark.asyncio
    async def test_missing_token_never_calls_firebase(self, test_settings):
        with (
            patch("src.services.identity_service.get_firebase_app") as mock_app,
            pytest.raises(Unauthorized),
        ):
            await FirebaseIdentityVerifier(test_settings).verify("")
        mock_app.assert_not_called()


@pytest.mark.unit
class TestBearerToken:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("Bearer abc.def", "abc.def"),
            ("bearer abc", "abc"),
            ("  Bearer   abc  ", "abc"),
            ("Basic abc", ""),
            ("Bearer", ""),
            ("", ""),
            (None, ""),
        ],
    )
    def test_parsing(self, header, expected):
        assert bearer_token(header) == expected
