"""Tests for the Supabase identity backend adapter (no network)."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from authsession.backends.supabase_backend import SupabaseIdentityBackend, classify_supabase_error
from authsession.errors import BackendError, BackendErrorCode
from authsession.models.auth_models import EmailAuthProvider
from authsession.models.enums import SignInMethod


class GoTrueLikeError(Exception):
    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


def make_user(email="foo@bar.com", providers=("email",), password_set=False, **metadata):
    return SimpleNamespace(
        id="6f1c",
        email=email,
        email_confirmed_at="2024-01-01T00:00:00Z",
        phone="",
        app_metadata={"providers": list(providers)},
        user_metadata={"password_set": password_set, **metadata},
    )


@pytest.fixture
def client():
    client = MagicMock()
    client.auth.get_session = AsyncMock(return_value=None)
    client.auth.sign_in_with_password = AsyncMock()
    client.auth.sign_up = AsyncMock()
    client.auth.sign_in_with_otp = AsyncMock()
    client.auth.verify_otp = AsyncMock()
    client.auth.exchange_code_for_session = AsyncMock()
    client.auth.sign_in_with_oauth = AsyncMock()
    client.auth.update_user = AsyncMock()
    client.auth.sign_out = AsyncMock()
    return client


@pytest.fixture
def opened():
    return []


@pytest.fixture
def supabase_backend(client, logger, opened):
    def open_browser(url):
        opened.append(url)
        return True

    return SupabaseIdentityBackend(client, "https://app.example.com/cb", logger, open_browser)


class TestErrorClassification:
    @pytest.mark.parametrize(
        "exc, expected",
        [
            (GoTrueLikeError("Invalid login credentials", "invalid_credentials"), BackendErrorCode.WRONG_PASSWORD),
            (GoTrueLikeError("reauthentication needed", "reauthentication_needed"), BackendErrorCode.REQUIRES_RECENT_LOGIN),
            (GoTrueLikeError("Identity is already linked", "identity_already_exists"),
             BackendErrorCode.ACCOUNT_EXISTS_WITH_DIFFERENT_CREDENTIAL),
        ],
    )
    def test_known_codes(self, exc, expected):
        err = classify_supabase_error(exc)
        assert err.code == expected
        assert err.original_error is exc

    def test_unknown_code_is_kept(self):
        err = classify_supabase_error(GoTrueLikeError("rate limited", "over_email_send_rate_limit"))
        assert err.code == "over_email_send_rate_limit"

    def test_no_code(self):
        err = classify_supabase_error(RuntimeError("boom"))
        assert err.code == BackendErrorCode.UNKNOWN

    def test_backend_error_passes_through(self):
        original = BackendError(BackendErrorCode.CANCELLED)
        assert classify_supabase_error(original) is original


class TestEmailLinks:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://app.example.com/cb?code=abc", True),
            ("https://app.example.com/cb?token_hash=abc&type=magiclink", True),
            ("https://app.example.com/cb#token_hash=abc&type=email", True),
            ("https://app.example.com/cb?token_hash=abc&type=recovery", False),
            ("https://app.example.com/cb", False),
        ],
    )
    def test_is_sign_in_with_email_link(self, supabase_backend, url, expected):
        assert supabase_backend.is_sign_in_with_email_link(url) is expected

    @pytest.mark.asyncio
    async def test_send_link_uses_redirect(self, supabase_backend, client):
        await supabase_backend.send_sign_in_link_to_email("foo@bar.com", url="https://app.example.com/cb")

        client.auth.sign_in_with_otp.assert_awaited_once_with({
            "email": "foo@bar.com",
            "options": {"email_redirect_to": "https://app.example.com/cb"},
        })

    @pytest.mark.asyncio
    async def test_redeem_token_hash_link(self, supabase_backend, client):
        client.auth.verify_otp.return_value = SimpleNamespace(user=make_user())

        await supabase_backend.sign_in_with_email_link(
            "foo@bar.com", "https://app.example.com/cb?token_hash=th1&type=magiclink",
        )

        client.auth.verify_otp.assert_awaited_once_with({"token_hash": "th1", "type": "email"})
        assert supabase_backend.current_user.email == "foo@bar.com"

    @pytest.mark.asyncio
    async def test_redeem_code_link(self, supabase_backend, client):
        client.auth.exchange_code_for_session.return_value = SimpleNamespace(user=make_user())

        await supabase_backend.sign_in_with_email_link("foo@bar.com", "https://app.example.com/cb?code=c1")

        client.auth.exchange_code_for_session.assert_awaited_once_with({"auth_code": "c1"})

    @pytest.mark.asyncio
    async def test_redeem_failure_is_classified(self, supabase_backend, client):
        client.auth.verify_otp.side_effect = GoTrueLikeError("Token has expired", "otp_expired")

        with pytest.raises(BackendError) as exc_info:
            await supabase_backend.sign_in_with_email_link(
                "foo@bar.com", "https://app.example.com/cb?token_hash=th1",
            )

        assert exc_info.value.code == "otp_expired"


class TestSessionAndMethods:
    @pytest.mark.asyncio
    async def test_methods_for_current_user(self, supabase_backend, client):
        client.auth.sign_in_with_password.return_value = SimpleNamespace(
            user=make_user(providers=("email", "google"), password_set=True),
        )
        await supabase_backend.sign_in_with_email_and_password("foo@bar.com", "secret")

        methods = await supabase_backend.fetch_sign_in_methods_for_email("Foo@Bar.com")

        assert methods == [SignInMethod.PASSWORD, SignInMethod.GOOGLE]

    @pytest.mark.asyncio
    async def test_passwordless_email_provider_is_email_link(self, supabase_backend, client):
        client.auth.verify_otp.return_value = SimpleNamespace(user=make_user())
        await supabase_backend.sign_in_with_email_link(
            "foo@bar.com", "https://app.example.com/cb?token_hash=th1",
        )

        assert await supabase_backend.fetch_sign_in_methods_for_email("foo@bar.com") == [SignInMethod.EMAIL_LINK]

    @pytest.mark.asyncio
    async def test_methods_unknown_for_other_emails(self, supabase_backend):
        assert await supabase_backend.fetch_sign_in_methods_for_email("other@bar.com") == []

    @pytest.mark.asyncio
    async def test_user_view(self, supabase_backend, client):
        client.auth.sign_in_with_password.return_value = SimpleNamespace(
            user=make_user(full_name="Foo Bar", avatar_url="https://cdn/foo.png"),
        )
        await supabase_backend.sign_in_with_email_and_password("foo@bar.com", "secret")

        user = supabase_backend.current_user
        assert user.uid == "6f1c"
        assert user.display_name == "Foo Bar"
        assert user.photo_url == "https://cdn/foo.png"
        assert user.email_verified is True
        assert user.phone_number is None

    @pytest.mark.asyncio
    async def test_update_password_marks_password_set(self, supabase_backend, client):
        client.auth.sign_in_with_password.return_value = SimpleNamespace(user=make_user())
        client.auth.update_user.return_value = SimpleNamespace(user=make_user(password_set=True))
        await supabase_backend.sign_in_with_email_and_password("foo@bar.com", "secret")

        await supabase_backend.current_user.update_password("new-secret")

        client.auth.update_user.assert_awaited_once_with(
            {"password": "new-secret", "data": {"password_set": True}},
        )
        assert supabase_backend.current_user.password_set is True

    @pytest.mark.asyncio
    async def test_reauthenticate_requires_password(self, supabase_backend, client):
        client.auth.sign_in_with_password.return_value = SimpleNamespace(user=make_user())
        await supabase_backend.sign_in_with_email_and_password("foo@bar.com", "secret")
        credential = EmailAuthProvider.credential_with_link("foo@bar.com", "https://app.example.com/cb")

        with pytest.raises(BackendError) as exc_info:
            await supabase_backend.current_user.reauthenticate_with_credential(credential)

        assert exc_info.value.code == BackendErrorCode.OPERATION_NOT_SUPPORTED

    @pytest.mark.asyncio
    async def test_sign_out_clears_user(self, supabase_backend, client):
        client.auth.sign_in_with_password.return_value = SimpleNamespace(user=make_user())
        await supabase_backend.sign_in_with_email_and_password("foo@bar.com", "secret")

        await supabase_backend.sign_out()

        assert supabase_backend.current_user is None

    @pytest.mark.asyncio
    async def test_initialize_seeds_user_from_session(self, supabase_backend, client):
        client.auth.get_session.return_value = SimpleNamespace(user=make_user())

        await supabase_backend.initialize()

        assert supabase_backend.current_user.email == "foo@bar.com"


class TestOAuth:
    @pytest.mark.asyncio
    async def test_google_opens_browser(self, supabase_backend, client, opened):
        client.auth.sign_in_with_oauth.return_value = SimpleNamespace(url="https://accounts.example/o")

        credential = await supabase_backend.sign_in_with_popup(SignInMethod.GOOGLE)

        assert opened == ["https://accounts.example/o"]
        assert credential.provider_id == SignInMethod.GOOGLE
        client.auth.sign_in_with_oauth.assert_awaited_once_with({
            "provider": "google",
            "options": {"redirect_to": "https://app.example.com/cb"},
        })

    @pytest.mark.asyncio
    async def test_no_browser_returns_none(self, client, logger):
        client.auth.sign_in_with_oauth.return_value = SimpleNamespace(url="https://accounts.example/o")
        backend = SupabaseIdentityBackend(client, "https://app.example.com/cb", logger, lambda url: False)

        assert await backend.sign_in_with_popup(SignInMethod.GOOGLE) is None

    @pytest.mark.asyncio
    async def test_unsupported_provider(self, supabase_backend):
        with pytest.raises(BackendError) as exc_info:
            await supabase_backend.sign_in_with_popup("apple.com")

        assert exc_info.value.code == BackendErrorCode.OPERATION_NOT_SUPPORTED

    @pytest.mark.asyncio
    async def test_auth_state_subscription(self, supabase_backend, client):
        subscription = MagicMock()
        client.auth.on_auth_state_change = MagicMock(return_value=subscription)
        calls = []

        unsubscribe = supabase_backend.on_auth_state_changed(lambda: calls.append("changed"))
        listener = client.auth.on_auth_state_change.call_args.args[0]
        listener("SIGNED_IN", SimpleNamespace(user=make_user()))

        assert calls == ["changed"]
        assert supabase_backend.current_user.email == "foo@bar.com"
        assert unsubscribe is subscription.unsubscribe
