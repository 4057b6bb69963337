"""Tests for the magic-link request and redemption flow."""

import asyncio

import pytest

from authsession.errors import BackendError
from authsession.models.enums import AuthProviders, MagicLinkErrors, MagicLinkRequestReasons
from authsession.storage.keys import (
    AUTH_PROVIDER_ID_KEY,
    MAGIC_LINK_REASON_KEY,
    PASSWORD_RESET_REQUESTED_KEY,
    USER_SIGN_IN_EMAIL_KEY,
)

from tests.conftest import LINK_URL, RETURN_URL


@pytest.mark.asyncio
async def test_request_persists_normalized_email_and_reason(backend, storage, make_controller):
    await storage.set_value(PASSWORD_RESET_REQUESTED_KEY, "true")
    controller = await make_controller()

    await controller.sign_in_with_email_link("  Foo@Bar.com ", MagicLinkRequestReasons.PASSWORD_RESET)

    assert backend.sent_links == [("foo@bar.com", RETURN_URL)]
    assert storage.snapshot() == {
        USER_SIGN_IN_EMAIL_KEY: "foo@bar.com",
        MAGIC_LINK_REASON_KEY: "passwordReset",
    }
    controller.dispose()


@pytest.mark.asyncio
async def test_request_without_reason_stores_empty_marker(storage, make_controller):
    controller = await make_controller()

    await controller.sign_in_with_email_link("foo@bar.com", None)

    assert await storage.get_value(MAGIC_LINK_REASON_KEY) == "empty"
    controller.dispose()


@pytest.mark.asyncio
async def test_request_rejects_blank_email(backend, make_controller):
    controller = await make_controller()

    with pytest.raises(ValueError):
        await controller.sign_in_with_email_link("   ", MagicLinkRequestReasons.SIGN_IN)

    assert backend.sent_links == []
    controller.dispose()


@pytest.mark.asyncio
async def test_password_reset_round_trip(backend, storage, capabilities, make_controller):
    backend.add_account("foo@bar.com", "old-secret")
    controller = await make_controller()
    redeemed = []
    controller.magic_link_succeeded.on(redeemed.append)

    await controller.sign_in_with_email_link("Foo@Bar.com ", MagicLinkRequestReasons.PASSWORD_RESET)
    capabilities.open_url(LINK_URL)
    result = await controller.process_email_link()
    await controller.settle()

    assert result.result is True
    assert result.email == "foo@bar.com"
    assert redeemed == ["passwordReset"]
    assert controller.auth_user.email == "foo@bar.com"
    assert controller.auth_user.current_provider == AuthProviders.EMAIL_LINK
    assert controller.set_password_mode is True
    assert storage.snapshot() == {
        PASSWORD_RESET_REQUESTED_KEY: "true",
        AUTH_PROVIDER_ID_KEY: "emailLink",
    }
    controller.dispose()


@pytest.mark.asyncio
async def test_sign_in_round_trip_leaves_no_pending_keys(backend, storage, capabilities, make_controller):
    backend.add_account("foo@bar.com", "secret")
    controller = await make_controller()

    await controller.sign_in_with_email_link("foo@bar.com", MagicLinkRequestReasons.SIGN_IN)
    capabilities.open_url(LINK_URL)
    result = await controller.process_email_link()
    await controller.settle()

    assert result.result is True
    assert USER_SIGN_IN_EMAIL_KEY not in storage
    assert MAGIC_LINK_REASON_KEY not in storage
    assert PASSWORD_RESET_REQUESTED_KEY not in storage
    assert controller.set_password_mode is False
    controller.dispose()


@pytest.mark.asyncio
async def test_invalid_link_changes_nothing(backend, storage, make_controller):
    controller = await make_controller()
    await controller.sign_in_with_email_link("foo@bar.com", MagicLinkRequestReasons.SIGN_IN)
    before = storage.snapshot()

    result = await controller.process_email_link()

    assert result.result is False
    assert result.error == MagicLinkErrors.INVALID_LINK
    assert storage.snapshot() == before
    assert controller.provider_tracker.next_provider is None
    controller.dispose()


@pytest.mark.asyncio
async def test_no_pending_email(capabilities, make_controller):
    controller = await make_controller()
    capabilities.open_url(LINK_URL)

    result = await controller.process_email_link()

    assert result.result is False
    assert result.error == MagicLinkErrors.NO_EMAIL_PENDING
    assert result.email is None
    controller.dispose()


@pytest.mark.asyncio
async def test_backend_failure_is_returned_with_email(backend, storage, capabilities, make_controller):
    controller = await make_controller()
    await controller.sign_in_with_email_link("foo@bar.com", MagicLinkRequestReasons.SIGN_UP)
    capabilities.open_url(LINK_URL)
    failure = BackendError("auth/invalid-action-code", "link expired")
    backend.failures["sign_in_link"] = failure

    result = await controller.process_email_link()

    assert result.result is False
    assert result.error is failure
    assert result.email == "foo@bar.com"
    assert controller.provider_tracker.next_provider == AuthProviders.NONE
    assert await storage.get_value(USER_SIGN_IN_EMAIL_KEY) == "foo@bar.com"
    controller.dispose()


@pytest.mark.asyncio
async def test_async_success_handlers_run_before_result(backend, capabilities, make_controller):
    controller = await make_controller()
    seen = []

    async def on_redeemed(reason):
        await asyncio.sleep(0)
        seen.append(reason)

    controller.magic_link_succeeded.on(on_redeemed)
    await controller.sign_in_with_email_link("foo@bar.com", MagicLinkRequestReasons.SIGN_UP)
    capabilities.open_url(LINK_URL)

    result = await controller.process_email_link()

    assert result.result is True
    assert seen == ["signup"]
    controller.dispose()
