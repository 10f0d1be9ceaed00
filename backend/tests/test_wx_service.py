# backend/tests/test_wx_service.py
import asyncio
import json

import httpx
import pytest

from app.services.wx_service import PhoneInfo, PlatformError, SessionInfo
from app.utils.exceptions import GatewayError


@pytest.mark.asyncio
class TestAccessToken:

    async def test_cached_within_window(self, wx, wx_platform):
        first = await wx.get_access_token()
        second = await wx.get_access_token()

        assert first == second == "AT1"
        assert wx_platform.calls["token"] == 1

    async def test_request_carries_app_credentials(self, wx, wx_platform):
        await wx.get_access_token()

        params = wx_platform.requests["token"][0].url.params
        assert params["grant_type"] == "client_credential"
        assert params["appid"] == "wxapp"
        assert params["secret"] == "wxsecret"

    async def test_still_cached_just_before_early_expiry(self, wx, wx_platform, clock):
        await wx.get_access_token()
        clock.advance(7200 - 300 - 1)

        assert await wx.get_access_token() == "AT1"
        assert wx_platform.calls["token"] == 1

    async def test_refreshes_once_after_expiry(self, wx, wx_platform, clock):
        await wx.get_access_token()
        clock.advance(7200 - 300)

        refreshed = await wx.get_access_token()
        again = await wx.get_access_token()

        assert refreshed == again == "AT2"
        assert wx_platform.calls["token"] == 2

    async def test_concurrent_callers_share_one_refresh(self, wx, wx_platform):
        results = await asyncio.gather(*(wx.get_access_token() for _ in range(5)))

        assert set(results) == {"AT1"}
        assert wx_platform.calls["token"] == 1

    async def test_platform_error_raises_with_errcode(self, wx, wx_platform):
        wx_platform.token_response = {"errcode": 40013, "errmsg": "invalid appid"}

        with pytest.raises(GatewayError) as excinfo:
            await wx.get_access_token()

        assert excinfo.value.code == 40013
        assert excinfo.value.errmsg == "invalid appid"
        assert wx.token_cache.get() is None

    async def test_missing_token_field_raises(self, wx, wx_platform):
        wx_platform.token_response = {"expires_in": 7200}

        with pytest.raises(GatewayError) as excinfo:
            await wx.get_access_token()

        assert excinfo.value.code == 502


@pytest.mark.asyncio
class TestExchangeLoginCode:

    async def test_success(self, wx, wx_platform):
        wx_platform.session_response = {"openid": "o1", "session_key": "sk", "unionid": "u1"}

        result = await wx.exchange_login_code("abc")

        assert result == SessionInfo(openid="o1", session_key="sk", unionid="u1")
        params = wx_platform.requests["session"][0].url.params
        assert params["js_code"] == "abc"
        assert params["grant_type"] == "authorization_code"

    async def test_platform_error_is_returned_not_raised(self, wx, wx_platform):
        wx_platform.session_response = {"errcode": 40029, "errmsg": "invalid code"}

        result = await wx.exchange_login_code("bad")

        assert result == PlatformError(errcode=40029, errmsg="invalid code")
        assert wx_platform.calls["session"] == 1

    async def test_transport_failure_is_retried_then_raised(self, wx, wx_platform):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        wx_platform.session_response = unreachable

        with pytest.raises(GatewayError) as excinfo:
            await wx.exchange_login_code("abc")

        assert excinfo.value.code == 502
        assert wx_platform.calls["session"] == 3

    async def test_server_error_then_success(self, wx, wx_platform):
        responses = [httpx.Response(503, text="busy"), {"openid": "o1"}]
        wx_platform.session_response = lambda request: responses.pop(0)

        result = await wx.exchange_login_code("abc")

        assert result.openid == "o1"
        assert wx_platform.calls["session"] == 2

    async def test_malformed_body_is_not_retried(self, wx, wx_platform):
        wx_platform.session_response = httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(GatewayError):
            await wx.exchange_login_code("abc")

        assert wx_platform.calls["session"] == 1

    async def test_non_object_json_is_malformed(self, wx, wx_platform):
        wx_platform.session_response = httpx.Response(200, json=["o1"])

        with pytest.raises(GatewayError):
            await wx.exchange_login_code("abc")


@pytest.mark.asyncio
class TestExchangePhoneCode:

    async def test_success(self, wx, wx_platform):
        result = await wx.exchange_phone_code("xyz")

        assert isinstance(result, PhoneInfo)
        assert result.phone_number == "13800000000"
        assert result.country_code == "86"

        request = wx_platform.requests["phone"][0]
        assert request.method == "POST"
        assert request.url.params["access_token"] == "AT1"
        assert json.loads(request.content) == {"code": "xyz"}

    async def test_platform_error_is_returned(self, wx, wx_platform):
        wx_platform.phone_response = {"errcode": 40029, "errmsg": "invalid code"}

        result = await wx.exchange_phone_code("xyz")

        assert result == PlatformError(errcode=40029, errmsg="invalid code")

    async def test_stale_access_token_is_refreshed_once(self, wx, wx_platform):
        responses = [
            {"errcode": 40001, "errmsg": "invalid credential"},
            {"phone_info": {"phoneNumber": "13800000000", "purePhoneNumber": "13800000000"}},
        ]
        wx_platform.phone_response = lambda request: responses.pop(0)

        result = await wx.exchange_phone_code("xyz")

        assert result.phone_number == "13800000000"
        assert wx_platform.calls["token"] == 2
        assert wx_platform.requests["phone"][1].url.params["access_token"] == "AT2"

    async def test_reuses_cached_access_token(self, wx, wx_platform):
        await wx.exchange_phone_code("xyz")
        await wx.exchange_phone_code("xyz2")

        assert wx_platform.calls["token"] == 1
        assert wx_platform.calls["phone"] == 2


@pytest.mark.asyncio
class TestMalformedPlatformPayloads:

    async def test_non_numeric_errcode(self, wx, wx_platform):
        wx_platform.session_response = {"errcode": "busy", "errmsg": "?"}

        with pytest.raises(GatewayError) as excinfo:
            await wx.exchange_login_code("abc")

        assert excinfo.value.code == 502

    async def test_string_errcode_is_parsed(self, wx, wx_platform):
        wx_platform.session_response = {"errcode": "40029", "errmsg": "invalid code"}

        result = await wx.exchange_login_code("abc")

        assert result == PlatformError(errcode=40029, errmsg="invalid code")

    async def test_non_numeric_expires_in(self, wx, wx_platform):
        wx_platform.token_response = {"access_token": "AT", "expires_in": "soon"}

        with pytest.raises(GatewayError) as excinfo:
            await wx.get_access_token()

        assert excinfo.value.code == 502
        assert wx.token_cache.get() is None

    async def test_non_object_phone_info(self, wx, wx_platform):
        wx_platform.phone_response = {"phone_info": "13800000000"}

        with pytest.raises(GatewayError) as excinfo:
            await wx.exchange_phone_code("xyz")

        assert excinfo.value.code == 502
