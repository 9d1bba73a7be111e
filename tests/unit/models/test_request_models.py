"""RequestOptions, RelayResponse and RequestStats tests."""

import pytest

from mirror_relay.models.request import RelayResponse, RequestOptions
from mirror_relay.models.stats import RequestStats


class TestRequestOptions:
    def test_defaults_to_get(self) -> None:
        opts = RequestOptions()
        assert opts.method == "GET"
        assert opts.headers == {}
        assert opts.is_cacheable is True

    @pytest.mark.parametrize("method", ["get", "GET", "Get"])
    def test_get_is_cacheable_any_case(self, method: str) -> None:
        assert RequestOptions(method=method).is_cacheable is True

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "HEAD"])
    def test_other_methods_not_cacheable(self, method: str) -> None:
        assert RequestOptions(method=method).is_cacheable is False


class TestRelayResponse:
    def test_ok_range(self) -> None:
        assert RelayResponse(200, "OK", {}, b"").ok is True
        assert RelayResponse(304, "Not Modified", {}, b"").ok is True
        assert RelayResponse(404, "Not Found", {}, b"").ok is False
        assert RelayResponse(500, "Internal Server Error", {}, b"").ok is False

    def test_text_and_json(self) -> None:
        resp = RelayResponse(200, "OK", {"content-type": "application/json"}, b'{"user": "ada"}')
        assert resp.text == '{"user": "ada"}'
        assert resp.json() == {"user": "ada"}


class TestRequestStats:
    def test_counters_start_at_zero(self) -> None:
        assert RequestStats().as_dict() == {
            "total": 0,
            "success": 0,
            "failed": 0,
            "cached": 0,
            "rate_limited": 0,
        }

    def test_record_and_reset(self) -> None:
        stats = RequestStats()
        stats.record_admitted()
        stats.record_admitted()
        stats.record_success()
        stats.record_failure()
        stats.record_cache_hit()
        stats.record_rate_limited()
        assert stats.as_dict() == {"total": 2, "success": 1, "failed": 1, "cached": 1, "rate_limited": 1}
        stats.reset()
        assert stats.total == stats.success == stats.failed == stats.cached == 0
