"""Tests for acmegate.storage.redis_store: Redis backend with a mocked client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import redis

from acmegate.config.settings import RedisSettings
from acmegate.storage.base import StorageUnavailable
from acmegate.storage.redis_store import RedisStorage


def _settings(namespace: str = "", url: str | None = "redis://localhost:6379/0"):
    return RedisSettings(url=url, namespace=namespace, socket_timeout=2.0)


def _storage(namespace: str = ""):
    client = MagicMock()
    return RedisStorage(_settings(namespace), client=client), client


class TestConstruction:
    def test_builds_client_from_url(self):
        with patch("acmegate.storage.redis_store.redis.Redis.from_url") as from_url:
            RedisStorage(_settings())
        from_url.assert_called_once()
        args, kwargs = from_url.call_args
        assert args[0] == "redis://localhost:6379/0"
        assert kwargs["decode_responses"] is True
        assert kwargs["socket_timeout"] == 2.0

    def test_missing_url_unavailable(self):
        with pytest.raises(StorageUnavailable, match="url"):
            RedisStorage(_settings(url=None))


class TestOperations:
    def test_get_namespaced(self):
        s, client = _storage("gw1")
        client.get.return_value = "v"
        assert s.get("k") == "v"
        client.get.assert_called_once_with("gw1:k")

    def test_get_absent(self):
        s, client = _storage()
        client.get.return_value = None
        assert s.get("k") is None

    def test_get_decodes_bytes(self):
        s, client = _storage()
        client.get.return_value = b"v"
        assert s.get("k") == "v"

    def test_set_with_ttl_in_ms(self):
        s, client = _storage()
        s.set("k", "v", ttl=2.5)
        client.set.assert_called_once_with("k", "v", px=2500)

    def test_set_without_ttl(self):
        s, client = _storage()
        s.set("k", "v")
        client.set.assert_called_once_with("k", "v", px=None)

    def test_add_uses_nx(self):
        s, client = _storage()
        client.set.return_value = True
        assert s.add("lock", "v", ttl=10) is True
        client.set.assert_called_once_with("lock", "v", nx=True, px=10000)

    def test_add_when_present(self):
        s, client = _storage()
        client.set.return_value = None
        assert s.add("lock", "v") is False

    def test_delete(self):
        s, client = _storage("ns")
        s.delete("k")
        client.delete.assert_called_once_with("ns:k")

    def test_list_strips_namespace_and_sorts(self):
        s, client = _storage("ns")
        client.scan_iter.return_value = iter(["ns:p:b", b"ns:p:a"])
        assert s.list("p:") == ["p:a", "p:b"]
        assert client.scan_iter.call_args.kwargs["match"] == "ns:p:*"

    def test_list_escapes_glob_characters(self):
        s, client = _storage()
        client.scan_iter.return_value = iter([])
        s.list("odd[1]*:")
        assert client.scan_iter.call_args.kwargs["match"] == "odd\\[1\\]\\*:*"


class TestErrors:
    @pytest.mark.parametrize(
        ("method", "args"),
        [
            ("get", ("k",)),
            ("set", ("k", "v")),
            ("add", ("k", "v")),
            ("delete", ("k",)),
            ("list", ("p:",)),
        ],
    )
    def test_redis_errors_become_unavailable(self, method, args):
        s, client = _storage()
        boom = redis.ConnectionError("down")
        client.get.side_effect = boom
        client.set.side_effect = boom
        client.delete.side_effect = boom
        client.scan_iter.side_effect = boom
        with pytest.raises(StorageUnavailable, match="down"):
            getattr(s, method)(*args)

    def test_close_swallows_redis_error(self):
        s, client = _storage()
        client.close.side_effect = redis.ConnectionError("gone")
        s.close()
