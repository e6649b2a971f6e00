"""Tests for acmegate.services.bookkeeper: renewal entry reconciliation."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from acmegate.metrics.collector import MetricsCollector
from acmegate.models.entries import RenewConfig
from acmegate.services.bookkeeper import RenewalBookkeeper
from acmegate.services.certstore import KeyValueCertificateStore
from acmegate.storage.base import SerializationError
from acmegate.storage.shm import ShmStorage

THRESHOLD = 30 * 86400


@pytest.fixture()
def storage():
    return ShmStorage("bookkeeper")


@pytest.fixture()
def certstore(storage):
    return KeyValueCertificateStore(storage)


@pytest.fixture()
def bookkeeper(storage, certstore):
    return RenewalBookkeeper(storage, certstore, THRESHOLD)


class TestTracking:
    def test_track_writes_entry(self, bookkeeper, storage):
        bookkeeper.track("a.com", 1700000000)
        assert storage.get("acmegate:renew_config:a.com") == (
            '{"host": "a.com", "expire_at": 1700000000}'
        )
        assert bookkeeper.is_tracked("a.com")

    def test_track_replaces(self, bookkeeper):
        bookkeeper.track("a.com", 1)
        bookkeeper.track("a.com", 2)
        assert bookkeeper.entries() == [RenewConfig(host="a.com", expire_at=2)]

    def test_untrack_is_idempotent(self, bookkeeper):
        bookkeeper.track("a.com", 1)
        bookkeeper.untrack("a.com")
        bookkeeper.untrack("a.com")
        assert not bookkeeper.is_tracked("a.com")

    def test_hosts(self, bookkeeper):
        bookkeeper.track("b.com", 1)
        bookkeeper.track("a.com", 1)
        assert bookkeeper.hosts() == ["a.com", "b.com"]

    def test_ttl_forwarded(self, certstore):
        storage = MagicMock()
        RenewalBookkeeper(storage, certstore, THRESHOLD, ttl_seconds=600).track("a.com", 1)
        assert storage.set.call_args.kwargs["ttl"] == 600

    def test_zero_ttl_means_none(self, certstore):
        storage = MagicMock()
        RenewalBookkeeper(storage, certstore, THRESHOLD).track("a.com", 1)
        assert storage.set.call_args.kwargs["ttl"] is None


class TestEntries:
    def test_corrupt_entry_raises(self, bookkeeper, storage):
        storage.set("acmegate:renew_config:bad.com", "][")
        with pytest.raises(SerializationError):
            bookkeeper.entries()

    def test_entry_vanishing_between_list_and_get(self, certstore):
        storage = MagicMock()
        storage.list.return_value = ["acmegate:renew_config:a.com"]
        storage.get.return_value = None
        assert RenewalBookkeeper(storage, certstore, THRESHOLD).entries() == []


class TestReconcile:
    def test_entry_without_certificate_is_removed(self, bookkeeper, storage):
        """Scenario C: the certificate behind a renew entry was deleted."""
        bookkeeper.track("test3.com", 1700000000)

        cleaned = bookkeeper.reconcile()

        assert cleaned == ["test3.com"]
        assert storage.get("acmegate:renew_config:test3.com") is None

    def test_second_run_is_a_noop(self, bookkeeper):
        bookkeeper.track("test3.com", 1700000000)
        bookkeeper.reconcile()

        assert bookkeeper.reconcile() == []

    def test_entry_with_valid_certificate_kept(self, bookkeeper, certstore, make_cert):
        cert, key = make_cert("ok.com", 90 * 86400)
        certstore.save("ok.com", key, cert)
        bookkeeper.track("ok.com", 1)

        assert bookkeeper.reconcile() == []
        assert bookkeeper.is_tracked("ok.com")

    def test_entry_with_expiring_certificate_kept(self, bookkeeper, certstore, make_cert):
        cert, key = make_cert("due.com", -100)
        certstore.save("due.com", key, cert)
        bookkeeper.track("due.com", 1)

        assert bookkeeper.reconcile() == []
        assert bookkeeper.is_tracked("due.com")

    def test_mixed(self, bookkeeper, certstore, make_cert):
        cert, key = make_cert("ok.com")
        certstore.save("ok.com", key, cert)
        for host in ("ok.com", "gone1.com", "gone2.com"):
            bookkeeper.track(host, 1)

        assert sorted(bookkeeper.reconcile()) == ["gone1.com", "gone2.com"]
        assert bookkeeper.hosts() == ["ok.com"]

    def test_metrics_counted(self, storage, certstore):
        metrics = MetricsCollector()
        bookkeeper = RenewalBookkeeper(storage, certstore, THRESHOLD, metrics=metrics)
        bookkeeper.track("gone.com", 1)

        bookkeeper.reconcile()

        assert metrics.get("acmegate_renew_configs_cleaned_total") == 1

    def test_corrupt_entry_does_not_block_others(self, bookkeeper, storage):
        bookkeeper.track("gone.com", 0)
        storage.set("acmegate:renew_config:bad.com", "{not json")

        with pytest.raises(SerializationError, match="acmegate:renew_config:bad.com"):
            bookkeeper.reconcile()

        assert not bookkeeper.is_tracked("gone.com")
        assert storage.get("acmegate:renew_config:bad.com") == "{not json"

    def test_listed_key_is_deleted(self, bookkeeper, storage):
        storage.set(
            "acmegate:renew_config:old.com",
            '{"host": "renamed.com", "expire_at": 1}',
        )

        assert bookkeeper.reconcile() == ["old.com"]
        assert storage.get("acmegate:renew_config:old.com") is None
