"""Renewal cycle: find due certificates, reissue them, clean up.

One cycle walks every candidate host sequentially (never in parallel,
to stay friendly to the CA's rate limits):

- hosts with a certificate managed by acmegate, plus
- hosts with a renewal entry in the bookkeeper.

Per host the expiry evaluator decides: a stale renewal entry is
removed, a certificate inside the threshold is reissued and persisted,
anything else is left alone.  A failure on one host is recorded in the
:class:`RenewalReport` and the walk continues.

Two cycles for the same ACME account never overlap: the cycle holds a
lock in the flat store, keyed by account name and bounded by
``renewal.lock_timeout_seconds`` so a crashed holder cannot block
renewals forever.

Usage::

    orchestrator = RenewalOrchestrator(settings, storage, certstore, bookkeeper, factory)
    report = orchestrator.run_cycle()

    worker = RenewalWorker(orchestrator, settings.renewal)
    worker.start()
    ...
    worker.stop()
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from acmegate.client import ConfigurationError, account_name
from acmegate.core import keys
from acmegate.core.types import RenewalAction
from acmegate.issuer.base import IssuanceError
from acmegate.logging import events, renewal_context
from acmegate.services.expiry import check_expire
from acmegate.storage.base import StorageError

if TYPE_CHECKING:
    from collections.abc import Callable

    from acmegate.client import AcmeClient
    from acmegate.config.settings import AcmegateSettings, RenewalSettings
    from acmegate.issuer.base import IssuedCertificate
    from acmegate.metrics.collector import MetricsCollector
    from acmegate.services.bookkeeper import RenewalBookkeeper
    from acmegate.services.certstore import CertificateStore
    from acmegate.storage.base import Storage

log = logging.getLogger(__name__)

# Expected per-host failures, logged without a traceback.
_HOST_ERRORS = (IssuanceError, StorageError, ConfigurationError)


@dataclass
class RenewalReport:
    """What one cycle did, per host."""

    cycle_id: str
    skipped: bool = False
    aborted: bool = False
    outcomes: dict[str, RenewalAction] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    def record(self, host: str, action: RenewalAction) -> None:
        self.outcomes[host] = action

    def fail(self, host: str, error: Exception) -> None:
        self.outcomes[host] = RenewalAction.FAILED
        self.failures[host] = str(error)

    def _hosts(self, action: RenewalAction) -> list[str]:
        return [h for h, a in self.outcomes.items() if a == action]

    @property
    def renewed(self) -> list[str]:
        return self._hosts(RenewalAction.RENEWED)

    @property
    def cleaned(self) -> list[str]:
        return self._hosts(RenewalAction.CLEANED)

    @property
    def failed(self) -> list[str]:
        return self._hosts(RenewalAction.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failures


class RenewalOrchestrator:
    """Run renewal cycles and on-demand issuance.

    Parameters
    ----------
    settings:
        The full settings tree.
    storage:
        Flat key/value store holding locks.
    certstore:
        Where certificates are read from and saved to.
    bookkeeper:
        Renewal entry tracker.
    client_factory:
        Builds an :class:`~acmegate.client.AcmeClient`; called lazily,
        at most once per cycle, and only when something needs issuing.

    """

    def __init__(  # noqa: PLR0913
        self,
        settings: AcmegateSettings,
        storage: Storage,
        certstore: CertificateStore,
        bookkeeper: RenewalBookkeeper,
        client_factory: Callable[[], AcmeClient],
        *,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._settings = settings
        self._storage = storage
        self._certstore = certstore
        self._bookkeeper = bookkeeper
        self._client_factory = client_factory
        self._metrics = metrics
        self._client: AcmeClient | None = None

    # -- cycle -----------------------------------------------------------------

    def run_cycle(
        self,
        *,
        should_stop: Callable[[], bool] | None = None,
    ) -> RenewalReport:
        """Run one renewal cycle.

        Parameters
        ----------
        should_stop:
            Polled between hosts; returning True ends the cycle early.

        Returns
        -------
        RenewalReport
            ``skipped`` is set when another cycle holds the lock.

        Raises
        ------
        StorageError
            If the cycle lock or the candidate list cannot be read.

        """
        report = RenewalReport(cycle_id=uuid.uuid4().hex[:12])
        lock = keys.lock_key(account_name(self._settings.acme))

        if not self._storage.add(
            lock,
            report.cycle_id,
            ttl=self._settings.renewal.lock_timeout_seconds,
        ):
            log.info("Renewal cycle skipped: another cycle holds %s", lock)
            report.skipped = True
            return report

        try:
            with renewal_context(cycle_id=report.cycle_id):
                self._walk(report, should_stop)
        finally:
            self._client = None
            if self._storage.get(lock) == report.cycle_id:
                self._storage.delete(lock)

        log.info(
            "Renewal cycle %s finished: %d renewed, %d cleaned, %d failed",
            report.cycle_id,
            len(report.renewed),
            len(report.cleaned),
            len(report.failed),
        )
        return report

    def _walk(
        self,
        report: RenewalReport,
        should_stop: Callable[[], bool] | None,
    ) -> None:
        if self._metrics:
            self._metrics.increment("acmegate_renewal_cycles_total")

        self._certstore.sweep_orphans()
        self._storage.purge_expired()

        tracked = set(self._bookkeeper.hosts())
        stored = set(self._certstore.hosts())
        candidates = sorted(stored | tracked)
        if self._metrics:
            self._metrics.set_gauge("acmegate_managed_certificates", len(stored))
        log.info("Renewal cycle started: %d candidate host(s)", len(candidates))

        for host in candidates:
            if should_stop is not None and should_stop():
                log.info("Renewal cycle stopped before %s", host)
                report.aborted = True
                return
            with renewal_context(host=host):
                self._process_host(host, tracked=host in tracked, report=report)

    def _process_host(self, host: str, *, tracked: bool, report: RenewalReport) -> None:
        try:
            check = check_expire(
                self._certstore,
                host,
                self._settings.acme.renew_threshold_seconds,
                tracked=tracked,
            )
            if check.clean:
                self._bookkeeper.untrack(host)
                events.renew_config_cleaned(host)
                if self._metrics:
                    self._metrics.increment("acmegate_renew_configs_cleaned_total")
                report.record(host, RenewalAction.CLEANED)
            elif check.renew:
                if not tracked:
                    self._bookkeeper.track(host, check.not_after)
                self.renew_host(host, key_pem=check.key)
                report.record(host, RenewalAction.RENEWED)
            else:
                report.record(host, RenewalAction.SKIPPED)
        except _HOST_ERRORS as exc:
            log.warning("Renewal of %s failed: %s", host, exc)
            report.fail(host, exc)
        except Exception as exc:
            log.exception("Unexpected error while renewing %s", host)
            report.fail(host, exc)

    # -- single host -----------------------------------------------------------

    def _get_client(self) -> AcmeClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def renew_host(self, host: str, key_pem: str | None = None) -> IssuedCertificate:
        """Issue a certificate for *host* and persist it.

        Holds a per-host lock for the duration.  After a failure the
        lock is kept for ``acme.fail_backoff_minutes`` so the host is
        not retried on every request.  On success the pending renewal
        entry for *host*, if any, is deleted.

        Raises
        ------
        IssuanceError
            If another issuance for *host* is running or backing off,
            or the CA does not deliver.
        StorageError
            If the new certificate cannot be persisted.

        """
        lock = keys.lock_key(host)
        if not self._storage.add(lock, "issuing", ttl=self._settings.renewal.lock_timeout_seconds):
            msg = f"Issuance for {host} is already running or backing off after a failure"
            raise IssuanceError(msg, retryable=True)

        try:
            issued = self._get_client().order_certificate(host, key_pem=key_pem)
            self._certstore.save(host, issued.key_pem, issued.pem_chain)
            self._bookkeeper.untrack(host)
        except Exception as exc:
            self._back_off(host, lock, exc)
            raise

        self._storage.delete(lock)
        log.info("Certificate for %s renewed (expires %s)", host, issued.not_after.isoformat())
        if self._metrics:
            self._metrics.increment("acmegate_certificates_renewed_total")
        return issued

    update_certificate = renew_host

    def _back_off(self, host: str, lock: str, exc: Exception) -> None:
        retryable = getattr(exc, "retryable", False)
        events.renewal_failed(host, str(exc), retryable=retryable)
        if self._metrics:
            self._metrics.increment("acmegate_renewal_failures_total")

        backoff = self._settings.acme.fail_backoff_minutes * 60
        try:
            if backoff:
                self._storage.set(lock, "failed", ttl=backoff)
            else:
                self._storage.delete(lock)
        except StorageError:
            log.warning("Could not update issuance lock for %s", host, exc_info=True)


# ---------------------------------------------------------------------------
# Background worker
# ---------------------------------------------------------------------------


class RenewalWorker:
    """Daemon thread running :meth:`RenewalOrchestrator.run_cycle` periodically."""

    def __init__(
        self,
        orchestrator: RenewalOrchestrator,
        settings: RenewalSettings,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._settings = settings
        self._metrics = metrics
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._consecutive_failures = 0

    def start(self) -> None:
        """Start the background worker thread."""
        if not self._settings.enabled:
            return
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="renewal-worker",
            daemon=True,
        )
        self._thread.start()
        log.info("Renewal worker started (interval=%ds)", self._settings.interval_seconds)

    def stop(self) -> None:
        """Signal the worker to stop between hosts and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=30)
            log.info("Renewal worker stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        """Main worker loop."""
        interval = self._settings.interval_seconds
        while not self._stop_event.is_set():
            try:
                self._orchestrator.run_cycle(should_stop=self._stop_event.is_set)
                self._consecutive_failures = 0
            except Exception:
                self._consecutive_failures += 1
                log.exception(
                    "Renewal cycle failed (consecutive: %d)",
                    self._consecutive_failures,
                )
                if self._metrics:
                    self._metrics.increment("acmegate_renewal_worker_errors_total")
                # Exponential backoff from one minute, capped at the interval
                backoff = min(60 * (2 ** (self._consecutive_failures - 1)), interval)
                self._stop_event.wait(timeout=backoff)
                continue
            self._stop_event.wait(timeout=interval)
