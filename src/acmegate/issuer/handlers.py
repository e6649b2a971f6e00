"""Challenge handlers for the acmeow issuer.

``acme.challenge_handler`` names how acmegate proves control of a host:

- ``storage_http`` (default) publishes HTTP-01 key authorizations in
  the flat store; the gateway answers
  ``/.well-known/acme-challenge/<token>`` with :func:`lookup_challenge`
- ``file_http`` writes tokens below a webroot
- ``callback_http`` and ``callback_dns`` run operator scripts
- ``ext:pkg.module.Factory`` loads a :class:`HandlerFactory` subclass

Every factory receives ``acme.challenge_handler_config`` and the flat
store.  Configuration problems surface as :class:`IssuanceError` so the
renewal cycle reports them against the host being issued.
"""

from __future__ import annotations

import abc
import importlib
import logging
import subprocess
from typing import TYPE_CHECKING, Any

from acmegate.core import keys
from acmegate.issuer.base import IssuanceError

if TYPE_CHECKING:
    from collections.abc import Callable

    from acmegate.storage.base import Storage

log = logging.getLogger(__name__)

# Key authorizations outlive any sane validation round trip.
_CHALLENGE_TTL_SECONDS = 3600
_SCRIPT_TIMEOUT_SECONDS = 60


class HandlerFactory(abc.ABC):
    """Builds an acmeow challenge handler."""

    @abc.abstractmethod
    def create(self, config: dict[str, Any], storage: Storage) -> Any:  # noqa: ANN401
        """Return a handler instance for *config*.

        Parameters
        ----------
        config:
            ``acme.challenge_handler_config``.
        storage:
            The flat key/value store, for handlers that publish there.

        """


# ---------------------------------------------------------------------------
# Script callbacks
# ---------------------------------------------------------------------------


def _run_script(argv: list[str], timeout: float) -> None:
    try:
        subprocess.run(  # noqa: S603
            argv,
            check=True,
            timeout=timeout,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        msg = f"Challenge script {argv[0]} exited with {exc.returncode}: {exc.stderr.strip()}"
        raise IssuanceError(msg) from exc
    except subprocess.TimeoutExpired as exc:
        msg = f"Challenge script {argv[0]} timed out after {timeout}s"
        raise IssuanceError(msg, retryable=True) from exc


def _required(handler: str, config: dict[str, Any], *names: str) -> list[str]:
    values = [config.get(name) for name in names]
    for name, value in zip(names, values, strict=True):
        if not value:
            msg = f"{handler} handler requires '{name}' in challenge_handler_config"
            raise IssuanceError(msg)
    return values


def _script_hook(script: str, action: str, timeout: float) -> Callable[..., None]:
    """Return a callback that runs ``script <args...>``."""

    def hook(*args: str) -> None:
        log.info("Challenge %s for %s via %s", action, args[0], script)
        _run_script([script, *args], timeout)

    return hook


class CallbackDnsFactory(HandlerFactory):
    """DNS-01 through ``create_script``/``delete_script``.

    ``create_script domain record_name record_value`` and
    ``delete_script domain record_name``; ``propagation_delay`` (default
    10s) is waited after creation.
    """

    def create(self, config: dict[str, Any], storage: Storage) -> Any:  # noqa: ANN401, ARG002
        add, remove = _required("callback_dns", config, "create_script", "delete_script")
        timeout = config.get("script_timeout", _SCRIPT_TIMEOUT_SECONDS)

        from acmeow.handlers import CallbackDnsHandler  # noqa: PLC0415

        return CallbackDnsHandler(
            create_record=_script_hook(add, "dns create", timeout),
            delete_record=_script_hook(remove, "dns delete", timeout),
            propagation_delay=config.get("propagation_delay", 10),
        )


class CallbackHttpFactory(HandlerFactory):
    """HTTP-01 through ``deploy_script domain token key_authorization``
    and ``cleanup_script domain token``.
    """

    def create(self, config: dict[str, Any], storage: Storage) -> Any:  # noqa: ANN401, ARG002
        deploy, cleanup = _required("callback_http", config, "deploy_script", "cleanup_script")
        timeout = config.get("script_timeout", _SCRIPT_TIMEOUT_SECONDS)

        from acmeow.handlers import CallbackHttpHandler  # noqa: PLC0415

        return CallbackHttpHandler(
            deploy=_script_hook(deploy, "http deploy", timeout),
            cleanup=_script_hook(cleanup, "http cleanup", timeout),
        )


class FileHttpFactory(HandlerFactory):
    def create(self, config: dict[str, Any], storage: Storage) -> Any:  # noqa: ANN401, ARG002
        (webroot,) = _required("file_http", config, "webroot")

        from acmeow.handlers import FileHttpHandler  # noqa: PLC0415

        return FileHttpHandler(webroot=webroot)


# ---------------------------------------------------------------------------
# Flat-store HTTP-01
# ---------------------------------------------------------------------------


class StorageHttpFactory(HandlerFactory):
    """Publish key authorizations under the challenge prefix.

    ``ttl`` (default 3600s) bounds how long a token stays answerable if
    cleanup never runs.
    """

    def create(self, config: dict[str, Any], storage: Storage) -> Any:  # noqa: ANN401
        ttl = config.get("ttl", _CHALLENGE_TTL_SECONDS)

        def deploy(domain: str, token: str, key_authorization: str) -> None:
            log.info("Challenge token %s published for %s", token, domain)
            storage.set(keys.challenge_key(token), key_authorization, ttl=ttl)

        def cleanup(domain: str, token: str) -> None:
            log.info("Challenge token %s withdrawn for %s", token, domain)
            storage.delete(keys.challenge_key(token))

        from acmeow.handlers import CallbackHttpHandler  # noqa: PLC0415

        return CallbackHttpHandler(deploy=deploy, cleanup=cleanup)


def lookup_challenge(storage: Storage, token: str) -> str | None:
    """Return the key authorization published for *token*, or ``None``."""
    if not token or "/" in token:
        return None
    return storage.get(keys.challenge_key(token))


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_BUILTIN_FACTORIES: dict[str, type[HandlerFactory]] = {
    "storage_http": StorageHttpFactory,
    "file_http": FileHttpFactory,
    "callback_http": CallbackHttpFactory,
    "callback_dns": CallbackDnsFactory,
}


def _resolve_factory(handler_name: str) -> type[HandlerFactory]:
    if handler_name in _BUILTIN_FACTORIES:
        return _BUILTIN_FACTORIES[handler_name]

    if not handler_name.startswith("ext:"):
        msg = (
            f"Unknown challenge handler '{handler_name}'; expected one of "
            f"{sorted(_BUILTIN_FACTORIES)} or 'ext:package.module.FactoryClass'"
        )
        raise IssuanceError(msg)

    fqn = handler_name.removeprefix("ext:")
    module_path, _, cls_name = fqn.rpartition(".")
    if not module_path:
        msg = f"External handler factory '{fqn}' must be fully qualified"
        raise IssuanceError(msg)
    try:
        cls = getattr(importlib.import_module(module_path), cls_name)
    except (ImportError, AttributeError) as exc:
        msg = f"Failed to load external handler factory '{fqn}': {exc}"
        raise IssuanceError(msg) from exc

    if not (isinstance(cls, type) and issubclass(cls, HandlerFactory)):
        msg = f"External handler factory '{fqn}' must be a subclass of HandlerFactory"
        raise IssuanceError(msg)
    return cls


def load_challenge_handler(
    handler_name: str,
    config: dict[str, Any],
    storage: Storage,
) -> Any:  # noqa: ANN401
    """Build the challenge handler named *handler_name*.

    Raises
    ------
    IssuanceError
        If the name is unknown, the factory cannot be imported, or its
        configuration is incomplete.

    """
    factory = _resolve_factory(handler_name)
    log.debug("Using challenge handler %s (%s)", handler_name, factory.__name__)
    return factory().create(config, storage)
