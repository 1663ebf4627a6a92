"""
Kubernetes object store.

Reads and writes Policy custom resources and lists cluster registry entries
through the CustomObjectsApi. API errors are translated into the store error
taxonomy:

- 404 -> NotFoundError
- 409 on create -> AlreadyExistsError, 409 on update -> ConflictError
- 429/5xx and connection failures -> TransientStoreError (retried here)
"""

from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass, field
from functools import partial
from typing import Any, AsyncIterator

import structlog
import urllib3
from kubernetes.client.exceptions import ApiException
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from policysplitter.config import Settings
from policysplitter.core.errors import (
    AlreadyExistsError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    StoreError,
    TransientStoreError,
)
from policysplitter.domain.models import Cluster, LabelSelector, ObjectKey, Policy
from policysplitter.store.base import WatchEvent

logger = structlog.get_logger()

RETRYABLE_STATUSES = (408, 429, 500, 502, 503, 504)
WATCH_EVENT_TYPES = ("ADDED", "MODIFIED", "DELETED")


def _status_reason(exc: ApiException) -> str | None:
    """Extract ``reason`` from the Status body the API server returns."""
    if not exc.body:
        return None
    try:
        return json.loads(exc.body).get("reason")
    except (TypeError, ValueError, AttributeError):
        return None


def translate_error(exc: Exception, operation: str, target: str) -> StoreError:
    """Map a client exception onto the store error taxonomy."""
    details = {"operation": operation, "target": target}

    if not isinstance(exc, ApiException):
        return TransientStoreError(f"{operation} {target} failed: {exc}", details)

    details["status"] = exc.status
    reason = _status_reason(exc)

    if exc.status == 404:
        return NotFoundError(f"{target} not found", details)
    if exc.status == 409:
        if operation == "create" or reason == "AlreadyExists":
            return AlreadyExistsError(f"{target} already exists", details)
        return ConflictError(f"{target} has been modified", details)
    if exc.status in RETRYABLE_STATUSES:
        return TransientStoreError(f"{operation} {target} failed: HTTP {exc.status}", details)
    return StoreError(f"{operation} {target} failed: HTTP {exc.status} {exc.reason}", details)


@dataclass
class KubernetesObjectStore:
    """
    Policy store backed by the Kubernetes API.

    Configuration:
        namespace: Namespace to list/watch (None = all namespaces)
        kubeconfig: Path to kubeconfig file (optional)
        context: Kubeconfig context to use (optional)
        timeout: API request timeout in seconds
        max_retries: Attempts for transient API failures
        backoff_factor: Exponential backoff multiplier between attempts
    """

    namespace: str | None = None
    kubeconfig: str | None = None
    context: str | None = None
    timeout: float = 30.0
    max_retries: int = 3
    backoff_factor: float = 0.5

    policy_group: str = "policy.open-cluster-management.io"
    policy_version: str = "v1"
    policy_plural: str = "policies"

    cluster_group: str = "cluster.example.dev"
    cluster_version: str = "v1alpha1"
    cluster_plural: str = "clusters"

    # Internal state
    _api_client: Any = field(default=None, repr=False, compare=False)
    _initialized: bool = field(default=False, repr=False, compare=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> KubernetesObjectStore:
        return cls(
            namespace=settings.namespace,
            kubeconfig=settings.kubeconfig,
            context=settings.context,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            backoff_factor=settings.retry_backoff_factor,
            policy_group=settings.policy_group,
            policy_version=settings.policy_version,
            policy_plural=settings.policy_plural,
            cluster_group=settings.cluster_group,
            cluster_version=settings.cluster_version,
            cluster_plural=settings.cluster_plural,
        )

    def _ensure_initialized(self) -> None:
        """Initialize Kubernetes client if not already done."""
        if self._initialized:
            return

        from kubernetes import client, config

        # Try in-cluster config first, then kubeconfig
        try:
            config.load_incluster_config()
        except config.ConfigException:
            try:
                config.load_kube_config(
                    config_file=self.kubeconfig,
                    context=self.context,
                )
            except config.ConfigException as e:
                raise ConfigurationError(f"Failed to load Kubernetes config: {e}") from e

        self._api_client = client.ApiClient()
        self._initialized = True

    def connect(self) -> None:
        """Load client configuration now instead of on first request."""
        self._ensure_initialized()

    def _get_custom_api(self) -> Any:
        """Get CustomObjectsApi client."""
        self._ensure_initialized()
        from kubernetes import client

        return client.CustomObjectsApi(self._api_client)

    async def _run_sync(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run synchronous kubernetes API call in executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "store_retryable_error",
            attempt=retry_state.attempt_number,
            error=str(error),
        )

    async def _call(self, operation: str, target: str, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Invoke an API method, translating errors and retrying transient ones."""
        kwargs.setdefault("_request_timeout", self.timeout)
        result: Any = None

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(TransientStoreError),
            stop=stop_after_attempt(max(self.max_retries, 1)),
            wait=wait_exponential(multiplier=self.backoff_factor, max=30),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                try:
                    result = await self._run_sync(func, *args, **kwargs)
                except (ApiException, urllib3.exceptions.HTTPError, OSError) as exc:
                    raise translate_error(exc, operation, target) from exc

        return result

    def _policy_args(self, namespace: str) -> tuple[str, str, str, str]:
        return (self.policy_group, self.policy_version, namespace, self.policy_plural)

    async def get(self, key: ObjectKey) -> Policy:
        api = self._get_custom_api()
        raw = await self._call(
            "get",
            f"policy {key}",
            api.get_namespaced_custom_object,
            *self._policy_args(key.namespace),
            key.name,
        )
        return Policy.from_dict(raw)

    async def list(self, namespace: str | None, selector: LabelSelector) -> list[Policy]:
        api = self._get_custom_api()
        if namespace:
            raw = await self._call(
                "list",
                f"policies in {namespace} ({selector})",
                api.list_namespaced_custom_object,
                *self._policy_args(namespace),
                label_selector=str(selector),
            )
        else:
            raw = await self._call(
                "list",
                f"policies ({selector})",
                api.list_cluster_custom_object,
                self.policy_group,
                self.policy_version,
                self.policy_plural,
                label_selector=str(selector),
            )
        return [Policy.from_dict(item) for item in raw.get("items", [])]

    async def create(self, policy: Policy) -> Policy:
        api = self._get_custom_api()
        raw = await self._call(
            "create",
            f"policy {policy.key}",
            api.create_namespaced_custom_object,
            *self._policy_args(policy.namespace),
            policy.to_dict(),
        )
        return Policy.from_dict(raw)

    async def update(self, policy: Policy) -> Policy:
        api = self._get_custom_api()
        raw = await self._call(
            "update",
            f"policy {policy.key}",
            api.replace_namespaced_custom_object,
            *self._policy_args(policy.namespace),
            policy.name,
            policy.to_dict(),
        )
        return Policy.from_dict(raw)

    async def update_status(self, policy: Policy) -> Policy:
        api = self._get_custom_api()
        raw = await self._call(
            "update_status",
            f"policy {policy.key}",
            api.replace_namespaced_custom_object_status,
            *self._policy_args(policy.namespace),
            policy.name,
            policy.to_dict(),
        )
        return Policy.from_dict(raw)

    async def list_clusters(self) -> list[Cluster]:
        api = self._get_custom_api()
        raw = await self._call(
            "list",
            "clusters",
            api.list_cluster_custom_object,
            self.cluster_group,
            self.cluster_version,
            self.cluster_plural,
        )
        return [Cluster.from_dict(item) for item in raw.get("items", [])]

    async def watch(self) -> AsyncIterator[WatchEvent]:
        """
        Stream Policy changes.

        The blocking client watch runs in a daemon thread and hands raw events
        to the event loop. Each server-side watch timeout restarts the stream,
        which replays current objects as ADDED.
        """
        from kubernetes import watch as k8s_watch

        api = self._get_custom_api()
        if self.namespace:
            list_fn = partial(api.list_namespaced_custom_object, *self._policy_args(self.namespace))
        else:
            list_fn = partial(
                api.list_cluster_custom_object,
                self.policy_group,
                self.policy_version,
                self.policy_plural,
            )

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue()
        stop = threading.Event()
        watcher = k8s_watch.Watch()

        def hand_off(item: Any) -> None:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, item)
            except RuntimeError:
                # Event loop already closed
                stop.set()

        def pump() -> None:
            try:
                while not stop.is_set():
                    for raw in watcher.stream(list_fn, timeout_seconds=int(self.timeout) * 10):
                        if stop.is_set():
                            break
                        hand_off(raw)
            except Exception as exc:
                hand_off(exc)
            finally:
                hand_off(None)

        thread = threading.Thread(target=pump, name="policy-watch", daemon=True)
        thread.start()
        logger.info("watch_started", namespace=self.namespace or "*")

        try:
            while True:
                item = await queue.get()
                if item is None:
                    return
                if isinstance(item, Exception):
                    if isinstance(item, (ApiException, urllib3.exceptions.HTTPError, OSError)):
                        raise translate_error(item, "watch", "policies") from item
                    raise item

                event_type = item.get("type")
                if event_type not in WATCH_EVENT_TYPES:
                    logger.warning("watch_event_skipped", type=event_type)
                    continue
                yield WatchEvent(event_type, Policy.from_dict(item["object"]))
        finally:
            stop.set()
            watcher.stop()
