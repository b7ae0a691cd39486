"""Companion-device bearer token channel.

The companion (phone) side advertises that it can serve a token by publishing a
retained message under ``<base>/capabilities/retrieve_jwt/<node id>`` and keeps
the token itself as a retained JSON item on ``<base>/nodes/<node id>/jwt``::

    {"net.mymicds.watchface.jwt": "<token>"}

The face discovers nodes once at activation, fetches the first node's item, and
separately subscribes to every node's item for later changes.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import ssl
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import paho.mqtt.client as mqtt

from .config import MqttConfig

LOGGER = logging.getLogger("schoolface.token_channel")

JWT_KEY = "net.mymicds.watchface.jwt"
JWT_CAPABILITY = "retrieve_jwt"
JWT_PATH = "/jwt"

TokenCallback = Callable[[str], None]


@dataclass(slots=True, frozen=True)
class CompanionNode:
    id: str
    display_name: str | None = None


def token_item_uri(node: CompanionNode) -> str:
    """Address of a node's token item, e.g. ``wear://pixel-7/jwt``."""
    return f"wear://{node.id}{JWT_PATH}"


def parse_token_item(payload: str) -> str | None:
    """Extract the token from a data item payload. Returns None when absent."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    token = data.get(JWT_KEY)
    if not isinstance(token, str) or not token.strip():
        return None
    return token.strip()


class TokenSource(Protocol):
    async def connect(self) -> None: ...

    def is_open(self) -> bool: ...

    async def discover_nodes(self) -> list[CompanionNode]: ...

    async def fetch_token(self, node: CompanionNode) -> str | None: ...

    def subscribe(self, on_token: TokenCallback) -> None: ...

    async def close(self) -> None: ...


async def acquire_token(source: TokenSource, logger: logging.Logger | None = None) -> str | None:
    """One-shot discovery and fetch. Returns None when no companion can serve a token."""
    log = logger or LOGGER
    nodes = await source.discover_nodes()
    if not nodes:
        log.info("No companion node advertises %s; waiting for a pushed token", JWT_CAPABILITY)
        return None
    node = nodes[0]
    log.debug("Constructed token URI: %s", token_item_uri(node))
    token = await source.fetch_token(node)
    if token is None:
        log.info("Companion node %s has no token stored", node.id)
    return token


class MqttTokenChannel:
    """:class:`TokenSource` backed by retained MQTT messages."""

    def __init__(self, config: MqttConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or LOGGER
        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._persistent: dict[str, Callable] = {}

    @property
    def capability_topic(self) -> str:
        return f"{self.config.topic_base}/capabilities/{JWT_CAPABILITY}/+"

    @property
    def changes_topic(self) -> str:
        return f"{self.config.topic_base}/nodes/+{JWT_PATH}"

    def item_topic(self, node: CompanionNode) -> str:
        return f"{self.config.topic_base}/nodes/{node.id}{JWT_PATH}"

    def is_open(self) -> bool:
        """True once a client exists; the broker handshake may still be in flight."""
        return self._client is not None

    def is_connected(self) -> bool:
        client = self._client
        try:
            return bool(client and client.is_connected())
        except Exception:
            return False

    async def connect(self) -> None:
        if not self.config.host:
            self._logger.debug("[mqtt] MQTT host not configured; companion token channel disabled")
            return
        if self._client is not None:
            return
        self._loop = asyncio.get_running_loop()
        callback_kwargs: dict[str, object] = {}
        if hasattr(mqtt, "CallbackAPIVersion"):
            callback_kwargs["callback_api_version"] = mqtt.CallbackAPIVersion.VERSION2
        client = mqtt.Client(client_id=self.config.client_id, clean_session=True, **callback_kwargs)
        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password or "")
        if self.config.tls_enabled:
            tls_kwargs: dict[str, object] = {}
            if self.config.ca_cert:
                tls_kwargs["ca_certs"] = self.config.ca_cert
            if self.config.cert:
                tls_kwargs["certfile"] = self.config.cert
            if self.config.key:
                tls_kwargs["keyfile"] = self.config.key
            tls_kwargs["tls_version"] = getattr(ssl, "PROTOCOL_TLS_CLIENT", ssl.PROTOCOL_TLS)
            client.tls_set(**tls_kwargs)
        client.on_connect = self._on_connect
        try:
            await asyncio.to_thread(client.connect, self.config.host, self.config.port, keepalive=30)
        except Exception as exc:
            self._logger.warning("[mqtt] Failed to connect to MQTT: %s", exc)
            return
        client.loop_start()
        self._client = client

    async def close(self) -> None:
        client = self._client
        self._client = None
        self._persistent.clear()
        if client:
            await asyncio.to_thread(client.loop_stop)
            client.disconnect()

    async def discover_nodes(self) -> list[CompanionNode]:
        client = self._client
        if not client:
            return []
        loop = asyncio.get_running_loop()
        found: dict[str, CompanionNode] = {}

        def _collect(node: CompanionNode) -> None:
            found.setdefault(node.id, node)

        def _callback(_client, _userdata, message):  # type: ignore[no-untyped-def]
            node = self._node_from_advert(message.topic, message.payload)
            if node is not None:
                self._call_soon(loop, _collect, node)

        topic = self.capability_topic
        client.message_callback_add(topic, _callback)
        self._subscribe(client, topic)
        try:
            await asyncio.sleep(self.config.discovery_timeout)
        finally:
            client.unsubscribe(topic)
            client.message_callback_remove(topic)
        nodes = list(found.values())
        self._logger.debug("[mqtt] Discovered %d companion node(s): %s", len(nodes), [node.id for node in nodes])
        return nodes

    async def fetch_token(self, node: CompanionNode) -> str | None:
        client = self._client
        if not client:
            return None
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str | None] = loop.create_future()

        def _resolve(token: str | None) -> None:
            if not future.done():
                future.set_result(token)

        def _callback(_client, _userdata, message):  # type: ignore[no-untyped-def]
            payload = message.payload.decode("utf-8", errors="ignore")
            token = parse_token_item(payload)
            if token is None:
                self._logger.warning("[mqtt] Token item on %s has no %s field", message.topic, JWT_KEY)
            self._call_soon(loop, _resolve, token)

        topic = self.item_topic(node)
        client.message_callback_add(topic, _callback)
        self._subscribe(client, topic)
        try:
            return await asyncio.wait_for(future, timeout=self.config.fetch_timeout)
        except TimeoutError:
            self._logger.info("[mqtt] No token item retained at %s", token_item_uri(node))
            return None
        finally:
            # Filters are tracked separately, so the wildcard change subscription survives this.
            client.unsubscribe(topic)
            client.message_callback_remove(topic)

    def subscribe(self, on_token: TokenCallback) -> None:
        client = self._client
        if not client:
            raise RuntimeError("MQTT client is not connected")
        loop = self._loop or asyncio.get_running_loop()

        def _callback(_client, _userdata, message):  # type: ignore[no-untyped-def]
            payload = message.payload.decode("utf-8", errors="ignore")
            token = parse_token_item(payload)
            if token is None:
                self._logger.warning("[mqtt] Ignoring token change on %s without %s", message.topic, JWT_KEY)
                return
            self._call_soon(loop, on_token, token)

        topic = self.changes_topic
        self._persistent[topic] = _callback
        client.message_callback_add(topic, _callback)
        self._subscribe(client, topic)

    def _on_connect(self, client, _userdata, _flags, reason_code, properties=None):  # type: ignore[no-untyped-def]
        if not self._is_connect_success(reason_code):
            self._logger.error("[mqtt] Failed to connect to MQTT (reason=%s, properties=%s)", reason_code, properties)
            return
        # Broker sessions are clean; restore change subscriptions after a reconnect.
        for topic in self._persistent:
            self._subscribe(client, topic)

    @staticmethod
    def _is_connect_success(reason_code) -> bool:
        try:
            if hasattr(reason_code, "is_success"):
                return bool(reason_code.is_success())
            if hasattr(reason_code, "is_failure"):
                return not reason_code.is_failure
            return int(reason_code) == 0
        except Exception:
            return False

    def _subscribe(self, client: mqtt.Client, topic: str) -> None:
        result, _mid = client.subscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("[mqtt] Failed to subscribe to topic: %s (rc=%s)", topic, result)

    def _node_from_advert(self, topic: str, payload: bytes) -> CompanionNode | None:
        # An empty retained payload clears the advert.
        if not payload:
            return None
        node_id = topic.rsplit("/", 1)[-1]
        if not node_id:
            return None
        display_name = None
        with contextlib.suppress(json.JSONDecodeError, UnicodeDecodeError):
            data = json.loads(payload.decode("utf-8"))
            if isinstance(data, dict) and isinstance(data.get("name"), str):
                display_name = data["name"]
        return CompanionNode(id=node_id, display_name=display_name)

    def _call_soon(self, loop: asyncio.AbstractEventLoop, callback: Callable, *args: object) -> None:
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            self._logger.debug("[mqtt] Dropping MQTT message; event loop is closed")
