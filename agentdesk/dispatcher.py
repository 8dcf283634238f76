"""
Inbound Message Dispatcher

Answers WhatsApp messages exactly once per message id, whichever way they
arrive:
- WebhookTransport: Evolution API pushes MESSAGES_UPSERT events
- PollingTransport: an async loop asks the API for recent messages

Both feed InboundDispatcher.dispatch(), which drops own/empty/duplicate
messages, resolves the instance to an agent, generates the reply through
AgentService.respond() and sends it back through the gateway.

Design Rationale:
- One dispatcher, pluggable transports
- Processed ids live in a bounded LRU, so memory stays flat on long runs
- The core is synchronous; the async poller runs it in the default executor

Usage:
    dispatcher = InboundDispatcher(service, gateway, StaticInstanceResolver({"store-1": 1}))
    poller = PollingTransport(dispatcher, gateway, ["store-1"])
    asyncio.run(poller.run())
"""

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from config.settings import get_settings, WhatsAppConfig
from agentdesk.agent_service import AgentService
from agentdesk.exceptions import GatewayError
from agentdesk.gateway import EvolutionGateway

logger = logging.getLogger(__name__)

WHATSAPP_SUFFIX = "@s.whatsapp.net"
MEDIA_TYPES = {
    "imageMessage": "image",
    "videoMessage": "video",
    "documentMessage": "document",
    "audioMessage": "audio",
}


@dataclass
class InboundMessage:
    """
    A normalized inbound WhatsApp message.

    Attributes:
        message_id: Provider message id (dedup key)
        instance: Evolution instance that received it
        sender: Phone number of the contact
        text: Message text or media caption ("" if none)
        timestamp: Unix seconds (None if unknown)
        from_me: True for messages sent by the instance itself
        metadata: Extra info, e.g. {"media": "image"}
    """
    message_id: str
    instance: str
    sender: str
    text: str
    timestamp: Optional[float] = None
    from_me: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


def parse_evolution_message(raw: Dict[str, Any], instance: str) -> Optional[InboundMessage]:
    """
    Normalize an Evolution API message object.

    Returns:
        InboundMessage, or None if the object has no id or sender
    """
    key = raw.get("key") or {}
    message_id = key.get("id")
    remote_jid = key.get("remoteJid") or ""
    if not message_id or not remote_jid:
        return None

    content = raw.get("message") or {}
    text = content.get("conversation") or (content.get("extendedTextMessage") or {}).get("text")

    metadata: Dict[str, Any] = {}
    for field_name, media in MEDIA_TYPES.items():
        if field_name in content:
            metadata["media"] = media
            text = text or (content[field_name] or {}).get("caption")
            break

    if raw.get("pushName"):
        metadata["push_name"] = raw["pushName"]

    timestamp = raw.get("messageTimestamp")
    try:
        timestamp = float(timestamp) if timestamp is not None else None
    except (TypeError, ValueError):
        timestamp = None

    return InboundMessage(
        message_id=str(message_id),
        instance=instance,
        sender=remote_jid.replace(WHATSAPP_SUFFIX, ""),
        text=(text or "").strip(),
        timestamp=timestamp,
        from_me=bool(key.get("fromMe", False)),
        metadata=metadata,
    )


class ProcessedMessageSet:
    """Thread-safe bounded LRU of message ids already handled."""

    def __init__(self, capacity: int = 1000):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._ids: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    def mark_if_new(self, message_id: str) -> bool:
        """Record message_id. Returns False if it was already recorded."""
        with self._lock:
            if message_id in self._ids:
                self._ids.move_to_end(message_id)
                return False
            self._ids[message_id] = None
            if len(self._ids) > self.capacity:
                self._ids.popitem(last=False)
            return True

    def __contains__(self, message_id: str) -> bool:
        with self._lock:
            return message_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


class BaseInstanceResolver(ABC):
    """Maps a gateway instance name to the agent that answers on it."""

    @abstractmethod
    def resolve(self, instance: str) -> Optional[int]:
        pass


class StaticInstanceResolver(BaseInstanceResolver):
    """
    Resolver over a fixed mapping.

    Example:
        resolver = StaticInstanceResolver.from_string("store-1:1,store-2:4")
    """

    def __init__(self, mapping: Dict[str, int]):
        self.mapping = dict(mapping)

    @classmethod
    def from_string(cls, text: str) -> "StaticInstanceResolver":
        """Parse "instance:agent_id,instance2:agent_id2"."""
        mapping = {}
        for item in filter(None, (part.strip() for part in text.split(","))):
            instance, sep, agent_id = item.rpartition(":")
            if not sep or not instance:
                raise ValueError(f"Invalid instance mapping: {item!r}")
            mapping[instance.strip()] = int(agent_id)
        return cls(mapping)

    @property
    def instances(self) -> List[str]:
        return list(self.mapping)

    def resolve(self, instance: str) -> Optional[int]:
        return self.mapping.get(instance)


@dataclass
class DispatchResult:
    """
    What happened to one inbound message.

    status is one of: replied, error_reply, send_failed, ignored_own,
    ignored_empty, duplicate, no_agent, inactive
    """
    message_id: str
    status: str
    reply: Optional[str] = None
    agent_id: Optional[int] = None

    @property
    def answered(self) -> bool:
        return self.status in ("replied", "error_reply")


class InboundDispatcher:
    """
    Turns inbound messages into agent replies, once per message id.

    Example:
        result = dispatcher.dispatch(message)
        print(result.status, result.reply)
    """

    def __init__(
        self,
        service: AgentService,
        gateway: EvolutionGateway,
        resolver: BaseInstanceResolver,
        processed: Optional[ProcessedMessageSet] = None,
        error_reply: Optional[str] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            service: Agent service that generates replies
            gateway: Outbound message delivery
            resolver: Instance name -> agent id
            processed: Dedup set (default capacity from config)
            error_reply: Text sent when generation fails (default from config)
        """
        settings = get_settings()
        self.service = service
        self.gateway = gateway
        self.resolver = resolver
        self.processed = processed or ProcessedMessageSet(settings.whatsapp.dedup_capacity)
        self.error_reply = error_reply or settings.llm.error_reply

        self._stats = {"received": 0, "replied": 0, "errors": 0}

    def dispatch(self, message: InboundMessage) -> DispatchResult:
        """
        Handle one inbound message.

        Returns:
            DispatchResult describing the outcome
        """
        self._stats["received"] += 1

        if message.from_me:
            return DispatchResult(message.message_id, "ignored_own")
        if not message.text:
            return DispatchResult(message.message_id, "ignored_empty")
        if not self.processed.mark_if_new(message.message_id):
            logger.debug(f"Skipping duplicate message {message.message_id}")
            return DispatchResult(message.message_id, "duplicate")

        agent_id = self.resolver.resolve(message.instance)
        agent = self.service.get_agent(agent_id) if agent_id is not None else None
        if agent is None:
            logger.warning(f"No agent configured for instance {message.instance}")
            return DispatchResult(message.message_id, "no_agent")
        if not agent.is_active:
            logger.info(f"Agent {agent.id} is {agent.status}, not answering {message.sender}")
            return DispatchResult(message.message_id, "inactive", agent_id=agent.id)

        logger.info(f"Message {message.message_id} from {message.sender} -> agent {agent.id}")

        status = "replied"
        try:
            reply = self.service.respond(
                agent, message.sender, message.text, metadata=message.metadata or None
            )
        except Exception as e:
            logger.error(f"Could not answer message {message.message_id}: {e}")
            self._stats["errors"] += 1
            reply = self.error_reply
            status = "error_reply"

        try:
            self.gateway.send_message(message.instance, message.sender, reply)
        except GatewayError as e:
            logger.error(f"Reply to {message.message_id} was not delivered: {e}")
            self._stats["errors"] += 1
            return DispatchResult(message.message_id, "send_failed", reply, agent.id)

        if status == "replied":
            self._stats["replied"] += 1
        return DispatchResult(message.message_id, status, reply, agent.id)

    @property
    def stats(self) -> Dict[str, int]:
        return dict(self._stats)


class WebhookTransport:
    """
    Handles Evolution API webhook payloads.

    Only MESSAGES_UPSERT events (also sent as "messages.upsert") are processed.
    """

    EVENT = "MESSAGES_UPSERT"

    def __init__(self, dispatcher: InboundDispatcher):
        self.dispatcher = dispatcher

    def handle(self, payload: Dict[str, Any]) -> List[DispatchResult]:
        """
        Dispatch every message of a webhook payload.

        Args:
            payload: Decoded webhook JSON body

        Returns:
            One DispatchResult per parsed message
        """
        event = str(payload.get("event", "")).upper().replace(".", "_")
        if event != self.EVENT:
            logger.debug(f"Ignoring webhook event {payload.get('event')!r}")
            return []

        instance = payload.get("instance") or ""
        data = payload.get("data") or {}
        raw_messages = data.get("messages") if isinstance(data, dict) and "messages" in data else data
        if isinstance(raw_messages, dict):
            raw_messages = [raw_messages]

        results = []
        for raw in raw_messages or []:
            message = parse_evolution_message(raw, instance)
            if message is not None:
                results.append(self.dispatcher.dispatch(message))
        return results


class PollingTransport:
    """
    Polls the gateway for recent inbound messages.

    Messages older than max_message_age seconds are ignored so a restart does
    not answer old history.
    """

    def __init__(
        self,
        dispatcher: InboundDispatcher,
        gateway: EvolutionGateway,
        instances: List[str],
        config: Optional[WhatsAppConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or get_settings().whatsapp
        self.dispatcher = dispatcher
        self.gateway = gateway
        self.instances = list(instances)
        self._clock = clock
        self._stopped = asyncio.Event()

    def _is_recent(self, message: InboundMessage) -> bool:
        if message.timestamp is None:
            return True
        return self._clock() - message.timestamp <= self.config.max_message_age

    async def poll_once(self) -> List[DispatchResult]:
        """Fetch and dispatch recent messages of every instance once."""
        loop = asyncio.get_running_loop()
        results = []

        for instance in self.instances:
            try:
                raw_messages = await loop.run_in_executor(
                    None, self.gateway.fetch_messages, instance, self.config.poll_limit
                )
            except GatewayError as e:
                logger.warning(f"Polling {instance} failed: {e}")
                continue

            for raw in raw_messages:
                message = parse_evolution_message(raw, instance)
                if message is None or message.from_me or not self._is_recent(message):
                    continue
                result = await loop.run_in_executor(None, self.dispatcher.dispatch, message)
                results.append(result)

        return results

    async def run(self) -> None:
        """Poll until stop() is called."""
        logger.info(
            f"Polling {len(self.instances)} instance(s) every {self.config.poll_interval}s"
        )
        while not self._stopped.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Polling round failed: {e}")
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.config.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Polling stopped")

    def stop(self) -> None:
        self._stopped.set()
