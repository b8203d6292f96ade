"""
Event Listener Utility for real-time MessageSent monitoring.

Provides WebSocket-based event listening with automatic reconnection. Events
delivered here are a latency optimization; the poller still re-scans every
block range.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from web3 import AsyncWeb3, Web3
from web3.exceptions import ProviderConnectionError
from web3.providers import WebSocketProvider
from web3.utils.subscriptions import LogsSubscription, LogsSubscriptionContext
from websockets.exceptions import WebSocketException

# Failures that warrant a reconnect rather than ending the listener
RECONNECTABLE_ERRORS = (ConnectionError, OSError, ProviderConnectionError, WebSocketException)


class ConnectionState(Enum):
    """Connection state for event listener."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class EventListenerUtility:
    """
    Utility for listening to contract events via WebSocket.

    Logs are decoded with the contract event object, so the callback receives
    the same EventData shape as a get_logs query.
    """

    def __init__(
        self,
        websocket_url: str,
        contract_address: str,
        event_obj: Any,
        max_retries: int = 5,
        request_timeout: int = 60,
    ) -> None:
        """
        Initialize the EventListenerUtility.

        Args:
            websocket_url: WebSocket RPC endpoint URL
            contract_address: Address of the contract emitting the event
            event_obj: Contract event object (e.g. contract.events.MessageSent)
            max_retries: Consecutive failed connection attempts before giving up
            request_timeout: WebSocket request timeout in seconds
        """
        self.websocket_url = websocket_url
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.event_obj = event_obj
        self.max_retries = max_retries
        self.request_timeout = request_timeout

        self.connection_state = ConnectionState.DISCONNECTED
        self.async_w3: AsyncWeb3 | None = None
        self.event_callback: Callable[[Any], Awaitable[Any]] | None = None
        self.events_received = 0
        self._stopping = False

        # Retry configuration
        self.base_delay = 1
        self.max_delay = 60

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def event_name(self) -> str:
        return getattr(self.event_obj, "event_name", "MessageSent")

    async def listen(self, callback: Callable[[Any], Awaitable[Any]]) -> None:
        """
        Deliver decoded events to callback until stopped.

        Raises:
            ConnectionError, OSError, ProviderConnectionError, WebSocketException:
                After max_retries consecutive failures
        """
        self.event_callback = callback
        self._stopping = False
        self.logger.info(f"Starting WebSocket event listener for {self.event_name}")

        await self._websocket_listener()

    async def _websocket_listener(self) -> None:
        """WebSocket-based event listening with exponential back-off reconnect."""
        retry_count = 0

        while not self._stopping:
            try:
                self.connection_state = ConnectionState.CONNECTING
                self.logger.info(f"Connecting to WebSocket: {self.websocket_url}")

                async with AsyncWeb3(
                    WebSocketProvider(
                        self.websocket_url,
                        request_timeout=self.request_timeout,
                        subscription_response_queue_size=10000,
                    )
                ) as w3:
                    self.async_w3 = w3
                    self.connection_state = ConnectionState.CONNECTED
                    retry_count = 0
                    self.logger.info("WebSocket connected successfully")

                    logs_subscription = LogsSubscription(
                        label=f"{self.event_name}-subscription",
                        address=self.contract_address,
                        topics=[self.event_obj.topic],
                        handler=self._log_handler,
                    )

                    self.logger.info(f"Subscribing to {self.event_name} events on {self.contract_address}")
                    await w3.subscription_manager.subscribe([logs_subscription])
                    await w3.subscription_manager.handle_subscriptions()

            except RECONNECTABLE_ERRORS as e:
                if self._stopping:
                    break
                retry_count += 1
                delay = min(self.base_delay * (2 ** retry_count), self.max_delay)

                self.logger.warning(
                    f"WebSocket connection failed (attempt {retry_count}/{self.max_retries}): {e}"
                )

                if retry_count < self.max_retries:
                    self.logger.info(f"Retrying in {delay} seconds...")
                    self.connection_state = ConnectionState.RECONNECTING
                    await asyncio.sleep(delay)
                else:
                    self.logger.error("Max WebSocket retries reached")
                    self.connection_state = ConnectionState.FAILED
                    raise
            finally:
                self.async_w3 = None

        self.connection_state = ConnectionState.DISCONNECTED

    async def _log_handler(self, handler_context: LogsSubscriptionContext) -> None:
        """
        Decode one subscription log and hand it to the callback.

        Args:
            handler_context: Context containing the log receipt
        """
        try:
            event = self.event_obj.process_log(handler_context.result)
        except Exception as e:
            self.logger.error(f"Could not decode {self.event_name} log: {e}")
            return

        self.events_received += 1
        if self.event_callback:
            await self.event_callback(event)

    async def stop(self) -> None:
        """Stop the event listener and clean up resources."""
        self.logger.info("Stopping event listener...")
        self._stopping = True

        try:
            if self.async_w3 is not None:
                await self.async_w3.subscription_manager.unsubscribe_all()
                await self.async_w3.provider.disconnect()
        except Exception as e:
            self.logger.warning(f"Error during cleanup: {e}")
        finally:
            self.connection_state = ConnectionState.DISCONNECTED
            self.async_w3 = None

    def get_status(self) -> dict[str, Any]:
        return {
            "connection_state": self.connection_state.value,
            "events_received": self.events_received,
            "websocket_url": self.websocket_url,
        }
