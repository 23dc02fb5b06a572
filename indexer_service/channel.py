"""
State channel client.

Thin async client of a Connext-style payment node: balances, signed
transfers and channel events go over the node's HTTP API, channel
records are kept in the service database.
"""

import asyncio
import inspect
import secrets
from typing import Any, Callable, Optional

import httpx
import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from .db import ChannelStore
from .models import TransferRequest, TransferResponse, TransferUnlocked, parse_amount
from .wallet import ChannelWallet

# The zero address identifies the chain's native asset (ETH)
ADDRESS_ZERO = "0x0000000000000000000000000000000000000000"

EVENT_CURSOR_PATH = "events/cursor"

EventHandler = Callable[[Any], Any]


class EventNames:
    """Channel events that can be subscribed to."""

    CONDITIONAL_TRANSFER_UNLOCKED_EVENT = "CONDITIONAL_TRANSFER_UNLOCKED_EVENT"


class ChannelError(Exception):
    """State channel could not be created or used."""


class TransferError(ChannelError):
    """Transfer was rejected or could not be submitted."""


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


class ChannelEvents:
    """Event subscription and dispatch shared by channel clients."""

    def __init__(self, logger: Any = None):
        self.logger = logger or structlog.get_logger()
        self._handlers: dict[str, list[EventHandler]] = {}

    def on(self, event_name: str, handler: EventHandler) -> None:
        """Register a sync or async handler for an event."""
        self._handlers.setdefault(event_name, []).append(handler)

    async def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Deliver one event to every handler registered for it."""
        handlers = self._handlers.get(event_name)
        if not handlers:
            self.logger.debug("channel_event_ignored", event=event_name)
            return

        payload: Any = data
        if event_name == EventNames.CONDITIONAL_TRANSFER_UNLOCKED_EVENT:
            try:
                payload = TransferUnlocked.from_payload(data)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                self.logger.warning("malformed_channel_event", event=event_name, error=str(e))
                return

        for handler in list(handlers):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.error("channel_event_handler_error", event=event_name, error=str(e))


class StateChannel(ChannelEvents):
    """
    State channel client bound to one wallet and one payment node.

    Use create_state_channel() to build a connected instance.
    """

    def __init__(
        self,
        store: ChannelStore,
        wallet: ChannelWallet,
        node: httpx.AsyncClient,
        messaging: httpx.AsyncClient,
        chain_id: int,
        logger: Any = None,
        poll_interval: float = 1.0,
    ):
        super().__init__(logger)
        self.store = store
        self.wallet = wallet
        self.chain_id = chain_id
        self.poll_interval = poll_interval
        self.node_identifier: Optional[str] = None
        self.multisig_address: Optional[str] = None
        self._node = node
        self._messaging = messaging
        self._listening = False

    @property
    def signer_address(self) -> str:
        """Address that signs transfers; the channel key also holds the free balance."""
        return self.wallet.address

    @property
    def free_balance_address(self) -> str:
        return self.wallet.address

    @property
    def public_identifier(self) -> str:
        return self.wallet.public_identifier

    @property
    def _channel_path(self) -> str:
        return f"channel/{self.public_identifier}"

    async def _request(
        self,
        method: str,
        path: str,
        error: type[ChannelError] = ChannelError,
        **kwargs: Any,
    ) -> Any:
        """Call the node API, mapping transport and HTTP failures to `error`."""
        try:
            response = await self._node.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise error(
                f"Node returned {e.response.status_code} for {method} {path}: "
                f"{_error_detail(e.response)}"
            ) from e
        except httpx.HTTPError as e:
            raise error(f"Node request {method} {path} failed: {e}") from e
        except ValueError as e:
            raise error(f"Node sent an invalid response for {method} {path}") from e

    async def connect(self) -> None:
        """Check the node and restore or open the channel."""
        config = await self._request("GET", "/config")

        try:
            node_chain_id = int(config.get("chainId", self.chain_id))
            node_identifier = config.get("nodeIdentifier")
        except (AttributeError, TypeError, ValueError) as e:
            raise ChannelError(f"Node sent an invalid config: {config!r}") from e

        if node_chain_id != self.chain_id:
            raise ChannelError(
                f"Node is on chain {node_chain_id} but the Ethereum provider is on chain {self.chain_id}"
            )
        self.node_identifier = node_identifier

        record = self.store.get(self._channel_path)
        if record is None:
            record = await self._open_channel()
            self.store.set(self._channel_path, record)
            self.logger.info("channel_record_created", multisig=record["multisigAddress"])
        else:
            self.logger.info("channel_record_restored", multisig=record["multisigAddress"])

        self.multisig_address = record["multisigAddress"]

    async def _open_channel(self) -> dict[str, Any]:
        path = f"/channel/{self.public_identifier}"
        try:
            response = await self._node.get(path)
        except httpx.HTTPError as e:
            raise ChannelError(f"Node request GET {path} failed: {e}") from e

        if response.status_code == 404:
            self.logger.info("channel_opening", public_identifier=self.public_identifier)
            channel = await self._request(
                "POST",
                path,
                json={"signerAddress": self.signer_address, "chainId": self.chain_id},
            )
        else:
            if response.is_error:
                raise ChannelError(
                    f"Node returned {response.status_code} for GET {path}: {_error_detail(response)}"
                )
            try:
                channel = response.json()
            except ValueError as e:
                raise ChannelError(f"Node sent an invalid response for GET {path}") from e

        multisig = channel.get("multisigAddress") if isinstance(channel, dict) else None
        if not multisig:
            raise ChannelError("Node did not return a multisig address for the channel")

        return {
            "multisigAddress": multisig,
            "nodeIdentifier": self.node_identifier,
            "chainId": self.chain_id,
        }

    async def get_free_balance(self, asset_id: str = ADDRESS_ZERO) -> dict[str, int]:
        """Free balance of the channel per participant address."""
        path = f"/channel/{self.public_identifier}/free-balance/{asset_id}"
        body = await self._request("GET", path)
        try:
            return {
                address: parse_amount(amount) for address, amount in body["freeBalance"].items()
            }
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ChannelError(f"Node sent an invalid free balance for GET {path}") from e

    def _transfer_digest(self, payment_id: str, request: TransferRequest) -> bytes:
        return bytes(
            Web3.solidity_keccak(
                ["bytes32", "uint256", "string", "address"],
                [
                    payment_id,
                    request.amount,
                    request.recipient,
                    Web3.to_checksum_address(request.asset_id),
                ],
            )
        )

    async def transfer(self, request: TransferRequest) -> TransferResponse:
        """
        Submit a signed transfer to another channel participant.

        Raises TransferError if the node rejects it or cannot be reached.
        """
        payment_id = "0x" + secrets.token_hex(32)
        signature = self.wallet.sign_digest(self._transfer_digest(payment_id, request))

        body = await self._request(
            "POST",
            "/transfers/signed",
            error=TransferError,
            json={
                "paymentId": payment_id,
                "amount": str(request.amount),
                "recipient": request.recipient,
                "assetId": request.asset_id,
                "sender": self.public_identifier,
                "signerAddress": self.signer_address,
                "signature": signature,
                "meta": request.meta or {},
            },
        )

        if isinstance(body, dict):
            payment_id = body.get("paymentId", payment_id)

        return TransferResponse(
            payment_id=payment_id,
            recipient=request.recipient,
            amount=request.amount,
        )

    async def poll_events(self) -> int:
        """
        Fetch and dispatch channel events newer than the stored cursor.

        Returns the number of events received.
        """
        cursor = self.store.get(EVENT_CURSOR_PATH) or 0
        response = await self._messaging.get(
            f"/channel/{self.public_identifier}/events",
            params={"since": cursor},
        )
        response.raise_for_status()
        body = response.json()

        if not isinstance(body, dict):
            raise ChannelError("Event feed sent an invalid response")

        events = body.get("events") or []
        for item in events:
            if not isinstance(item, dict) or not item.get("name"):
                self.logger.warning("malformed_channel_event", item=repr(item)[:200])
            else:
                await self.emit(item["name"], item.get("data") or {})

            # Cursor follows each delivered event
            event_id = item.get("id") if isinstance(item, dict) else None
            if event_id is not None and event_id != cursor:
                self.store.set(EVENT_CURSOR_PATH, event_id)
                cursor = event_id

        new_cursor = body.get("cursor", cursor)
        if new_cursor != cursor:
            self.store.set(EVENT_CURSOR_PATH, new_cursor)

        return len(events)

    async def listen(self) -> None:
        """Poll channel events until stop_listening() is called."""
        self._listening = True
        self.logger.info("channel_listening", poll_interval=self.poll_interval)

        while self._listening:
            try:
                await self.poll_events()
            except Exception as e:
                self.logger.warning("channel_event_poll_error", error=str(e))

            await asyncio.sleep(self.poll_interval)

    def stop_listening(self) -> None:
        self._listening = False

    async def close(self) -> None:
        """Close the HTTP clients."""
        self.stop_listening()
        await self._node.aclose()
        if self._messaging is not self._node:
            await self._messaging.aclose()


async def create_state_channel(
    store: ChannelStore,
    mnemonic: str,
    ethereum_provider: str,
    connext_node: str,
    connext_messaging: Optional[str] = None,
    logger: Any = None,
    poll_interval: float = 1.0,
    timeout: float = 30.0,
    web3: Optional[AsyncWeb3] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> StateChannel:
    """
    Create a connected state channel client.

    Raises WalletError for a bad mnemonic and ChannelError when the
    Ethereum provider or the node cannot be used.
    """
    log = logger or structlog.get_logger()
    wallet = ChannelWallet.from_mnemonic(mnemonic)

    w3 = web3 or AsyncWeb3(AsyncHTTPProvider(ethereum_provider))
    try:
        chain_id = int(await w3.eth.chain_id)
    except Exception as e:
        raise ChannelError(f"Ethereum provider {ethereum_provider} is not reachable: {e}") from e

    node = httpx.AsyncClient(base_url=connext_node, timeout=timeout, transport=transport)
    if connext_messaging:
        messaging = httpx.AsyncClient(
            base_url=connext_messaging, timeout=timeout, transport=transport
        )
    else:
        messaging = node

    channel = StateChannel(
        store=store,
        wallet=wallet,
        node=node,
        messaging=messaging,
        chain_id=chain_id,
        logger=log,
        poll_interval=poll_interval,
    )
    try:
        await channel.connect()
    except BaseException:
        await channel.close()
        raise

    log.debug(
        "state_channel_created",
        chain_id=chain_id,
        node=connext_node,
        messaging=connext_messaging or connext_node,
        public_identifier=channel.public_identifier,
    )
    return channel


class MockStateChannel(ChannelEvents):
    """
    In-memory state channel for testing without a node.

    Records every transfer; recipients listed in failing_recipients
    (or every recipient when fail_all is set) are rejected.
    """

    def __init__(
        self,
        free_balance_address: str = "0x1111111111111111111111111111111111111111",
        public_identifier: str = "indraMockIdentifier",
        balances: Optional[dict[str, int]] = None,
        logger: Any = None,
    ) -> None:
        super().__init__(logger)
        self.signer_address = free_balance_address
        self.free_balance_address = free_balance_address
        self.public_identifier = public_identifier
        self.transfers: list[TransferRequest] = []
        self.transfer_times: list[float] = []
        self.failing_recipients: set[str] = set()
        self.fail_all = False
        self._balances = dict(balances or {})
        self._closed = asyncio.Event()
        self._payment_count = 0

    async def get_free_balance(self, asset_id: str = ADDRESS_ZERO) -> dict[str, int]:
        return {self.free_balance_address: self._balances.get(asset_id, 0)}

    async def transfer(self, request: TransferRequest) -> TransferResponse:
        self.transfers.append(request)
        self.transfer_times.append(asyncio.get_running_loop().time())

        if self.fail_all or request.recipient in self.failing_recipients:
            raise TransferError(f"Transfer to {request.recipient} rejected")

        self._payment_count += 1
        return TransferResponse(
            payment_id=f"0x{self._payment_count:064x}",
            recipient=request.recipient,
            amount=request.amount,
        )

    async def listen(self) -> None:
        await self._closed.wait()

    def stop_listening(self) -> None:
        self._closed.set()

    async def close(self) -> None:
        self._closed.set()
