"""Chain client for the Soul NFT and graffiti wall contracts.

``ChainClient`` is the interface the rest of the service depends on;
``Web3ChainClient`` implements it over JSON-RPC with web3.py. Tests provide
in-memory fakes of the same interface.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from eth_account import Account
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from soulscape.chain.abi import GRAFFITI_ABI, PIXEL_PAINTED_SIGNATURE, SOUL_ABI
from soulscape.model.spirit import AttributeVector, SpiritState
from soulscape.model.stroke import MAX_COLOR, WALL_SIZE, Stroke, StrokeSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChainError(Exception):
    """Raised when a chain read fails or a contract call reverts."""

    pass


class ChainWriteError(ChainError):
    """Raised when a transaction cannot be submitted or is reverted."""

    pass


class ConfirmationTimeoutError(ChainWriteError):
    """Raised when a submitted transaction is not confirmed in time."""

    def __init__(self, message: str, tx_hash: str) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class EventDecodeError(ChainError):
    """Raised when a raw log cannot be decoded as a PixelPainted event."""

    pass


@dataclass(frozen=True)
class TxReceipt:
    """Outcome of a confirmed transaction."""

    tx_hash: str
    block_number: int
    status: int

    @property
    def succeeded(self) -> bool:
        """True when the transaction executed without reverting."""
        return self.status == 1


@dataclass(frozen=True)
class PaintEvent:
    """A decoded ``PixelPainted`` event."""

    x: int
    y: int
    token_id: int
    color: int
    timestamp: int  # epoch seconds, as emitted
    tx_hash: str = ""
    block_number: int = 0

    def to_stroke(self, source: StrokeSource = StrokeSource.CHAIN) -> Stroke:
        """Convert to a Stroke (timestamps become milliseconds)."""
        return Stroke(
            x=self.x,
            y=self.y,
            color=self.color,
            token_id=self.token_id,
            timestamp=self.timestamp * 1000,
            tx_hash=self.tx_hash,
            block_number=self.block_number,
            source=source,
        )


def validate_paint_args(x: int, y: int, color: int) -> None:
    """Reject coordinates off the wall and colors outside 24-bit RGB.

    Raises:
        ValueError: On out-of-range arguments.
    """
    if not (0 <= x < WALL_SIZE and 0 <= y < WALL_SIZE):
        raise ValueError(f"Pixel ({x}, {y}) is outside the {WALL_SIZE}x{WALL_SIZE} wall")
    if not 0 <= color <= MAX_COLOR:
        raise ValueError(f"Color {color:#x} is not a 24-bit RGB value")


class ChainClient(ABC):
    """Read/write surface of the Soul and graffiti contracts."""

    @abstractmethod
    def spirit_of(self, owner: str) -> int:
        """Token id owned by ``owner``, 0 when none."""
        raise NotImplementedError

    @abstractmethod
    def get_spirit(self, token_id: int) -> SpiritState:
        """Current on-chain attributes of ``token_id``."""
        raise NotImplementedError

    @abstractmethod
    def owner_of(self, token_id: int) -> str:
        """Owner of ``token_id``. Raises ChainError for missing/burned tokens."""
        raise NotImplementedError

    @abstractmethod
    def total_supply(self) -> int:
        """Number of spirits ever minted."""
        raise NotImplementedError

    @abstractmethod
    def submit_evolution(self, token_id: int, vector: AttributeVector) -> str:
        """Send ``evolveSpirit`` signed by the evolution account; returns the tx hash."""
        raise NotImplementedError

    @abstractmethod
    def wait_for_confirmation(self, tx_hash: str) -> TxReceipt:
        """Block until ``tx_hash`` is mined or the receipt timeout elapses.

        Raises:
            ConfirmationTimeoutError: If no receipt arrives in time.
            ChainWriteError: If the transaction reverted.
        """
        raise NotImplementedError

    @abstractmethod
    def block_number(self) -> int:
        """Latest block number."""
        raise NotImplementedError

    @abstractmethod
    def get_paint_logs(self, from_block: int, to_block: int) -> list[Any]:
        """Raw PixelPainted logs in the inclusive block range."""
        raise NotImplementedError

    @abstractmethod
    def decode_paint_log(self, log: Any) -> PaintEvent:
        """Decode one raw log. Raises EventDecodeError on malformed input."""
        raise NotImplementedError

    @abstractmethod
    def last_paint_time_of(self, token_id: int) -> int:
        """Epoch seconds of the token's last paint (0 if never)."""
        raise NotImplementedError

    @abstractmethod
    def paint_cooldown(self) -> int:
        """Seconds a token must wait between paints."""
        raise NotImplementedError

    @abstractmethod
    def paint(self, token_id: int, x: int, y: int, color: int, private_key: str) -> str:
        """Send ``paint`` signed by ``private_key``; returns the tx hash."""
        raise NotImplementedError


class Web3ChainClient(ChainClient):
    """web3.py implementation of ``ChainClient``.

    View calls are retried on network errors; transactions are never retried
    implicitly. Signing with the evolution account is serialized so that two
    concurrent submissions cannot race on the same nonce.

    Example:
        >>> client = Web3ChainClient(
        ...     rpc_url="https://rpc.example",
        ...     chain_id=420420422,
        ...     soul_address="0x...",
        ...     graffiti_address="0x...",
        ...     evolution_key="0x...",
        ... )
        >>> client.spirit_of("0xabc...")
        7
    """

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        soul_address: str | None,
        graffiti_address: str | None = None,
        evolution_key: str | None = None,
        request_timeout: float = 20.0,
        receipt_timeout: float = 120.0,
        max_retries: int = 3,
        retry_wait: float = 0.5,
        web3: Web3 | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            rpc_url: JSON-RPC endpoint.
            chain_id: Expected chain id, used when signing.
            soul_address: Soul NFT contract address.
            graffiti_address: Graffiti wall contract address.
            evolution_key: Private key of the evolution account.
            request_timeout: Per-RPC timeout in seconds.
            receipt_timeout: Maximum wait for a transaction receipt.
            max_retries: Attempts per view call.
            retry_wait: Initial backoff between view call attempts.
            web3: Pre-built Web3 instance (tests).
        """
        self._w3 = web3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
        )
        self._chain_id = chain_id
        self._receipt_timeout = receipt_timeout
        self._max_retries = max_retries
        self._retry_wait = retry_wait
        self._account = Account.from_key(evolution_key) if evolution_key else None
        self._signer_lock = threading.Lock()

        self._soul = (
            self._w3.eth.contract(address=Web3.to_checksum_address(soul_address), abi=SOUL_ABI)
            if soul_address
            else None
        )
        self._graffiti = (
            self._w3.eth.contract(
                address=Web3.to_checksum_address(graffiti_address), abi=GRAFFITI_ABI
            )
            if graffiti_address
            else None
        )
        self._paint_topic = Web3.keccak(text=PIXEL_PAINTED_SIGNATURE)

    @property
    def evolution_address(self) -> str | None:
        """Address of the evolution account, if a key was supplied."""
        return self._account.address if self._account else None

    # -- helpers -----------------------------------------------------------

    def _soul_contract(self) -> Any:
        if self._soul is None:
            raise ChainError("Soul contract address is not configured")
        return self._soul

    def _graffiti_contract(self) -> Any:
        if self._graffiti is None:
            raise ChainError("Graffiti contract address is not configured")
        return self._graffiti

    def _read(self, description: str, fn: Callable[[], T]) -> T:
        """Run a view call with retries on transport errors."""
        retryer = Retrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._retry_wait, max=10.0),
            retry=retry_if_exception_type(OSError),
            reraise=True,
        )
        try:
            return retryer(fn)
        except ContractLogicError as e:
            raise ChainError(f"{description} reverted: {e}") from e
        except Exception as e:
            logger.error("Chain read %s failed: %s", description, str(e))
            raise ChainError(f"{description} failed: {e}") from e

    def _send(self, description: str, tx_builder: Any, account: Any) -> str:
        """Sign and broadcast a contract transaction."""
        try:
            with self._signer_lock:
                nonce = self._w3.eth.get_transaction_count(account.address, "pending")
                tx = tx_builder.build_transaction(
                    {"from": account.address, "nonce": nonce, "chainId": self._chain_id}
                )
                signed = account.sign_transaction(tx)
                tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise ChainWriteError(f"{description} would revert: {e}") from e
        except Exception as e:
            logger.error("Failed to submit %s: %s", description, str(e))
            raise ChainWriteError(f"Failed to submit {description}: {e}") from e
        return Web3.to_hex(tx_hash)

    # -- Soul contract -----------------------------------------------------

    def spirit_of(self, owner: str) -> int:
        checksum = Web3.to_checksum_address(owner)
        return int(
            self._read(
                "spiritOf", lambda: self._soul_contract().functions.spiritOf(checksum).call()
            )
        )

    def get_spirit(self, token_id: int) -> SpiritState:
        values = self._read(
            "getSpirit", lambda: self._soul_contract().functions.getSpirit(token_id).call()
        )
        aggression, serenity, chaos, influence, connectivity, last_updated = values
        return SpiritState(
            token_id=token_id,
            attributes=AttributeVector.clamped(
                aggression=aggression,
                serenity=serenity,
                chaos=chaos,
                influence=influence,
                connectivity=connectivity,
            ),
            last_updated=int(last_updated),
        )

    def owner_of(self, token_id: int) -> str:
        owner = self._read(
            "ownerOf", lambda: self._soul_contract().functions.ownerOf(token_id).call()
        )
        return str(owner)

    def total_supply(self) -> int:
        return int(
            self._read("totalSupply", lambda: self._soul_contract().functions.totalSupply().call())
        )

    def submit_evolution(self, token_id: int, vector: AttributeVector) -> str:
        if self._account is None:
            raise ChainWriteError("No evolution account configured")
        builder = self._soul_contract().functions.evolveSpirit(token_id, *vector.as_tuple())
        tx_hash = self._send("evolveSpirit", builder, self._account)
        logger.info("Evolution transaction sent: %s", tx_hash, extra={"token_id": token_id})
        return tx_hash

    def wait_for_confirmation(self, tx_hash: str) -> TxReceipt:
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except TimeExhausted as e:
            raise ConfirmationTimeoutError(
                f"Transaction {tx_hash} not confirmed within {self._receipt_timeout}s",
                tx_hash=tx_hash,
            ) from e
        except Exception as e:
            raise ChainWriteError(f"Failed waiting for {tx_hash}: {e}") from e

        result = TxReceipt(
            tx_hash=tx_hash,
            block_number=int(receipt["blockNumber"]),
            status=int(receipt["status"]),
        )
        if not result.succeeded:
            raise ChainWriteError(f"Transaction {tx_hash} reverted")
        return result

    # -- Graffiti contract -------------------------------------------------

    def block_number(self) -> int:
        return int(self._read("blockNumber", lambda: self._w3.eth.block_number))

    def get_paint_logs(self, from_block: int, to_block: int) -> list[Any]:
        address = self._graffiti_contract().address
        params = {
            "address": address,
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": [self._paint_topic],
        }
        return list(self._read("getLogs", lambda: self._w3.eth.get_logs(params)))

    def decode_paint_log(self, log: Any) -> PaintEvent:
        try:
            event = self._graffiti_contract().events.PixelPainted().process_log(log)
            args = event["args"]
            tx_hash = event.get("transactionHash")
            return PaintEvent(
                x=int(args["x"]),
                y=int(args["y"]),
                token_id=int(args["tokenId"]),
                color=int(args["color"]),
                timestamp=int(args["timestamp"]),
                tx_hash=Web3.to_hex(tx_hash) if tx_hash else "",
                block_number=int(event.get("blockNumber") or 0),
            )
        except ChainError:
            raise
        except Exception as e:
            raise EventDecodeError(f"Cannot decode PixelPainted log: {e}") from e

    def last_paint_time_of(self, token_id: int) -> int:
        return int(
            self._read(
                "lastPaintTimeOf",
                lambda: self._graffiti_contract().functions.lastPaintTimeOf(token_id).call(),
            )
        )

    def paint_cooldown(self) -> int:
        return int(
            self._read(
                "PAINT_COOLDOWN",
                lambda: self._graffiti_contract().functions.PAINT_COOLDOWN().call(),
            )
        )

    def paint(self, token_id: int, x: int, y: int, color: int, private_key: str) -> str:
        validate_paint_args(x, y, color)
        painter = Account.from_key(private_key)
        builder = self._graffiti_contract().functions.paint(token_id, x, y, color)
        return self._send("paint", builder, painter)
