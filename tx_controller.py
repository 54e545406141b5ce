"""
Transaction lifecycle of one flow (token creation or token purchase).

transition() is a pure reducer: (state, event) -> (next_state, effects).
TransactionController drives it on the event loop and runs the effects:
validation, the wallet signature request, the receipt wait, notices and
the one-shot success side effects.

    idle -> validating -> idle (error) | awaiting_signature
    awaiting_signature -> idle (error) | submitted(hash)
    submitted -> confirming -> confirmed | failed

Only one attempt is live per flow: a new submission is refused until the
current one reaches idle, confirmed or failed.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

from errors import LaunchpadError, TransactionRevertError, ValidationError, ValidationReason
from models import TransactionRecord, TxStatus
from notifier import Notice, NoticeLevel, Notifier

logger = logging.getLogger("TransactionController")

CONFIRMING_KEY = "confirming"

SUCCESS_MESSAGES = {
    "creation": "Token created successfully!",
    "purchase": "Tokens purchased successfully!",
}

READY_STATES = (TxStatus.IDLE, TxStatus.CONFIRMED, TxStatus.FAILED)


@dataclass(frozen=True)
class ControllerState:
    flow: str
    status: TxStatus = TxStatus.IDLE
    request: Any = None
    tx_hash: Optional[str] = None
    submitted_at: Optional[float] = None
    error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.status in READY_STATES


# Events

@dataclass(frozen=True)
class SubmitRequested:
    payload: Any


@dataclass(frozen=True)
class ValidationPassed:
    request: Any


@dataclass(frozen=True)
class ValidationFailed:
    error: ValidationError


@dataclass(frozen=True)
class SignatureObtained:
    tx_hash: str
    at: float = 0.0


@dataclass(frozen=True)
class SignatureRejected:
    error: str


@dataclass(frozen=True)
class ReceiptWaitStarted:
    tx_hash: str


@dataclass(frozen=True)
class ReceiptConfirmed:
    tx_hash: str


@dataclass(frozen=True)
class ReceiptFailed:
    tx_hash: str
    error: str


Event = Union[SubmitRequested, ValidationPassed, ValidationFailed, SignatureObtained, SignatureRejected,
              ReceiptWaitStarted, ReceiptConfirmed, ReceiptFailed]


# Effects

@dataclass(frozen=True)
class RunValidation:
    payload: Any


@dataclass(frozen=True)
class RequestSignature:
    request: Any


@dataclass(frozen=True)
class WaitForReceipt:
    tx_hash: str


@dataclass(frozen=True)
class Notify:
    level: NoticeLevel
    message: str
    key: Optional[str] = None


@dataclass(frozen=True)
class DismissNotice:
    key: str


@dataclass(frozen=True)
class ResetForm:
    pass


@dataclass(frozen=True)
class RefreshSaleState:
    pass


Effect = Union[RunValidation, RequestSignature, WaitForReceipt, Notify, DismissNotice, ResetForm, RefreshSaleState]


def _tracks(state: ControllerState, tx_hash: str) -> bool:
    return state.tx_hash is not None and state.tx_hash == tx_hash


def transition(state: ControllerState, event: Event) -> Tuple[ControllerState, List[Effect]]:
    """
    Pure reducer for one event.
    Events that do not apply to the current state are ignored (no effects).
    """
    if isinstance(event, SubmitRequested):
        if not state.ready:
            return state, [Notify(NoticeLevel.WARNING, "A transaction is already in progress")]
        return ControllerState(flow=state.flow, status=TxStatus.VALIDATING), [RunValidation(event.payload)]

    if isinstance(event, ValidationFailed):
        if state.status != TxStatus.VALIDATING:
            return state, []
        st = replace(state, status=TxStatus.IDLE, error=event.error.message)
        return st, [Notify(NoticeLevel.ERROR, event.error.message)]

    if isinstance(event, ValidationPassed):
        if state.status != TxStatus.VALIDATING:
            return state, []
        st = replace(state, status=TxStatus.AWAITING_SIGNATURE, request=event.request)
        return st, [RequestSignature(event.request)]

    if isinstance(event, SignatureRejected):
        if state.status != TxStatus.AWAITING_SIGNATURE:
            return state, []
        message = event.error or "Transaction failed"
        return replace(state, status=TxStatus.IDLE, error=message), [Notify(NoticeLevel.ERROR, message)]

    if isinstance(event, SignatureObtained):
        if state.status != TxStatus.AWAITING_SIGNATURE:
            return state, []
        st = replace(state, status=TxStatus.SUBMITTED, tx_hash=event.tx_hash, submitted_at=event.at)
        return st, [WaitForReceipt(event.tx_hash)]

    if isinstance(event, ReceiptWaitStarted):
        if state.status != TxStatus.SUBMITTED or not _tracks(state, event.tx_hash):
            return state, []
        st = replace(state, status=TxStatus.CONFIRMING)
        return st, [Notify(NoticeLevel.LOADING, "Confirming transaction...", key=CONFIRMING_KEY)]

    if isinstance(event, ReceiptConfirmed):
        # Edge-triggered: a hash already confirmed (or never tracked) fires nothing
        if state.status not in (TxStatus.SUBMITTED, TxStatus.CONFIRMING) or not _tracks(state, event.tx_hash):
            return state, []
        st = replace(state, status=TxStatus.CONFIRMED, error=None)
        return st, [
            DismissNotice(CONFIRMING_KEY),
            ResetForm(),
            Notify(NoticeLevel.SUCCESS, SUCCESS_MESSAGES.get(state.flow, "Transaction confirmed")),
            RefreshSaleState(),
        ]

    if isinstance(event, ReceiptFailed):
        if state.status not in (TxStatus.SUBMITTED, TxStatus.CONFIRMING) or not _tracks(state, event.tx_hash):
            return state, []
        message = event.error or "Transaction failed"
        st = replace(state, status=TxStatus.FAILED, error=message)
        return st, [DismissNotice(CONFIRMING_KEY), Notify(NoticeLevel.ERROR, message)]

    return state, []


class TransactionController:
    """
    Runs the lifecycle of one flow on the event loop.

    validate: payload -> request | ValidationError (synchronous, no I/O)
    sign: request -> tx hash (awaits the wallet; raises WalletRejectionError)
    wait_for_receipt: tx hash -> receipt (raises TransactionRevertError)
    """

    def __init__(self, flow: str,
                 validate: Callable[[Any], Any],
                 sign: Callable[[Any], Awaitable[str]],
                 wait_for_receipt: Callable[[str], Awaitable[Any]],
                 notifier: Optional[Notifier] = None,
                 on_reset: Optional[Callable[[], Any]] = None,
                 on_refresh: Optional[Callable[[], Any]] = None,
                 describe_success: Optional[Callable[[Any, str], str]] = None):
        self.flow = flow
        self.validate = validate
        self.sign = sign
        self.wait_for_receipt = wait_for_receipt
        self.notifier = notifier or Notifier()
        self.on_reset = on_reset
        self.on_refresh = on_refresh
        self.describe_success = describe_success

        self.state = ControllerState(flow=flow)
        self._receipt_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def status(self) -> TxStatus:
        return self.state.status

    @property
    def busy(self) -> bool:
        return not self.state.ready

    @property
    def record(self) -> Optional[TransactionRecord]:
        if self.state.status == TxStatus.IDLE and self.state.error is None:
            return None
        return TransactionRecord(
            flow=self.flow,
            hash=self.state.tx_hash,
            submitted_at=self.state.submitted_at or 0.0,
            status=self.state.status,
            error=self.state.error,
        )

    async def submit(self, payload: Any) -> ControllerState:
        """
        Validates and sends one transaction. Returns once the wallet answered;
        the receipt is awaited in the background (see settle()).
        """
        await self.dispatch(SubmitRequested(payload))
        return self.state

    async def settle(self) -> ControllerState:
        """Waits for the in-flight receipt, if any, and returns the resulting state."""
        task = self._receipt_task
        if task is not None and not task.done():
            await task
        return self.state

    async def close(self):
        """Stops awaiting the in-flight transaction. No success or failure effects run afterwards."""
        self._closed = True
        task = self._receipt_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"[{self.flow}] controller closed")

    async def dispatch(self, event: Event) -> List[Effect]:
        if self._closed:
            logger.debug(f"[{self.flow}] closed, dropping {type(event).__name__}")
            return []

        previous = self.state.status
        self.state, effects = transition(self.state, event)
        if self.state.status != previous:
            logger.info(f"[{self.flow}] {previous.value} -> {self.state.status.value}")

        for effect in effects:
            await self._run(effect)
        return effects

    async def _run(self, effect: Effect):
        if isinstance(effect, RunValidation):
            try:
                result = self.validate(effect.payload)
            except Exception as e:
                logger.error(f"[{self.flow}] validation raised: {e}")
                result = ValidationError(ValidationReason.UNPARSEABLE, f"Could not validate input: {e}")
            if isinstance(result, ValidationError):
                await self.dispatch(ValidationFailed(result))
            else:
                await self.dispatch(ValidationPassed(result))

        elif isinstance(effect, RequestSignature):
            try:
                tx_hash = await self.sign(effect.request)
            except LaunchpadError as e:
                await self.dispatch(SignatureRejected(str(e)))
                return
            except Exception as e:
                logger.error(f"[{self.flow}] signature request failed: {e}")
                await self.dispatch(SignatureRejected(str(e)))
                return
            await self.dispatch(SignatureObtained(tx_hash, at=time.time()))

        elif isinstance(effect, WaitForReceipt):
            self._receipt_task = asyncio.ensure_future(self._await_receipt(effect.tx_hash))

        elif isinstance(effect, Notify):
            message = effect.message
            if effect.level == NoticeLevel.SUCCESS and self.describe_success and self.state.tx_hash:
                message = self.describe_success(self.state.request, self.state.tx_hash)
            self.notifier.notify(Notice(effect.level, message, key=effect.key))

        elif isinstance(effect, DismissNotice):
            self.notifier.dismiss(effect.key)

        elif isinstance(effect, ResetForm):
            if self.on_reset:
                self.on_reset()

        elif isinstance(effect, RefreshSaleState):
            if self.on_refresh:
                try:
                    result = self.on_refresh()
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"[{self.flow}] sale state refresh failed: {e}")

    async def _await_receipt(self, tx_hash: str):
        await self.dispatch(ReceiptWaitStarted(tx_hash))
        try:
            await self.wait_for_receipt(tx_hash)
        except TransactionRevertError as e:
            await self.dispatch(ReceiptFailed(tx_hash, e.message))
            return
        except Exception as e:
            logger.error(f"[{self.flow}] receipt wait for {tx_hash} failed: {e}")
            await self.dispatch(ReceiptFailed(tx_hash, str(e) or "Transaction failed"))
            return
        await self.dispatch(ReceiptConfirmed(tx_hash))
