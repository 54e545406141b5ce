import asyncio

import pytest

from errors import TransactionRevertError, ValidationError, ValidationReason, WalletRejectionError
from models import TxStatus
from notifier import NoticeLevel, Notifier
from tx_controller import (
    CONFIRMING_KEY,
    ControllerState,
    DismissNotice,
    Notify,
    ReceiptConfirmed,
    ReceiptFailed,
    ReceiptWaitStarted,
    RefreshSaleState,
    RequestSignature,
    ResetForm,
    RunValidation,
    SignatureObtained,
    SignatureRejected,
    SubmitRequested,
    TransactionController,
    ValidationFailed,
    ValidationPassed,
    WaitForReceipt,
    transition,
)


def confirming_state(tx_hash="0xaa"):
    return ControllerState(flow="purchase", status=TxStatus.CONFIRMING, request="req", tx_hash=tx_hash)


# Reducer

def test_happy_path_transitions():
    st = ControllerState(flow="purchase")

    st, effects = transition(st, SubmitRequested("1"))
    assert st.status == TxStatus.VALIDATING
    assert effects == [RunValidation("1")]

    st, effects = transition(st, ValidationPassed("order"))
    assert st.status == TxStatus.AWAITING_SIGNATURE
    assert effects == [RequestSignature("order")]

    st, effects = transition(st, SignatureObtained("0xaa", at=5.0))
    assert st.status == TxStatus.SUBMITTED
    assert st.tx_hash == "0xaa"
    assert effects == [WaitForReceipt("0xaa")]

    st, effects = transition(st, ReceiptWaitStarted("0xaa"))
    assert st.status == TxStatus.CONFIRMING
    assert effects == [Notify(NoticeLevel.LOADING, "Confirming transaction...", key=CONFIRMING_KEY)]

    st, effects = transition(st, ReceiptConfirmed("0xaa"))
    assert st.status == TxStatus.CONFIRMED
    assert DismissNotice(CONFIRMING_KEY) in effects
    assert ResetForm() in effects
    assert RefreshSaleState() in effects


def test_validation_failure_returns_to_idle_without_remote_call():
    st, _ = transition(ControllerState(flow="purchase"), SubmitRequested("0"))
    error = ValidationError(ValidationReason.BELOW_MINIMUM, "Minimum purchase is 0.0001 ETH")
    st, effects = transition(st, ValidationFailed(error))
    assert st.status == TxStatus.IDLE
    assert st.error == "Minimum purchase is 0.0001 ETH"
    assert effects == [Notify(NoticeLevel.ERROR, "Minimum purchase is 0.0001 ETH")]
    assert not any(isinstance(e, RequestSignature) for e in effects)


def test_signature_rejection_returns_to_idle():
    st = ControllerState(flow="creation", status=TxStatus.AWAITING_SIGNATURE)
    st, effects = transition(st, SignatureRejected("User rejected the request."))
    assert st.status == TxStatus.IDLE
    assert effects == [Notify(NoticeLevel.ERROR, "User rejected the request.")]


def test_submit_refused_while_in_flight():
    st = confirming_state()
    st2, effects = transition(st, SubmitRequested("1"))
    assert st2 is st
    assert not any(isinstance(e, RunValidation) for e in effects)


@pytest.mark.parametrize("status", [TxStatus.CONFIRMED, TxStatus.FAILED, TxStatus.IDLE])
def test_new_attempt_allowed_after_terminal_state(status):
    st = ControllerState(flow="purchase", status=status, tx_hash="0xaa", error="x")
    st, effects = transition(st, SubmitRequested("1"))
    assert st.status == TxStatus.VALIDATING
    assert st.tx_hash is None and st.error is None
    assert effects == [RunValidation("1")]


def test_confirmation_fires_once_per_hash():
    st, first = transition(confirming_state(), ReceiptConfirmed("0xaa"))
    st, second = transition(st, ReceiptConfirmed("0xaa"))
    st, third = transition(st, ReceiptConfirmed("0xaa"))
    assert ResetForm() in first
    assert second == [] and third == []
    assert st.status == TxStatus.CONFIRMED


def test_events_for_other_hash_are_ignored():
    st = confirming_state("0xaa")
    assert transition(st, ReceiptConfirmed("0xbb")) == (st, [])
    assert transition(st, ReceiptFailed("0xbb", "boom")) == (st, [])


def test_receipt_failure_is_terminal():
    st, effects = transition(confirming_state(), ReceiptFailed("0xaa", "execution reverted: Sale ended"))
    assert st.status == TxStatus.FAILED
    assert st.error == "execution reverted: Sale ended"
    assert Notify(NoticeLevel.ERROR, "execution reverted: Sale ended") in effects
    assert transition(st, ReceiptConfirmed("0xaa")) == (st, [])


# Driver

class Harness:
    def __init__(self, validate=None, reject=None, revert=None):
        self.signed = []
        self.resets = 0
        self.refreshes = 0
        self.gate = asyncio.Event()
        self.reject = reject
        self.revert = revert
        self.notifier = Notifier()
        self.controller = TransactionController(
            "purchase",
            validate=validate or (lambda payload: f"order:{payload}"),
            sign=self.sign,
            wait_for_receipt=self.wait,
            notifier=self.notifier,
            on_reset=self.reset,
            on_refresh=self.refresh,
        )

    async def sign(self, request):
        if self.reject:
            raise WalletRejectionError(self.reject)
        self.signed.append(request)
        return f"0x{len(self.signed):02x}"

    async def wait(self, tx_hash):
        await self.gate.wait()
        if self.revert:
            raise TransactionRevertError(self.revert, tx_hash)
        return {"status": 1}

    def reset(self):
        self.resets += 1

    async def refresh(self):
        self.refreshes += 1


@pytest.mark.asyncio
async def test_driver_confirms_and_runs_side_effects_once():
    h = Harness()
    state = await h.controller.submit("1")
    assert state.status in (TxStatus.SUBMITTED, TxStatus.CONFIRMING)
    assert h.signed == ["order:1"]

    await asyncio.sleep(0)
    assert h.controller.status == TxStatus.CONFIRMING
    assert CONFIRMING_KEY in h.notifier.active

    h.gate.set()
    state = await h.controller.settle()
    assert state.status == TxStatus.CONFIRMED
    assert h.resets == 1 and h.refreshes == 1
    assert CONFIRMING_KEY not in h.notifier.active

    # A repeated confirmation poll for the same hash
    await h.controller.dispatch(ReceiptConfirmed("0x01"))
    assert h.resets == 1 and h.refreshes == 1
    successes = [n for n in h.notifier.history if n.level == NoticeLevel.SUCCESS]
    assert len(successes) == 1
    assert h.controller.record.hash == "0x01"


@pytest.mark.asyncio
async def test_driver_refuses_second_submission_while_pending():
    h = Harness()
    await h.controller.submit("1")
    await h.controller.submit("2")
    assert h.signed == ["order:1"]
    assert any("already in progress" in n.message for n in h.notifier.history)
    h.gate.set()
    await h.controller.settle()


@pytest.mark.asyncio
async def test_driver_validation_error_never_signs():
    error = ValidationError(ValidationReason.SALE_PAUSED, "Presale is currently paused")
    h = Harness(validate=lambda payload: error)
    state = await h.controller.submit("1")
    assert state.status == TxStatus.IDLE
    assert h.signed == []
    assert [n.message for n in h.notifier.history] == ["Presale is currently paused"]


@pytest.mark.asyncio
async def test_driver_wallet_rejection():
    h = Harness(reject="User denied transaction signature")
    state = await h.controller.submit("1")
    assert state.status == TxStatus.IDLE
    assert state.error == "User denied transaction signature"
    assert h.controller.record.status == TxStatus.IDLE


@pytest.mark.asyncio
async def test_driver_revert_surfaces_message_verbatim():
    h = Harness(revert="execution reverted: Presale: sold out")
    await h.controller.submit("1")
    h.gate.set()
    state = await h.controller.settle()
    assert state.status == TxStatus.FAILED
    assert h.notifier.history[-1].message == "execution reverted: Presale: sold out"
    assert h.resets == 0 and h.refreshes == 0
    assert len(h.signed) == 1


@pytest.mark.asyncio
async def test_closed_controller_runs_no_effects():
    h = Harness()
    await h.controller.submit("1")
    await asyncio.sleep(0)
    await h.controller.close()
    h.gate.set()
    await asyncio.sleep(0)
    assert h.resets == 0 and h.refreshes == 0
    assert not any(n.level == NoticeLevel.SUCCESS for n in h.notifier.history)
    assert await h.controller.dispatch(ReceiptConfirmed("0x01")) == []


@pytest.mark.asyncio
async def test_driver_validator_crash_returns_to_idle():
    calls = []

    def validate(payload):
        calls.append(payload)
        if payload == "boom":
            raise ArithmeticError("overflow")
        return f"order:{payload}"

    h = Harness(validate=validate)
    state = await h.controller.submit("boom")
    assert state.status == TxStatus.IDLE
    assert h.notifier.history[-1].level == NoticeLevel.ERROR
    assert h.signed == []

    await h.controller.submit("1")
    assert h.signed == ["order:1"]
    h.gate.set()
    state = await h.controller.settle()
    assert state.status == TxStatus.CONFIRMED


@pytest.mark.asyncio
async def test_failed_refresh_does_not_drop_success_notice():
    h = Harness()

    async def broken_refresh():
        raise RuntimeError("rpc down")

    h.controller.on_refresh = broken_refresh
    await h.controller.submit("1")
    h.gate.set()
    state = await h.controller.settle()
    assert state.status == TxStatus.CONFIRMED
    assert [n.level for n in h.notifier.history].count(NoticeLevel.SUCCESS) == 1


def test_success_notice_comes_before_refresh():
    _, effects = transition(confirming_state(), ReceiptConfirmed("0xaa"))
    kinds = [type(e) for e in effects]
    assert kinds.index(Notify) < kinds.index(RefreshSaleState)
