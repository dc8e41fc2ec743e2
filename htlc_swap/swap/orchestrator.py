"""
Swap Orchestrator for htlc-swap.

Drives one atomic swap across two chain adapters (origin and counter).

Swap Flow (EVM -> TON example):
1. plan: fresh secret S, hashlock H = sha256(S), T1 > T2 + min gap
2. lock_origin: initiator locks on the origin chain under H until T1
3. confirm_origin: learn the origin lock id (correlator when the chain
   does not return it)
4. lock_counter: counterparty locks on the counter chain under the same H
   until T2 < T1 (or register_counter for a lock made elsewhere)
5. reveal: initiator redeems the counter lock with S, making S public
6. complete: counterparty redeems the origin lock with S before T1

If a party walks away each lock is refunded after its own timelock
(refund_counter after T2, refund_origin after T1). A lock whose submission
timed out is re-checked by the refund and taken over once it landed.

The orchestrator never reveals S before the counter lock is confirmed; the
contracts themselves do not enforce that ordering.
"""

import time
import uuid
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Any, Callable

from ..core import Commitment, generate_secret, hashlock_of, verify_preimage, to_bytes32
from ..config import SwapConfig
from ..errors import (
    HTLCError, InvalidArgument, InvalidState, ContractRevert, Timeout, ProtocolViolation,
)
from ..htlc.base import HTLCAdapter, LockOptions, LockResult, TxHandle

log = logging.getLogger(__name__)


class SwapState(Enum):
    """Lifecycle of a swap."""
    PLANNED = "planned"                    # Secret generated, nothing on-chain
    ORIGIN_LOCKED = "origin_locked"        # Origin lock confirmed
    ORIGIN_CONFIRMED = "origin_confirmed"  # Origin lock id known
    COUNTER_LOCKED = "counter_locked"      # Counter lock confirmed, id known
    SECRET_REVEALED = "secret_revealed"    # Counter leg redeemed with S
    COMPLETED = "completed"                # Origin leg redeemed with S
    ORIGIN_REFUNDED = "origin_refunded"
    COUNTER_REFUNDED = "counter_refunded"
    FAILED = "failed"                      # Origin lock rejected, nothing locked


@dataclass
class SwapLeg:
    """One side of the swap."""
    chain: str
    recipient: str
    amount: Any                            # Human units of the leg's chain
    lock_seconds: int
    receiver_chain_id: int                 # Chain the funds of the other leg go to
    receiver_chain_address: str

    lock: Optional[LockResult] = None
    commitment: Optional[Commitment] = None

    # Submission that timed out, re-checked instead of resubmitted
    pending_step: Optional[str] = None
    pending: Optional[TxHandle] = None
    pending_result: Optional[LockResult] = None

    @property
    def timelock(self) -> Optional[int]:
        return self.lock.timelock if self.lock else None

    @property
    def contract_id(self) -> Optional[str]:
        return self.commitment.contract_id if self.commitment else None


@dataclass
class ActiveSwap:
    """Active swap state."""
    swap_id: str
    hashlock: str
    origin: SwapLeg
    counter: SwapLeg
    state: SwapState = SwapState.PLANNED

    _secret: Optional[str] = field(default=None, repr=False)
    revealed: bool = False

    created_at: int = 0
    completed_at: Optional[int] = None
    history: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def secret(self) -> Optional[str]:
        """S, only once it is public on-chain."""
        return self._secret if self.revealed else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "swap_id": self.swap_id,
            "state": self.state.value,
            "hashlock": self.hashlock,
            "secret": self.secret,
            "origin": self.origin.commitment.to_dict() if self.origin.commitment else None,
            "counter": self.counter.commitment.to_dict() if self.counter.commitment else None,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
            "history": list(self.history),
        }


class SwapOrchestrator:
    """
    Runs swaps between an origin and a counter adapter.

    Each step returns once the chain confirmed it. Waits are bounded by the
    relevant timelock minus the configured safety margin.
    """

    def __init__(
        self,
        origin: HTLCAdapter,
        counter: HTLCAdapter,
        correlator=None,
        config: Optional[SwapConfig] = None,
        clock: Callable[[], float] = time.time,
        match_commit_id: bool = True,
    ):
        self.origin = origin
        self.counter = counter
        self.correlator = correlator
        self.config = config or SwapConfig()
        self.clock = clock
        # Only accept the emitted id equal to the commit id we sent
        self.match_commit_id = match_commit_id

        self.swaps: Dict[str, ActiveSwap] = {}

    # =========================================================================
    # Planning
    # =========================================================================

    def plan(
        self,
        origin_recipient: str,
        origin_amount: Any,
        counter_recipient: str,
        counter_amount: Any,
        origin_chain_id: int = 0,
        counter_chain_id: int = 0,
        secret: Optional[str] = None,
        hashlock: Optional[str] = None,
        origin_lock_seconds: Optional[int] = None,
        counter_lock_seconds: Optional[int] = None,
    ) -> ActiveSwap:
        """
        Plan a new swap.

        Args:
            origin_recipient: Counterparty address on the origin chain
            origin_amount: Amount locked on the origin chain
            counter_recipient: Initiator address on the counter chain
            counter_amount: Amount locked on the counter chain
            origin_chain_id / counter_chain_id: Chain ids stored in the locks
            secret: Use this secret instead of a fresh one
            hashlock: Hashlock only, for a counterparty that does not know S
            origin_lock_seconds / counter_lock_seconds: Override SwapConfig

        Raises:
            InvalidArgument: secret and hashlock disagree, bad durations
            ProtocolViolation: counter lock would not expire before origin
        """
        origin_seconds = (origin_lock_seconds if origin_lock_seconds is not None
                          else self.config.origin_lock_seconds)
        counter_seconds = (counter_lock_seconds if counter_lock_seconds is not None
                           else self.config.counter_lock_seconds)
        if origin_seconds <= 0 or counter_seconds <= 0:
            raise InvalidArgument("Lock durations must be > 0")
        # origin lock must still confirm before its own deadline
        required = (counter_seconds + self.config.min_gap_seconds
                    + self.config.safety_margin_seconds + self.config.min_confirm_seconds)
        if required > origin_seconds:
            raise ProtocolViolation(
                f"Origin lock ({origin_seconds}s) must outlast the counter lock "
                f"({counter_seconds}s) by the {self.config.min_gap_seconds}s gap, "
                f"{self.config.safety_margin_seconds}s margin and "
                f"{self.config.min_confirm_seconds}s to confirm"
            )

        if secret is not None:
            computed = hashlock_of(secret)
            if hashlock is not None and computed != to_bytes32(hashlock).hex():
                raise InvalidArgument("Secret does not match hashlock")
            hashlock = computed
        elif hashlock is not None:
            hashlock = to_bytes32(hashlock).hex()
        else:
            secret, hashlock = generate_secret()

        now = int(self.clock())
        swap = ActiveSwap(
            swap_id=f"s_{uuid.uuid4().hex[:12]}",
            hashlock=hashlock,
            _secret=secret,
            origin=SwapLeg(
                chain=self.origin.chain,
                recipient=origin_recipient,
                amount=origin_amount,
                lock_seconds=origin_seconds,
                receiver_chain_id=counter_chain_id,
                receiver_chain_address=counter_recipient,
            ),
            counter=SwapLeg(
                chain=self.counter.chain,
                recipient=counter_recipient,
                amount=counter_amount,
                lock_seconds=counter_seconds,
                receiver_chain_id=origin_chain_id,
                receiver_chain_address=origin_recipient,
            ),
            created_at=now,
        )
        self.swaps[swap.swap_id] = swap
        self._record(swap, "planned", f"{self.origin.chain} -> {self.counter.chain}")

        log.info(f"Swap {swap.swap_id} planned: {origin_amount} on {self.origin.chain} "
                 f"for {counter_amount} on {self.counter.chain}, H={hashlock[:16]}...")
        return swap

    def get_swap(self, swap_id: str) -> Optional[ActiveSwap]:
        return self.swaps.get(swap_id)

    # =========================================================================
    # Locking
    # =========================================================================

    def lock_origin(self, swap: ActiveSwap, sender, gas_limit: Optional[int] = None) -> LockResult:
        """Lock the origin leg under H until T1 = now + origin lock seconds."""
        self._require(swap, SwapState.PLANNED)
        leg = swap.origin

        # leave room for the counter lock to be made and confirmed afterwards
        if leg.pending_result is not None:
            expiry = leg.pending_result.timelock
        else:
            expiry = self.clock() + leg.lock_seconds
        deadline = (expiry - swap.counter.lock_seconds
                    - self.config.min_gap_seconds - self.config.safety_margin_seconds)

        try:
            lock = self._lock(swap, leg, self.origin, sender, "lock_origin", deadline, gas_limit)
        except ContractRevert as e:
            self._set_state(swap, SwapState.FAILED, f"origin lock rejected: {e}")
            raise

        self._accept_lock(swap, leg, lock, sender)
        self._set_state(swap, SwapState.ORIGIN_LOCKED, f"T1={lock.timelock}")
        log.info(f"Swap {swap.swap_id}: origin locked until {lock.timelock}")
        return lock

    def confirm_origin(self, swap: ActiveSwap, contract_id: Optional[str] = None) -> str:
        """
        Make sure the origin lock id is known.

        Uses `contract_id` when given, the id returned by the lock otherwise,
        and falls back to the correlator.
        """
        self._require(swap, SwapState.ORIGIN_LOCKED)
        self._resolve_id(swap, swap.origin, self.origin, contract_id)
        self._set_state(swap, SwapState.ORIGIN_CONFIRMED, f"id={swap.origin.contract_id}")
        return swap.origin.contract_id

    def lock_counter(self, swap: ActiveSwap, sender, gas_limit: Optional[int] = None) -> LockResult:
        """
        Lock the counter leg under the same H until T2 < T1.

        Raises:
            ProtocolViolation: T2 would not expire early enough before T1
        """
        self._require(swap, SwapState.ORIGIN_CONFIRMED)
        leg = swap.counter

        if leg.pending_result is not None:
            planned = leg.pending_result.timelock
        else:
            planned = int(self.clock()) + leg.lock_seconds
            self._check_timelocks(swap, planned)
        deadline = planned - self.config.safety_margin_seconds

        lock = self._lock(swap, leg, self.counter, sender, "lock_counter", deadline, gas_limit)
        return self._register_counter(swap, lock, sender.address)

    def register_counter(self, swap: ActiveSwap, lock: LockResult, sender: str,
                         contract_id: Optional[str] = None) -> LockResult:
        """
        Accept a counter lock made by the counterparty.

        The lock must carry H and expire early enough before T1.
        """
        self._require(swap, SwapState.ORIGIN_CONFIRMED)
        if lock.chain != self.counter.chain:
            raise ProtocolViolation(f"Counter lock is on {lock.chain}, expected {self.counter.chain}")
        return self._register_counter(swap, lock, sender, contract_id)

    def _register_counter(self, swap: ActiveSwap, lock: LockResult, sender: str,
                          contract_id: Optional[str] = None) -> LockResult:
        leg = swap.counter
        self._check_timelocks(swap, lock.timelock)
        self._accept_lock(swap, leg, lock, sender)
        self._resolve_id(swap, leg, self.counter, contract_id)

        self._set_state(swap, SwapState.COUNTER_LOCKED,
                        f"T2={lock.timelock} id={leg.contract_id}")
        log.info(f"Swap {swap.swap_id}: counter locked until {lock.timelock}")
        return lock

    # =========================================================================
    # Settlement
    # =========================================================================

    def reveal(self, swap: ActiveSwap, sender, gas_limit: Optional[int] = None):
        """
        Redeem the counter leg with S, which makes S public.

        Raises:
            ProtocolViolation: counter lock not confirmed, or too close to T2
        """
        if swap.state != SwapState.COUNTER_LOCKED:
            raise ProtocolViolation(
                f"Refusing to reveal the secret in state {swap.state.value}: "
                f"counter lock not confirmed"
            )
        if swap._secret is None:
            raise ProtocolViolation("This side does not hold the secret")

        leg = swap.counter
        deadline = self._settle_deadline(swap, leg, "reveal")

        self._settle(swap, leg, self.counter, "reveal", deadline,
                     lambda: self.counter.withdraw(leg.contract_id, sender, swap._secret,
                                                   gas_limit=gas_limit, deadline=deadline))

        swap.revealed = True
        leg.commitment.mark_redeemed(swap._secret, settle_tx=self._last_tx(swap))
        self._set_state(swap, SwapState.SECRET_REVEALED, "counter leg redeemed")
        log.info(f"Swap {swap.swap_id}: secret revealed on {leg.chain}")

    def complete(self, swap: ActiveSwap, sender, secret: Optional[str] = None,
                 gas_limit: Optional[int] = None):
        """
        Redeem the origin leg with S before T1.

        `secret` is the value observed on the counter chain, for a side that
        did not generate S itself.
        """
        if secret is not None:
            if not verify_preimage(secret, swap.hashlock):
                raise InvalidArgument("Secret does not match swap hashlock")
            if swap.state == SwapState.COUNTER_LOCKED:
                swap._secret = secret.lower().removeprefix("0x")
                swap.revealed = True
                self._set_state(swap, SwapState.SECRET_REVEALED, "secret observed on-chain")

        self._require(swap, SwapState.SECRET_REVEALED)
        leg = swap.origin
        deadline = self._settle_deadline(swap, leg, "complete")

        self._settle(swap, leg, self.origin, "complete", deadline,
                     lambda: self.origin.withdraw(leg.contract_id, sender, swap._secret,
                                                  gas_limit=gas_limit, deadline=deadline))

        leg.commitment.mark_redeemed(swap._secret, settle_tx=self._last_tx(swap))
        swap.completed_at = int(self.clock())
        self._set_state(swap, SwapState.COMPLETED, "origin leg redeemed")
        log.info(f"Swap {swap.swap_id}: completed")

    def refund_counter(self, swap: ActiveSwap, sender, gas_limit: Optional[int] = None):
        """
        Refund the counter leg after T2 when the secret was never revealed.

        A counter lock whose submission timed out is confirmed and taken
        over first, so funds that did land can still be recovered.
        """
        leg = swap.counter
        if swap.state == SwapState.ORIGIN_CONFIRMED and leg.pending_step == "lock_counter":
            self._adopt_lock(swap, leg, self.counter, sender)
            self._set_state(swap, SwapState.COUNTER_LOCKED, "timed-out lock confirmed")
        self._require(swap, SwapState.COUNTER_LOCKED)
        self._refund(swap, leg, self.counter, "refund_counter", sender, gas_limit)
        self._set_state(swap, SwapState.COUNTER_REFUNDED, "counter leg refunded")

    def refund_origin(self, swap: ActiveSwap, sender, gas_limit: Optional[int] = None):
        """
        Refund the origin leg after T1.

        Works from any state in which the origin lock exists, including a
        lock_origin that timed out and was never re-checked.
        """
        leg = swap.origin
        if swap.state == SwapState.PLANNED and leg.pending_step == "lock_origin":
            try:
                self._adopt_lock(swap, leg, self.origin, sender)
            except ContractRevert as e:
                self._set_state(swap, SwapState.FAILED, f"origin lock rejected: {e}")
                raise
            self._set_state(swap, SwapState.ORIGIN_LOCKED, "timed-out lock confirmed")
        self._require(
            swap,
            SwapState.ORIGIN_LOCKED,
            SwapState.ORIGIN_CONFIRMED,
            SwapState.COUNTER_LOCKED,
            SwapState.COUNTER_REFUNDED,
            SwapState.SECRET_REVEALED,
        )
        self._refund(swap, leg, self.origin, "refund_origin", sender, gas_limit)
        self._set_state(swap, SwapState.ORIGIN_REFUNDED, "origin leg refunded")

    # =========================================================================
    # Internals
    # =========================================================================

    def _require(self, swap: ActiveSwap, *states: SwapState):
        if swap.state not in states:
            expected = ", ".join(s.value for s in states)
            raise ProtocolViolation(
                f"Swap {swap.swap_id} is {swap.state.value}, expected {expected}"
            )

    def _record(self, swap: ActiveSwap, event: str, detail: str = ""):
        swap.history.append({"at": int(self.clock()), "event": event, "detail": detail})

    def _set_state(self, swap: ActiveSwap, state: SwapState, detail: str = ""):
        log.debug(f"Swap {swap.swap_id}: {swap.state.value} -> {state.value}")
        swap.state = state
        self._record(swap, state.value, detail)

    def _last_tx(self, swap: ActiveSwap) -> Optional[str]:
        for entry in reversed(swap.history):
            if entry["event"] == "tx":
                return entry["detail"]
        return None

    def _pending(self, leg: SwapLeg, step: str) -> bool:
        if leg.pending is None:
            return False
        if leg.pending_step != step:
            raise ProtocolViolation(
                f"{leg.chain} has an unconfirmed {leg.pending_step} submission"
            )
        return True

    def _park(self, swap: ActiveSwap, leg: SwapLeg, step: str, e: Timeout):
        """Remember a timed-out submission so the step can be resumed."""
        if e.handle is None:
            self._record(swap, "timeout", f"{step} not sent")
            log.warning(f"Swap {swap.swap_id}: {step} deadline passed, nothing sent")
            return
        leg.pending_step = step
        leg.pending = e.handle
        leg.pending_result = e.result
        ref = e.handle.ref if e.handle else None
        self._record(swap, "timeout", f"{step} {ref}")
        log.warning(f"Swap {swap.swap_id}: {step} not confirmed yet ({ref}), "
                    f"re-invoke to keep waiting")

    def _clear(self, leg: SwapLeg):
        leg.pending_step = None
        leg.pending = None
        leg.pending_result = None

    def _lock(self, swap: ActiveSwap, leg: SwapLeg, adapter: HTLCAdapter, sender,
              step: str, deadline: float, gas_limit: Optional[int]) -> LockResult:
        if self._pending(leg, step):
            log.info(f"Swap {swap.swap_id}: re-checking {step} {leg.pending.ref}")
            try:
                adapter.wait_confirmed(leg.pending, deadline)
            except Timeout as e:
                self._record(swap, "timeout", f"{step} {leg.pending.ref}")
                raise Timeout(e.message, handle=leg.pending, tx=e.tx,
                              result=leg.pending_result)
            lock = leg.pending_result
            self._clear(leg)
            if lock is None:
                raise InvalidState(f"No lock details kept for {step}")
            return lock

        options = LockOptions(lock_seconds=leg.lock_seconds, gas_limit=gas_limit,
                              deadline=deadline)
        try:
            lock = adapter.lock(
                leg.recipient,
                sender,
                swap.hashlock,
                leg.amount,
                leg.receiver_chain_id,
                leg.receiver_chain_address,
                options,
            )
        except Timeout as e:
            self._park(swap, leg, step, e)
            raise
        self._record(swap, "tx", lock.tx.ref if lock.tx else "")
        return lock

    def _settle(self, swap: ActiveSwap, leg: SwapLeg, adapter: HTLCAdapter, step: str,
                deadline: float, submit: Callable):
        if self._pending(leg, step):
            log.info(f"Swap {swap.swap_id}: re-checking {step} {leg.pending.ref}")
            try:
                adapter.wait_confirmed(leg.pending, deadline)
            except Timeout:
                self._record(swap, "timeout", f"{step} {leg.pending.ref}")
                raise
            self._record(swap, "tx", leg.pending.ref)
            self._clear(leg)
            return

        try:
            result = submit()
        except Timeout as e:
            self._park(swap, leg, step, e)
            raise
        self._record(swap, "tx", result.tx.ref if result.tx else "")

    def _adopt_lock(self, swap: ActiveSwap, leg: SwapLeg, adapter: HTLCAdapter, sender):
        """Confirm a parked lock submission and make it the leg's lock."""
        step = leg.pending_step
        lock = leg.pending_result
        if lock is None:
            raise InvalidState(f"No lock details kept for {step}")
        now = self.clock()
        if now < lock.timelock:
            raise ProtocolViolation(
                f"{leg.chain} lock refundable at {lock.timelock}, now={int(now)}"
            )

        log.info(f"Swap {swap.swap_id}: re-checking {step} {leg.pending.ref} before refund")
        try:
            adapter.wait_confirmed(leg.pending, now + self.config.min_confirm_seconds)
        except Timeout:
            self._record(swap, "timeout", f"{step} {leg.pending.ref}")
            raise
        except ContractRevert:
            self._clear(leg)
            raise
        self._clear(leg)
        self._record(swap, "tx", lock.tx.ref if lock.tx else "")
        self._accept_lock(swap, leg, lock, sender)

    def _refund(self, swap: ActiveSwap, leg: SwapLeg, adapter: HTLCAdapter, step: str,
                sender, gas_limit: Optional[int]):
        now = self.clock()
        if leg.timelock is None or now < leg.timelock:
            raise ProtocolViolation(
                f"{leg.chain} lock refundable at {leg.timelock}, now={int(now)}"
            )
        if leg.contract_id is None:
            self._resolve_id(swap, leg, adapter, None)

        self._settle(swap, leg, adapter, step, None,
                     lambda: adapter.refund(leg.contract_id, sender, gas_limit=gas_limit))
        leg.commitment.mark_refunded(now, settle_tx=self._last_tx(swap))
        log.info(f"Swap {swap.swap_id}: {leg.chain} leg refunded")

    def _settle_deadline(self, swap: ActiveSwap, leg: SwapLeg, step: str) -> float:
        deadline = leg.timelock - self.config.safety_margin_seconds
        if self.clock() >= deadline:
            raise ProtocolViolation(
                f"Too close to {leg.chain} timelock {leg.timelock} to {step} safely"
            )
        return deadline

    def _check_timelocks(self, swap: ActiveSwap, counter_timelock: int):
        """T2 + min gap <= T1 and T2 still far enough in the future."""
        origin_timelock = swap.origin.timelock
        if counter_timelock + self.config.min_gap_seconds > origin_timelock:
            raise ProtocolViolation(
                f"Counter timelock {counter_timelock} must be at least "
                f"{self.config.min_gap_seconds}s before origin timelock {origin_timelock}"
            )
        if counter_timelock - self.config.safety_margin_seconds <= self.clock():
            raise ProtocolViolation(f"Counter timelock {counter_timelock} is too close")

    def _accept_lock(self, swap: ActiveSwap, leg: SwapLeg, lock: LockResult, sender: str):
        if not isinstance(sender, str):
            sender = sender.address
        if to_bytes32(lock.hashlock).hex() != swap.hashlock:
            raise ProtocolViolation(
                f"{leg.chain} lock hashlock {lock.hashlock[:18]}... does not match swap"
            )
        leg.lock = lock
        leg.commitment = Commitment(
            chain=lock.chain,
            hashlock=swap.hashlock,
            timelock=lock.timelock,
            amount=lock.amount,
            sender=sender,
            recipient=leg.recipient,
            receiver_chain_id=leg.receiver_chain_id,
            receiver_chain_address=leg.receiver_chain_address,
        )
        leg.commitment.mark_locked(lock.contract_id, lock.tx.ref if lock.tx else None)

    def _resolve_id(self, swap: ActiveSwap, leg: SwapLeg, adapter: HTLCAdapter,
                    contract_id: Optional[str]):
        if contract_id is not None:
            leg.commitment.contract_id = str(contract_id)
            return
        if leg.contract_id is not None:
            return
        if self.correlator is None:
            raise InvalidState(f"{leg.chain} lock id unknown and no correlator configured")

        expected = leg.lock.commit_id if self.match_commit_id else None
        commit_id = self.correlator.find_commit_id(
            adapter.contract_address,
            depth=self.config.correlator_depth,
            attempts=self.config.correlator_attempts,
            backoff=self.config.correlator_backoff,
            expected=expected,
        )
        leg.commitment.contract_id = str(commit_id)
        self._record(swap, "correlated", f"{leg.chain} id={str(commit_id)[:16]}...")
        log.info(f"Swap {swap.swap_id}: {leg.chain} lock id {str(commit_id)[:16]}...")


def run_swap(orchestrator: SwapOrchestrator, swap: ActiveSwap,
             initiator_origin, counterparty_counter,
             initiator_counter, counterparty_origin) -> ActiveSwap:
    """
    Drive a planned swap to completion with both sides' signers at hand.

    initiator_origin funds the origin leg, counterparty_counter funds the
    counter leg; initiator_counter redeems the counter leg and
    counterparty_origin redeems the origin leg.
    """
    try:
        orchestrator.lock_origin(swap, initiator_origin)
        orchestrator.confirm_origin(swap)
        orchestrator.lock_counter(swap, counterparty_counter)
        orchestrator.reveal(swap, initiator_counter)
        orchestrator.complete(swap, counterparty_origin)
    except HTLCError as e:
        log.error(f"Swap {swap.swap_id} stopped in {swap.state.value}: {e}")
        raise
    return swap
