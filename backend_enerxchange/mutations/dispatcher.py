"""
Mutation dispatcher — submit a write, await confirmation, refresh the read model.

Responsibilities:
- Drive one mutation through Idle -> Submitting -> Confirming -> Succeeded|Failed.
- On success, invalidate and refresh every affected repository; values are
  always re-fetched, never patched locally.
- On failure, touch nothing and return the typed error. No automatic retry.
- Reject a second mutation from the same form while one is in flight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol, Sequence

from backend_enerxchange.contract.adapter import ContractQueryAdapter
from backend_enerxchange.contract.models import MutationReceipt
from backend_enerxchange.core.exceptions import MutationInProgress, ReadModelError
from backend_enerxchange.enerx_logging import get_logger
from backend_enerxchange.mutations.catalog import get_mutation
from backend_enerxchange.read_model.results import FetchResult

logger = get_logger(__name__)

DEFAULT_CONFIRMATION_TIMEOUT_SEC = 120.0


class Refreshable(Protocol):
    def invalidate(self) -> None: ...

    async def refresh(self) -> FetchResult[Any]: ...


class MutationState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class MutationOutcome:
    method: str
    state: MutationState
    receipt: MutationReceipt | None = None
    error: ReadModelError | None = None
    refreshed: dict[str, FetchResult[Any]] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.state is MutationState.SUCCEEDED

    def raise_for_error(self) -> "MutationOutcome":
        if self.error is not None:
            raise self.error
        return self

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"method": self.method, "state": self.state.value}
        if self.receipt is not None:
            out["tx_hash"] = self.receipt.tx_hash
            out["block_number"] = self.receipt.block_number
        if self.error is not None:
            out["error"] = self.error.to_dict()
        out["refreshed"] = {name: result.status.value for name, result in self.refreshed.items()}
        return out


class MutationDispatcher:
    def __init__(
        self,
        adapter: ContractQueryAdapter,
        repositories: Mapping[str, Refreshable],
        *,
        confirmation_timeout_sec: float = DEFAULT_CONFIRMATION_TIMEOUT_SEC,
    ) -> None:
        self._adapter = adapter
        self._repositories = dict(repositories)
        self._confirmation_timeout = confirmation_timeout_sec
        self._states: dict[str, MutationState] = {}

    def state(self, form: str) -> MutationState:
        return self._states.get(form, MutationState.IDLE)

    def in_flight(self, form: str) -> bool:
        return self.state(form) in (MutationState.SUBMITTING, MutationState.CONFIRMING)

    async def submit_and_refresh(
        self,
        method: str,
        args: Sequence[Any] = (),
        affected: Iterable[str] | None = None,
        *,
        form: str | None = None,
    ) -> MutationOutcome:
        """
        Submit method(*args), wait for confirmation, then refresh affected repositories.

        Raises MutationInProgress if the form already has a mutation in flight
        and ValueError for arguments that cannot be encoded. Every remote
        failure comes back as a FAILED outcome instead.
        """
        spec = get_mutation(method)
        form = form or method
        if self.in_flight(form):
            raise MutationInProgress(form=form, method=method)
        encoded = spec.encode(args)
        targets = tuple(affected) if affected is not None else spec.affected

        self._states[form] = MutationState.SUBMITTING
        logger.info("mutation_submitting", method=method, form=form)
        try:
            pending = await self._adapter.submit(method, *encoded)
            self._states[form] = MutationState.CONFIRMING
            logger.info("mutation_confirming", method=method, tx_hash=pending.tx_hash)
            receipt = await pending.wait(self._confirmation_timeout)
        except ReadModelError as e:
            self._states[form] = MutationState.FAILED
            logger.warning("mutation_failed", method=method, form=form, error_kind=e.kind.value, error=e.message)
            return MutationOutcome(method, MutationState.FAILED, error=e)
        except BaseException:
            self._states[form] = MutationState.FAILED
            raise

        # the write is confirmed; the form is released even if a refresh raises
        self._states[form] = MutationState.SUCCEEDED
        outcome = MutationOutcome(method, MutationState.SUCCEEDED, receipt=receipt)
        for name in targets:
            repo = self._repositories.get(name)
            if repo is None:
                logger.debug("mutation_refresh_skipped", repository=name)
                continue
            repo.invalidate()
            try:
                outcome.refreshed[name] = await repo.refresh()
            except Exception as e:
                logger.error("mutation_refresh_failed", method=method, repository=name, error=str(e))
                raise
        logger.info(
            "mutation_succeeded",
            method=method,
            tx_hash=receipt.tx_hash,
            refreshed=sorted(outcome.refreshed),
        )
        return outcome
