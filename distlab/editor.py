"""Collaborative text editing with operational transformation in rounds."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, replace
from typing import Protocol, Sequence


@dataclass(frozen=True)
class Insert:
    """Insert a character at a position."""

    idx: int
    ch: str

    def apply_to(self, text: str) -> str:
        """Return the text with the character inserted."""
        if not 0 <= self.idx <= len(text):
            raise IndexError(f"insertion index {self.idx} out of range for length {len(text)}")
        return text[: self.idx] + self.ch + text[self.idx :]


@dataclass(frozen=True)
class Delete:
    """Delete the character at a position."""

    idx: int

    def apply_to(self, text: str) -> str:
        """Return the text with the character removed."""
        if not 0 <= self.idx < len(text):
            raise IndexError(f"deletion index {self.idx} out of range for length {len(text)}")
        return text[: self.idx] + text[self.idx + 1 :]


@dataclass(frozen=True)
class Nop:
    """An action that changes nothing; never issued by a client."""

    def apply_to(self, text: str) -> str:
        """Return the text unchanged; anything but a string is rejected."""
        if not isinstance(text, str):
            raise TypeError(f"expected a string, got {type(text).__name__}")
        return text


Action = Insert | Delete | Nop


@dataclass(frozen=True)
class EditRequest:
    """A client's request: how many edits it has applied, and what it wants."""

    num_applied: int
    action: Action


@dataclass(frozen=True)
class Edit:
    """An action that a client must apply to its text."""

    action: Action


@dataclass(frozen=True)
class Operation:
    """An action issued by the process of a given rank."""

    process_rank: int
    action: Action

    def transform_wrt(self, concurrent: Operation) -> Operation:
        """Transform this operation with respect to a concurrent one."""
        mine, other = self.action, concurrent.action
        match mine, other:
            case Insert(idx=p1, ch=ch), Insert(idx=p2):
                if p1 < p2 or (p1 == p2 and self.process_rank < concurrent.process_rank):
                    return self
                return replace(self, action=Insert(p1 + 1, ch))
            case Delete(idx=p1), Delete(idx=p2):
                if p1 < p2:
                    return self
                if p1 == p2:
                    return replace(self, action=Nop())
                return replace(self, action=Delete(p1 - 1))
            case Insert(idx=p1, ch=ch), Delete(idx=p2):
                if p1 <= p2:
                    return self
                return replace(self, action=Insert(p1 - 1, ch))
            case Delete(idx=p1), Insert(idx=p2):
                if p1 < p2:
                    return self
                return replace(self, action=Delete(p1 + 1))
            case _:
                return self


class Broadcast(Protocol):
    async def send(self, operation: Operation) -> None: ...


class Client(Protocol):
    async def send(self, edit: Edit) -> None: ...


class Process:
    """A process serving one client and exchanging operations in rounds."""

    def __init__(self, rank: int, num_processes: int, broadcast: Broadcast, client: Client) -> None:
        self.rank = rank
        self.num_processes = num_processes
        self._broadcast = broadcast
        self._client = client
        self._log: list[tuple[int, Operation]] = []
        self._round_active = False
        self._round = 0
        self._received: dict[int, bool] = {}
        self._pending_requests: deque[EditRequest] = deque()
        self._pending_operations: deque[Operation] = deque()
        self._lock = asyncio.Lock()

    async def handle_edit_request(self, request: EditRequest) -> None:
        """Accept an edit request from the client."""
        async with self._lock:
            self._pending_requests.append(request)
            if self._round_active:
                return
            self._start_round()
            await self._issue_edit(self._pending_requests.popleft())
            queued = list(self._pending_operations)
            self._pending_operations.clear()
            for operation in queued:
                await self._on_operation(operation)

    async def handle_operation(self, msg: Operation) -> None:
        """Accept an operation broadcast by another process."""
        async with self._lock:
            await self._on_operation(msg)

    def _start_round(self) -> None:
        self._round_active = True
        self._round += 1
        self._received = {i: False for i in range(self.num_processes) if i != self.rank}

    async def _issue_edit(self, request: EditRequest) -> None:
        # Rank equal to the process count makes client edits lose every tie.
        operation = Operation(self.num_processes, request.action)
        for _, logged in self._log[request.num_applied :]:
            operation = operation.transform_wrt(logged)
        await self._client.send(Edit(operation.action))
        operation = replace(operation, process_rank=self.rank)
        self._log.append((self._round, operation))
        await self._broadcast.send(operation)

    async def _issue_nop(self) -> None:
        operation = Operation(self.rank, Nop())
        await self._client.send(Edit(Nop()))
        self._log.append((self._round, operation))
        await self._broadcast.send(operation)

    async def _finish_round(self) -> None:
        self._round_active = False
        if self._pending_requests:
            self._start_round()
            await self._issue_edit(self._pending_requests.popleft())

    async def _on_operation(self, msg: Operation) -> None:
        if not self._round_active:
            self._start_round()
            await self._issue_nop()

        if self._received.get(msg.process_rank):
            self._pending_operations.append(msg)
            return
        self._received[msg.process_rank] = True

        operation = msg
        for round_no, logged in self._log:
            if round_no == self._round:
                operation = operation.transform_wrt(logged)

        await self._client.send(Edit(operation.action))
        self._log.append((self._round, operation))
        if all(self._received.values()):
            await self._finish_round()


class SimpleClient:
    """A client that prints its text after every applied edit."""

    def __init__(self, rank: int) -> None:
        self.rank = rank
        self.text = ""
        self.num_applied = 0
        self._process: Process | None = None

    def attach(self, process: Process) -> None:
        self._process = process

    async def request(self, action: Action) -> None:
        """Validate an action against the current text and request it."""
        match action:
            case Insert(idx=idx) if not 0 <= idx <= len(self.text):
                raise ValueError("Invalid idx!")
            case Delete(idx=idx) if not 0 <= idx < len(self.text):
                raise ValueError("Invalid idx!")
            case Nop():
                raise ValueError("Client cannot request NOP!")
        if self._process is None:
            raise RuntimeError("client is not attached to a process")
        await self._process.handle_edit_request(EditRequest(self.num_applied, action))

    async def send(self, edit: Edit) -> None:
        self.text = edit.action.apply_to(self.text)
        self.num_applied += 1
        print(f"Client {self.rank}: '{self.text}' ({self.num_applied})")


class SimpleBroadcast:
    """A reliable broadcast delivering operations in order with simulated latency."""

    def __init__(self, num_processes: int, delay: float = 0.1) -> None:
        self.num_processes = num_processes
        self.delay = delay
        self._processes: list[Process] = []
        self._last: asyncio.Task[None] | None = None

    def attach(self, processes: Sequence[Process]) -> None:
        if len(processes) != self.num_processes:
            raise ValueError(f"expected {self.num_processes} processes, got {len(processes)}")
        self._processes = list(processes)

    async def send(self, operation: Operation) -> None:
        """Schedule delivery of the operation to every other process."""
        self._last = asyncio.create_task(self._deliver(self._last, operation))

    async def _deliver(self, previous: asyncio.Task[None] | None, operation: Operation) -> None:
        if previous is not None:
            await previous
        await asyncio.sleep(2 * self.delay)
        for rank, process in enumerate(self._processes):
            if rank != operation.process_rank:
                await process.handle_operation(operation)
                await asyncio.sleep(self.delay)


async def _demo() -> None:
    broadcast = SimpleBroadcast(2)
    clients = [SimpleClient(0), SimpleClient(1)]
    processes = [Process(rank, 2, broadcast, client) for rank, client in enumerate(clients)]
    for client, process in zip(clients, processes):
        client.attach(process)
    broadcast.attach(processes)

    await clients[0].request(Insert(0, "i"))
    await asyncio.sleep(1.0)
    await clients[0].request(Insert(0, "H"))
    await clients[1].request(Insert(1, "!"))
    await asyncio.sleep(1.0)


def main(argv: list[str] | None = None) -> int:
    """Run the two-client editing example."""
    asyncio.run(_demo())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())