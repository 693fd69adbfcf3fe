"""Leader election in the Raft style, built on asyncio actors."""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

log = logging.getLogger(__name__)


class Role(enum.Enum):
    """Volatile role of a Raft process."""

    FOLLOWER = "follower"
    CANDIDATE = "candidate"
    LEADER = "leader"


@dataclass
class ProcessState:
    """State kept in stable storage and saved before replying to messages."""

    current_term: int = 0
    voted_for: UUID | None = None
    leader_id: UUID | None = None


@dataclass(frozen=True)
class ProcessConfig:
    """Configuration of a Raft process.

    The election timeout (in seconds) is deliberately not randomized.
    """

    self_id: UUID
    election_timeout: float
    processes_count: int


@dataclass(frozen=True)
class RaftMessageHeader:
    term: int


@dataclass(frozen=True)
class Heartbeat:
    leader_id: UUID


@dataclass(frozen=True)
class HeartbeatResponse:
    pass


@dataclass(frozen=True)
class RequestVote:
    candidate_id: UUID


@dataclass(frozen=True)
class RequestVoteResponse:
    granted: bool
    source: UUID


RaftContent = Heartbeat | HeartbeatResponse | RequestVote | RequestVoteResponse


@dataclass(frozen=True)
class RaftMessage:
    header: RaftMessageHeader
    content: RaftContent


class StableStorage(Protocol):
    def put(self, state: ProcessState) -> None: ...

    def get(self) -> ProcessState | None: ...


class Recipient(Protocol):
    async def send(self, msg: RaftMessage) -> None: ...


class Sender(Protocol):
    async def send(self, target: UUID, msg: RaftMessage) -> None: ...

    async def broadcast(self, msg: RaftMessage) -> None: ...


@dataclass
class RamStorage:
    """Stable storage kept in memory."""

    _state: ProcessState | None = field(default=None, repr=False)

    def put(self, state: ProcessState) -> None:
        self._state = dataclasses.replace(state)

    def get(self) -> ProcessState | None:
        return None if self._state is None else dataclasses.replace(self._state)


class ExecutorSender:
    """Delivers messages to registered recipients by process identifier."""

    def __init__(self) -> None:
        self._processes: dict[UUID, Recipient] = {}

    def insert(self, process_id: UUID, recipient: Recipient) -> None:
        self._processes[process_id] = recipient

    async def send(self, target: UUID, msg: RaftMessage) -> None:
        recipient = self._processes.get(target)
        if recipient is not None:
            await recipient.send(msg)

    async def broadcast(self, msg: RaftMessage) -> None:
        for recipient in list(self._processes.values()):
            await recipient.send(msg)


class _Signal(enum.Enum):
    INIT = enum.auto()
    TIMEOUT = enum.auto()
    DISABLE = enum.auto()


class Raft:
    """A Raft process handling its messages one at a time."""

    def __init__(self, config: ProcessConfig, storage: StableStorage, sender: Sender) -> None:
        self._config = config
        self._storage = storage
        self._sender = sender
        self._state = storage.get() or ProcessState()
        self._role = Role.FOLLOWER
        self._votes: set[UUID] = set()
        self._enabled = True
        self._queue: asyncio.Queue[RaftMessage | _Signal] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._timer: asyncio.Task[None] | None = None

    async def start(self) -> Raft:
        """Start processing messages; the election timer starts with it."""
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())
            self._queue.put_nowait(_Signal.INIT)
        return self

    async def send(self, msg: RaftMessage) -> None:
        self._queue.put_nowait(msg)

    async def disable(self) -> None:
        """Stop reacting to anything; simulates a crash or partition."""
        self._queue.put_nowait(_Signal.DISABLE)

    async def shutdown(self) -> None:
        tasks = [t for t in (self._timer, self._worker) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._timer = None
        self._worker = None

    @property
    def role(self) -> Role:
        return self._role

    @property
    def state(self) -> ProcessState:
        return dataclasses.replace(self._state)

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._dispatch(item)
            finally:
                self._queue.task_done()

    async def _dispatch(self, item: RaftMessage | _Signal) -> None:
        if item is _Signal.DISABLE:
            self._enabled = False
            return
        if not self._enabled:
            return
        if item is _Signal.INIT:
            self._reset_timer(self._config.election_timeout)
        elif item is _Signal.TIMEOUT:
            await self._on_timeout()
        else:
            await self._on_message(item)

    async def _tick(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self._queue.put_nowait(_Signal.TIMEOUT)

    def _reset_timer(self, interval: float) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.create_task(self._tick(interval))

    def _update_term(self, new_term: int) -> None:
        assert self._state.current_term < new_term
        self._state.current_term = new_term
        self._state.voted_for = None
        self._state.leader_id = None

    def _save_state(self) -> None:
        self._storage.put(self._state)

    def _message(self, content: RaftContent) -> RaftMessage:
        return RaftMessage(RaftMessageHeader(self._state.current_term), content)

    async def _broadcast_heartbeat(self) -> None:
        await self._sender.broadcast(self._message(Heartbeat(self._config.self_id)))

    async def _become_leader(self) -> None:
        self._role = Role.LEADER
        self._state.leader_id = self._config.self_id
        self._save_state()
        await self._broadcast_heartbeat()
        self._reset_timer(self._config.election_timeout / 10)

    def _has_majority(self) -> bool:
        return len(self._votes) > self._config.processes_count // 2

    async def _start_leader_election(self) -> None:
        self._role = Role.CANDIDATE
        self._votes = {self._config.self_id}
        self._state.voted_for = self._config.self_id
        self._state.leader_id = None
        self._state.current_term += 1
        self._save_state()
        await self._sender.broadcast(self._message(RequestVote(self._config.self_id)))
        self._reset_timer(self._config.election_timeout)

    async def _on_timeout(self) -> None:
        if self._role is Role.FOLLOWER:
            log.info("Follower timed out; starting leader election.")
            await self._start_leader_election()
        elif self._role is Role.CANDIDATE:
            if self._has_majority():
                log.info("Candidate reached the majority of votes; becoming leader.")
                await self._become_leader()
            else:
                log.info(
                    "Candidate has %d/%d votes; restarting election.",
                    len(self._votes),
                    self._config.processes_count,
                )
                await self._start_leader_election()
        else:
            await self._broadcast_heartbeat()
            self._reset_timer(self._config.election_timeout / 10)

    async def _on_heartbeat(self, leader_id: UUID, leader_term: int) -> None:
        if leader_term >= self._state.current_term:
            self._state.leader_id = leader_id
            self._save_state()
            if self._role is Role.CANDIDATE:
                self._role = Role.FOLLOWER
                self._reset_timer(self._config.election_timeout)
            elif self._role is Role.FOLLOWER:
                self._reset_timer(self._config.election_timeout)
            else:
                log.info("Ignoring heartbeat received as leader.")
        # Always answered, so that the term is disseminated.
        await self._sender.send(leader_id, self._message(HeartbeatResponse()))

    async def _on_message(self, msg: RaftMessage) -> None:
        if msg.header.term > self._state.current_term:
            self._update_term(msg.header.term)
            self._role = Role.FOLLOWER

        match msg.content:
            case Heartbeat(leader_id=leader_id):
                await self._on_heartbeat(leader_id, msg.header.term)
            case RequestVote(candidate_id=candidate_id):
                granted = False
                if self._role is Role.FOLLOWER:
                    if msg.header.term < self._state.current_term:
                        log.info("Rejecting vote request with an older term.")
                    elif self._state.voted_for is not None:
                        log.info("Rejecting vote request; already voted this term.")
                    else:
                        log.info("Granting vote.")
                        self._state.voted_for = candidate_id
                        self._reset_timer(self._config.election_timeout)
                        granted = True
                self._save_state()
                await self._sender.send(
                    candidate_id,
                    self._message(RequestVoteResponse(granted, self._config.self_id)),
                )
            case RequestVoteResponse(granted=granted, source=source) if (
                self._role is Role.CANDIDATE
            ):
                if granted:
                    self._votes.add(source)
                    if self._has_majority():
                        log.info("Candidate becoming leader.")
                        await self._become_leader()
                self._save_state()
            case _:
                self._save_state()


async def _demo() -> None:
    sender = ExecutorSender()
    rafts = []
    for timeout in (0.5, 1.0):
        config = ProcessConfig(uuid.uuid4(), timeout, 2)
        raft = Raft(config, RamStorage(), sender)
        sender.insert(config.self_id, raft)
        rafts.append(raft)
    for raft in rafts:
        await raft.start()
    await asyncio.sleep(2.0)
    await rafts[0].disable()
    for raft in rafts:
        await raft.shutdown()


def main(argv: list[str] | None = None) -> int:
    """Run a two-process election demo."""
    logging.basicConfig(level=logging.INFO)
    asyncio.run(_demo())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())