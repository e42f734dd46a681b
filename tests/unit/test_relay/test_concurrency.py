"""Concurrent use of one CommandRelay from many threads."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from scriptrelay.relay.service import CommandRelay

SUBMITTERS = 4
PER_SUBMITTER = 200
USERS = 50


def test_concurrent_submit_poll_prune_and_register(relay: CommandRelay, make_submission) -> None:
    def submit_many(i: int) -> None:
        for n in range(PER_SUBMITTER):
            relay.submit(make_submission(command=f"t{i}-{n}", sender_id=f"S{i}", sender_name=f"Sender{i}"))

    def poll_many() -> None:
        for _ in range(PER_SUBMITTER):
            for record in relay.poll("s1", "P"):
                assert record.script_id == "s1"

    def prune_many() -> None:
        for _ in range(PER_SUBMITTER):
            relay.prune()

    def register(k: int) -> None:
        relay.submit(
            make_submission(
                command="register", sender_id=f"U{k}", sender_name=f"User{k}",
                args={"isAuthorized": k % 2 == 0},
            )
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(submit_many, i) for i in range(SUBMITTERS)]
        futures += [pool.submit(poll_many) for _ in range(2)]
        futures.append(pool.submit(prune_many))
        futures += [pool.submit(register, k) for k in range(USERS)]
        for future in futures:
            future.result()

    records = relay.log.snapshot()
    assert len(relay.log) == relay.log.capacity == 100
    assert len({r.id for r in records}) == 100

    # Whatever survived from each thread is the tail of what it sent, in order
    for i in range(SUBMITTERS):
        ns = [int(r.command.split("-")[1]) for r in records if r.sender_id == f"S{i}"]
        if ns:
            assert ns == list(range(ns[0], PER_SUBMITTER))

    assert relay.registry.registered_count == USERS
    assert relay.registry.authorized_count == USERS // 2
