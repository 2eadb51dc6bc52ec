"""Entry point: validates input, runs the workflow, handles approval gates, writes the report."""

import asyncio
import logging
import sys
import uuid

from hive.checkpoint import FileCheckpointStore
from hive.config import get_config
from hive.errors import OrchestrationError
from hive.orchestrator import Orchestrator
from hive.services import InMemoryResponseCache, InMemoryUsageLedger, LLMService
from hive.utils.formatter import write_report
from hive.utils.validator import validate_input, validate_thread_id

USAGE = "usage: python -m hive.main [--thread ID] [--auto-approve] [--no-approval] [message]"


def _ask_approval(state: dict) -> bool:
    """Prompt in the terminal until the user approves or rejects the gate."""
    print("\n--- Approval required ---\n")
    print(f"Phase completed: {state['phase']}  (turn {state['turn_count']})")
    if state["artifacts"]:
        print("Artifacts so far: " + ", ".join(a.type for a in state["artifacts"]))
    while True:
        choice = input("Continue to the next phase? [y/n]: ").strip().lower()
        if choice in ("y", "yes"):
            return True
        if choice in ("n", "no"):
            return False
        print("Please answer y or n.")


async def run(thread_id: str, message: str | None, auto_approve: bool = False,
              approval: bool = True) -> dict:
    """Drive one thread to completion, stopping at approval gates.

    Args:
        thread_id: Thread to create or resume.
        message: Request for a new thread, or a follow-up message. None resumes.
        auto_approve: Approve every gate without prompting.
        approval: False disables the configured gates for this run.
    """
    config = dict(get_config())
    if not approval:
        config["approval_gates"] = []

    ledger = InMemoryUsageLedger()
    orchestrator = Orchestrator(
        llm=LLMService(cache=InMemoryResponseCache(), ledger=ledger, config=config),
        store=FileCheckpointStore(config.get("checkpoint_dir", "./data/threads")),
        config=config,
    )

    state = await orchestrator.run(thread_id, message)
    while state["status"] == "awaiting_approval":
        approved = True if auto_approve else _ask_approval(state)
        orchestrator.set_approval(thread_id, approved)
        state = await orchestrator.resume(thread_id)

    totals = ledger.totals()
    print(f"[HIVE] LLM calls: {totals['calls']} ({totals['tokens_in']} in / {totals['tokens_out']} out)")
    return state


def _report(state: dict) -> None:
    output_path = write_report(state)
    print(f"[HIVE] Status: {state['status']}")
    print(f"[HIVE] Phase: {state['phase']}")
    print(f"[HIVE] Turns: {state['turn_count']}")
    print(f"[HIVE] Artifacts: {len(state['artifacts'])}")
    print(f"[HIVE] Output written to: {output_path}")


def main() -> None:
    """CLI entry point — accepts the request as arguments or from stdin."""
    logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stderr)

    args = sys.argv[1:]
    auto_approve = "--auto-approve" in args
    approval = "--no-approval" not in args
    args = [a for a in args if a not in ("--auto-approve", "--no-approval")]

    thread_id = None
    if "--thread" in args:
        idx = args.index("--thread")
        if idx + 1 >= len(args):
            sys.exit(USAGE)
        thread_id = args[idx + 1]
        del args[idx:idx + 2]

    if args:
        message = " ".join(args)
    elif thread_id is None:
        print("Enter your request (Ctrl+D / Ctrl+Z to submit):")
        message = sys.stdin.read()
    else:
        message = None

    try:
        if message is not None:
            message = validate_input(message)
        thread_id = validate_thread_id(thread_id or f"thread-{uuid.uuid4().hex[:8]}")
    except ValueError as exc:
        sys.exit(f"[HIVE] {exc}")

    print(f"[HIVE] Thread: {thread_id}")
    try:
        state = asyncio.run(run(thread_id, message, auto_approve=auto_approve, approval=approval))
    except OrchestrationError as exc:
        print(f"[HIVE] {exc.classification}: {exc}", file=sys.stderr)
        if exc.state is not None:
            _report(exc.state)
        sys.exit(1)

    _report(state)


if __name__ == "__main__":
    main()
