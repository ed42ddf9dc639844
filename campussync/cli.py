"""
CampusSync CLI
===============

Command-line interface for the verification pipeline: job submission,
the manual review queue, credential issuance and revocation, rule
configuration, and the background worker.

Usage:
    campussync seed
    campussync jobs submit --type verification --payload payload.json
    campussync jobs status <job_id>
    campussync review list
    campussync review approve <certificate_id> --actor admin-1 --reason "Checked with registrar"
    campussync vc revoke <credential_id> --code FRAUD --actor admin-1
    campussync rules update "Logo Match" --weight 0.3
    campussync worker --interval 5
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

from campussync.config import get_config
from campussync.errors import CampusSyncError
from campussync.utils import setup_logging


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="campussync",
        description="CampusSync: credential verification and approval pipeline",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config YAML")
    parser.add_argument("--verbose", "-v", action="store_true")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ── seed ────────────────────────────────────────────────────
    subparsers.add_parser("seed", help="Install default trusted issuers and rules")

    # ── jobs ────────────────────────────────────────────────────
    jobs_parser = subparsers.add_parser("jobs", help="Job queue operations")
    jobs_sub = jobs_parser.add_subparsers(dest="action")
    submit_parser = jobs_sub.add_parser("submit", help="Submit a job")
    submit_parser.add_argument("--type", required=True, choices=["ocr", "verification", "normalization"])
    submit_parser.add_argument("--payload", required=True, help="JSON string or path to a JSON file")
    submit_parser.add_argument("--priority", type=int, default=0)
    for name, help_text in (
        ("status", "Show job status"),
        ("resubmit", "Put a failed job back in the queue"),
        ("history", "Show a job's history"),
    ):
        p = jobs_sub.add_parser(name, help=help_text)
        p.add_argument("job_id")
    list_parser = jobs_sub.add_parser("list", help="List recent jobs")
    list_parser.add_argument("--status", choices=["pending", "processing", "completed", "failed"])
    list_parser.add_argument("--limit", type=int, default=20)
    cleanup_parser = jobs_sub.add_parser("cleanup", help="Delete old completed jobs")
    cleanup_parser.add_argument("--days", type=int, default=None)

    # ── review ──────────────────────────────────────────────────
    review_parser = subparsers.add_parser("review", help="Manual review queue")
    review_sub = review_parser.add_subparsers(dest="action")
    review_list = review_sub.add_parser("list", help="Certificates awaiting review")
    review_list.add_argument("--org", default=None, help="Organization id")
    for name in ("approve", "reject", "revert"):
        p = review_sub.add_parser(name, help=f"{name.capitalize()} a certificate")
        p.add_argument("certificate_id")
        p.add_argument("--actor", required=True)
        p.add_argument("--reason", required=True)

    # ── vc ──────────────────────────────────────────────────────
    vc_parser = subparsers.add_parser("vc", help="Verifiable Credentials")
    vc_sub = vc_parser.add_subparsers(dest="action")
    issue_parser = vc_sub.add_parser("issue", help="Issue a credential for a verified certificate")
    issue_parser.add_argument("certificate_id")
    issue_parser.add_argument("--actor", default=None)
    issue_parser.add_argument("--output", type=str, default=None, help="Write the VC document here")
    revoke_parser = vc_sub.add_parser("revoke", help="Revoke a credential")
    revoke_parser.add_argument("credential_id")
    revoke_parser.add_argument("--code", required=True, help="FRAUD, ERROR, SUSPENSION, ...")
    revoke_parser.add_argument("--actor", required=True)
    revoke_parser.add_argument("--note", default=None)
    status_parser = vc_sub.add_parser("status", help="Credential status and history")
    status_parser.add_argument("credential_id")
    verify_parser = vc_sub.add_parser("verify", help="Verify a VC document (JSON file)")
    verify_parser.add_argument("document")

    # ── rules ───────────────────────────────────────────────────
    rules_parser = subparsers.add_parser("rules", help="Verification rules")
    rules_sub = rules_parser.add_subparsers(dest="action")
    rules_sub.add_parser("list", help="List rules")
    toggle_parser = rules_sub.add_parser("toggle", help="Enable or disable a rule")
    toggle_parser.add_argument("rule", help="Rule id or name")
    toggle_parser.add_argument("--off", action="store_true", help="Disable instead of enable")
    update_parser = rules_sub.add_parser("update", help="Change a rule's weight or threshold")
    update_parser.add_argument("rule", help="Rule id or name")
    update_parser.add_argument("--weight", type=float, default=None)
    update_parser.add_argument("--threshold", type=float, default=None)

    # ── worker ──────────────────────────────────────────────────
    worker_parser = subparsers.add_parser("worker", help="Run the background job worker")
    worker_parser.add_argument("--interval", type=float, default=None, help="Poll interval (s)")
    worker_parser.add_argument(
        "--text-ocr", action="store_true",
        help="Treat OCR job file references as plain-text files",
    )

    args = parser.parse_args(argv)

    config = get_config(args.config)
    setup_logging(
        level="DEBUG" if args.verbose else config.log_level,
        format_style=config.log_format,
    )

    commands = {
        "seed": cmd_seed,
        "jobs": cmd_jobs,
        "review": cmd_review,
        "vc": cmd_vc,
        "rules": cmd_rules,
        "worker": cmd_worker,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        handler(args, config)
    except CampusSyncError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _pipeline(config):
    from campussync.pipeline import VerificationPipeline

    pipeline = VerificationPipeline(config)
    pipeline.db.init_db()
    return pipeline


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _load_json(value: str):
    path = Path(value)
    if path.is_file():
        with open(path) as f:
            return json.load(f)
    return json.loads(value)


def cmd_seed(args, config):
    """Install the default trusted issuers and verification rules."""
    pipeline = _pipeline(config)
    issuers, rules = pipeline.store.seed_defaults()
    print(f"Seeded {issuers} trusted issuers and {rules} verification rules.")


def cmd_jobs(args, config):
    """Job queue operations."""
    from campussync.jobs.queue import JobQueue

    pipeline = _pipeline(config)
    queue = JobQueue(pipeline.db)

    if args.action == "submit":
        job_id = queue.submit(args.type, _load_json(args.payload), priority=args.priority)
        print(job_id)
    elif args.action == "status":
        _print_json(queue.status(args.job_id).model_dump(mode="json"))
    elif args.action == "resubmit":
        job = queue.resubmit(args.job_id)
        print(f"Job {job.id} is {job.status.value}")
    elif args.action == "history":
        for entry in queue.history(args.job_id):
            print(f"  {entry.created_at}  {entry.status.value:<10} {entry.message or ''}")
    elif args.action == "list":
        for job in queue.list_jobs(status=args.status, limit=args.limit):
            print(f"  {job.id}  {job.type.value:<13} {job.status.value:<10} p={job.priority}")
    elif args.action == "cleanup":
        days = args.days if args.days is not None else config.worker.cleanup_days
        print(f"Deleted {queue.cleanup(older_than_days=days)} completed jobs.")
    else:
        print("Usage: campussync jobs {submit,status,resubmit,history,list,cleanup}")
        sys.exit(1)


def cmd_review(args, config):
    """Manual review queue."""
    pipeline = _pipeline(config)

    if args.action == "list":
        items = pipeline.review_queue(organization_id=args.org)
        if not items:
            print("No certificates awaiting review.")
        for item in items:
            cert = item.certificate
            score = f"{item.policy_score:.3f}" if item.policy_score is not None else "n/a"
            print(f"\n  {cert.id}  score={score}")
            print(f"    {cert.title or '?'} | {cert.institution or '?'} | {cert.date_issued or '?'}")
            for rule in item.breakdown:
                mark = "✅" if rule.get("passed") else "❌"
                print(
                    f"    {mark} {rule['name']:<22} weight={rule['weight']:.2f} "
                    f"signal={rule['signal']:.2f}"
                )
    elif args.action in ("approve", "reject"):
        cert = pipeline.review(args.certificate_id, args.actor, args.action == "approve", args.reason)
        print(f"Certificate {cert.id} is {cert.verification_status.value}")
    elif args.action == "revert":
        cert = pipeline.revert(args.certificate_id, args.actor, args.reason)
        print(f"Certificate {cert.id} is {cert.verification_status.value}")
    else:
        print("Usage: campussync review {list,approve,reject,revert}")
        sys.exit(1)


def cmd_vc(args, config):
    """Verifiable Credential operations."""
    pipeline = _pipeline(config)

    if args.action == "issue":
        credential = pipeline.issuer.issue(args.certificate_id, actor_id=args.actor)
        print(f"Issued {credential.id}")
        if args.output:
            with open(args.output, "w") as f:
                json.dump(credential.document, f, indent=2)
            print(f"  Document saved to {args.output}")
    elif args.action == "revoke":
        record = pipeline.revoker.revoke(args.credential_id, args.code, args.actor, note=args.note)
        print(f"Revoked {record.credential_id}: {record.reason.description}")
    elif args.action == "status":
        _print_json(pipeline.revoker.status(args.credential_id).model_dump(mode="json"))
    elif args.action == "verify":
        with open(args.document) as f:
            document = json.load(f)
        result = pipeline.revoker.verify_credential(document)
        print(f"Valid: {'✅' if result.valid else '❌'}  {result.reason or ''}")
        if not result.valid:
            sys.exit(2)
    else:
        print("Usage: campussync vc {issue,revoke,status,verify}")
        sys.exit(1)


def cmd_rules(args, config):
    """Verification rule configuration."""
    pipeline = _pipeline(config)
    store = pipeline.store

    if args.action == "list":
        for rule in store.list_rules():
            state = "on " if rule.is_active else "off"
            print(
                f"  [{state}] {rule.name:<22} {rule.rule_type.value:<16} "
                f"weight={rule.weight:.2f} threshold={rule.threshold:.2f}"
            )
    elif args.action == "toggle":
        rule = store.set_rule_active(args.rule, not args.off)
        print(f"Rule '{rule.name}' is {'enabled' if rule.is_active else 'disabled'}")
    elif args.action == "update":
        try:
            rule = store.update_rule(args.rule, weight=args.weight, threshold=args.threshold)
        except ValueError as e:
            print(f"Error: {e}")
            sys.exit(1)
        print(f"Rule '{rule.name}': weight={rule.weight}, threshold={rule.threshold}")
    else:
        print("Usage: campussync rules {list,toggle,update}")
        sys.exit(1)


def cmd_worker(args, config):
    """Run the job worker until interrupted."""
    from campussync.jobs.processors import build_registry, plain_text_ocr
    from campussync.jobs.queue import JobQueue
    from campussync.jobs.worker import JobWorker

    pipeline = _pipeline(config)
    queue = JobQueue(pipeline.db)
    registry = build_registry(
        pipeline, queue, ocr_engine=plain_text_ocr if args.text_ocr else None
    )
    interval = args.interval or config.worker.poll_interval_s
    worker = JobWorker(queue, registry, poll_interval=interval)

    async def run():
        handle = worker.start()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle.stop)
            except NotImplementedError:
                # Windows event loops have no signal handlers
                pass
        await handle.wait()

    print(f"Worker polling every {interval}s (Ctrl+C to stop)")
    asyncio.run(run())


if __name__ == "__main__":
    main()
