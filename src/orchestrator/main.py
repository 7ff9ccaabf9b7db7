"""Command-line front-end - start and end runs on the shared save folder."""

import argparse
import asyncio
import sys
from typing import Sequence

import httpx
import structlog
from pydantic import ValidationError

from src.coordination import (
    AcquireResult,
    AcquireStatus,
    LockStatus,
    RejectReason,
    ReleaseResult,
    ReleaseStatus,
    SyncFailedError,
    SyncResult,
    SyncStatus,
)
from src.github_app import GitHubClient, GitHubIdentityProvider, UnauthenticatedError
from src.store import GitStore, StoreError

from .bootstrap import RepositoryBootstrapper, SetupError, SetupOutcome
from .collaborators import CollaboratorError, CollaboratorManager
from .config import Settings
from .log_setup import configure_logging
from .runs import RunManager

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_REFUSED = 1  # contention or a no-op refusal
EXIT_FAILED = 2  # infrastructure failure, conflict or bad configuration


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shared-save-lock",
        description="Take turns on a save folder shared through a GitHub repository.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    
    p_acquire = sub.add_parser("acquire", aliases=["start"], help="Start a run (take the lock)")
    p_acquire.set_defaults(action="acquire")
    
    p_release = sub.add_parser(
        "release", aliases=["end"], help="End a run (publish the save and release the lock)"
    )
    p_release.set_defaults(action="release")
    
    p_status = sub.add_parser("status", help="Show who is currently running")
    p_status.set_defaults(action="status")
    
    p_sync = sub.add_parser("sync", help="Synchronize the save folder with the repository")
    p_sync.set_defaults(action="sync")
    
    p_recover = sub.add_parser(
        "recover", help="Drop unpublished local commits after an interrupted run"
    )
    p_recover.set_defaults(action="recover")
    
    p_setup = sub.add_parser("setup", help="Create or clone the shared repository")
    p_setup.add_argument(
        "--replace",
        action="store_true",
        help="Delete the save folder contents and replace them with the repository",
    )
    p_setup.set_defaults(action="setup")
    
    p_collab = sub.add_parser("collaborators", help="Manage collaborators (owner only)")
    collab_sub = p_collab.add_subparsers(dest="collaborators_command", required=True)
    collab_sub.add_parser("list", help="List collaborators")
    p_add = collab_sub.add_parser("add", help="Invite a collaborator")
    p_add.add_argument("login")
    p_remove = collab_sub.add_parser("remove", help="Remove a collaborator by login or number")
    p_remove.add_argument("login_or_number")
    p_collab.set_defaults(action="collaborators")
    
    return parser


# === Output ===


def report_acquire(result: AcquireResult) -> int:
    match result.status:
        case AcquireStatus.ACQUIRED:
            print("Run started.")
            return EXIT_OK
        case AcquireStatus.ALREADY_HELD:
            print(f"Cannot start a new run because {result.holder} is currently running.")
            return EXIT_REFUSED
        case _ if result.reason == RejectReason.LOST_RACE:
            print("Cannot start a new run because a run has already been started by another user.")
            return EXIT_REFUSED
        case _:
            print(f"An error occurred during starting the run: {result.error}")
            return EXIT_FAILED


def report_release(result: ReleaseResult) -> int:
    match result.status:
        case ReleaseStatus.RELEASED:
            print("Run ended.")
            return EXIT_OK
        case ReleaseStatus.NOT_HOLDER:
            print("Cannot end the run because you are not the current runner.")
            return EXIT_REFUSED
        case ReleaseStatus.NOTHING_TO_COMMIT:
            print("Nothing to commit. The save folder hasn't been changed.")
            return EXIT_REFUSED
        case _:
            reason = result.reason.value if result.reason else "unknown"
            print(
                f"Could not publish the end of the run ({reason}): {result.error}. "
                "Your changes are kept locally; sync and try again."
            )
            return EXIT_FAILED


def report_status(status: LockStatus) -> int:
    if not status.locked:
        print("Unlocked")
    elif status.acquired_at is not None:
        print(f"Held by {status.holder} since {status.acquired_at.isoformat()}")
    else:
        print(f"Held by {status.holder}")
    return EXIT_OK


def report_sync(result: SyncResult) -> int:
    if result.ok:
        print("Synchronized." if result.status == SyncStatus.MERGED else "Already up to date.")
        return EXIT_OK
    print(f"An error occurred during synchronization: {result.error}")
    print("Please verify your GitHub credentials, network connection, and repository accessibility.")
    return EXIT_FAILED


# === Dispatch ===


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    """Build the components from settings and run one command."""
    store = GitStore(
        settings.save_folder_path,
        remote=settings.remote,
        branch=settings.branch,
        token=settings.github_token,
        host=settings.github_host,
        git_executable=settings.git_executable,
    )
    github = GitHubClient(settings)
    identity_provider = GitHubIdentityProvider(github)
    
    match args.action:
        case "setup":
            bootstrapper = RepositoryBootstrapper(settings, store, github, identity_provider)
            outcome = await bootstrapper.setup(replace=args.replace)
            if outcome == SetupOutcome.EXISTING:
                print("Skipping setup as the save folder is already a repository.")
            elif outcome == SetupOutcome.CREATED:
                print(f"Created new repository '{settings.repository_name}'.")
            else:
                print("Repository cloned.")
            runs = RunManager(settings, store, identity_provider)
            return report_sync(await runs.sync())
        
        case "collaborators":
            return await run_collaborators(args, settings, github, identity_provider)
    
    runs = RunManager(settings, store, identity_provider)
    match args.action:
        case "acquire":
            return report_acquire(await runs.start_run())
        case "release":
            return report_release(await runs.end_run())
        case "status":
            return report_status(await runs.status())
        case "sync":
            return report_sync(await runs.sync())
        case "recover":
            return report_sync(await runs.recover())
        case _:
            print(f"Unknown command: {args.action}")
            return EXIT_FAILED


async def run_collaborators(
    args: argparse.Namespace,
    settings: Settings,
    github: GitHubClient,
    identity_provider: GitHubIdentityProvider,
) -> int:
    manager = CollaboratorManager(settings, github, identity_provider)
    repo = settings.repository_name
    
    match args.collaborators_command:
        case "list":
            collaborators = await manager.list_all()
            if not collaborators:
                print(f"There are 0 collaborators for the '{repo}' repository")
            else:
                print(f"Listing {len(collaborators)} collaborators for the '{repo}' repository:")
                for i, login in enumerate(collaborators, start=1):
                    print(f"\t({i}) {login}")
        case "add":
            await manager.add(args.login)
            print(f"'{args.login}' was added as a collaborator to the '{repo}' repository.")
        case "remove":
            login = await manager.remove(args.login_or_number)
            print(f"'{login}' was removed as a collaborator to the '{repo}' repository.")
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    
    try:
        settings = Settings()
    except ValidationError as e:
        print(f"Configuration error: {e}")
        print("Set GITHUB_TOKEN and SAVE_FOLDER_PATH in the environment or in .env.")
        return EXIT_FAILED
    
    configure_logging(settings.log_level)
    
    try:
        return asyncio.run(run_command(args, settings))
    except SyncFailedError as e:
        return report_sync(e.result)
    except UnauthenticatedError as e:
        print(f"Authentication failed: {e}")
        return EXIT_FAILED
    except (SetupError, CollaboratorError) as e:
        print(str(e))
        return EXIT_REFUSED
    except StoreError as e:
        logger.error("Repository operation failed", error=str(e), kind=e.kind)
        print(f"An error occurred: {e}")
        return EXIT_FAILED
    except httpx.HTTPError as e:
        logger.error("GitHub request failed", error=str(e))
        print(f"An error occurred while talking to GitHub: {e}")
        return EXIT_FAILED


def cli() -> None:
    """CLI entry point."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
