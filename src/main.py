import argparse
import asyncio
import os
import sys
import logging
from dotenv import load_dotenv

from src.infrastructure.github_client import GitHubRestClient
from src.infrastructure.pacer import Pacer
from src.application.updater_service import UsernameUpdaterService
from src.domain.exceptions import UpdaterException

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

# Env var -> pacer channel for optional delay overrides (seconds)
DELAY_ENV_VARS = {
    "LISTING_DELAY": "listing",
    "FILE_READ_DELAY": "file_read",
    "COMMIT_DELAY": "commit",
    "REPOSITORY_DELAY": "repository",
}


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replace a GitHub username across every file of every repository you own."
    )
    parser.add_argument("--old", "-o", help="Old GitHub username (or OLD_USERNAME)")
    parser.add_argument("--new", "-n", help="New GitHub username (or NEW_USERNAME)")
    parser.add_argument("--token", "-t", help="GitHub personal access token (or GITHUB_TOKEN)")
    parser.add_argument("--dry-run", "-d", action="store_true", help="Preview changes without committing")
    return parser.parse_args(argv)


def load_intervals() -> dict:
    intervals = {}
    for env_name, channel in DELAY_ENV_VARS.items():
        raw = os.getenv(env_name)
        if raw is None:
            continue
        try:
            intervals[channel] = float(raw)
        except ValueError:
            logger.warning(f"Ignoring {env_name}={raw!r}: not a number.")
    return intervals


def env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes"}


async def main(argv=None):
    # Load environment variables from .env file
    load_dotenv()
    args = parse_args(argv)

    github_token = args.token or os.getenv("GITHUB_TOKEN")
    old_username = args.old or os.getenv("OLD_USERNAME")
    new_username = args.new or os.getenv("NEW_USERNAME")
    dry_run = args.dry_run or env_flag("DRY_RUN")

    if not github_token:
        logger.error("GitHub token is required (--token or GITHUB_TOKEN in the environment).")
        sys.exit(1)

    pacer = Pacer(intervals=load_intervals())
    github_client = GitHubRestClient(token=github_token, pacer=pacer)

    updater_service = UsernameUpdaterService(
        github_client=github_client,
        old_username=old_username,
        new_username=new_username,
        dry_run=dry_run,
        pacer=pacer,
    )

    try:
        await updater_service.run()
    except UpdaterException as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        sys.exit(1)


def cli():
    # asyncio.run re-raises Ctrl-C here after cancelling main()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Run interrupted by user. Exiting gracefully.")

if __name__ == "__main__":
    cli()
