"""
Find and clean up AMIs and their snapshots across all AWS regions.

Usage:
  export AWS_PROFILE=yourprofile
  ami-cleanup query --pattern 'northflier-????-??-??-*'
  ami-cleanup cleanup --older-than 30d --dry-run

IMPORTANT: cleanup deregisters AMIs and deletes their snapshots. Review the
listing printed before the confirmation prompt carefully.
"""

import argparse
import datetime
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, PartialCredentialsError, ProfileNotFound

from .config import DEFAULT_HOME_REGION, DEFAULT_PATTERN, EngineConfig
from .duration import format_age, parse_duration
from .errors import AmiCleanupError, RegionConfigError
from .executor import execute
from .fanout import query_all_regions
from .inventory import describe_image_snapshots
from .models import ImageRecord, RetentionPolicy, SnapshotInfo
from .retention import evaluate

logger = logging.getLogger(__name__)


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record):
        entry = {
            'time': datetime.datetime.fromtimestamp(record.created, datetime.timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
        }
        if record.exc_info:
            entry['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(verbose: bool = False, log_format: Optional[str] = None) -> None:
    handler = logging.StreamHandler(sys.stderr)
    if log_format == 'json':
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter('%(levelname)s %(name)s: %(message)s'))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose or log_format else logging.WARNING)
    # botocore is very chatty at DEBUG
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def validate_aws_credentials(session=None):
    """Validate AWS credentials before proceeding."""
    try:
        if session:
            sts = session.client('sts')
        else:
            sts = boto3.client('sts')

        response = sts.get_caller_identity()
        print(f"Using AWS Account: {response.get('Account', 'Unknown')}")
        print(f"User/Role: {response.get('Arn', 'Unknown')}")
        return True
    except (NoCredentialsError, PartialCredentialsError) as e:
        print(f"Error: AWS credentials not found or incomplete: {e}")
        print("Please configure your credentials using 'aws configure' or environment variables.")
        return False
    except ClientError as e:
        print(f"Error validating credentials: {e.response['Error']['Message']}")
        return False


def build_policy(older_than: Optional[str], newer_than: Optional[str], leave_count: int) -> RetentionPolicy:
    """Parse the policy flags; raises DurationError or PolicyError before any AWS call."""
    older = parse_duration(older_than) if older_than else None
    newer = parse_duration(newer_than) if newer_than else None
    return RetentionPolicy(older_than=older, newer_than=newer, leave_count=leave_count or 0)


def resolve_snapshots(config: EngineConfig, images: List[ImageRecord]) -> List[Tuple[ImageRecord, List[SnapshotInfo]]]:
    """Look up snapshot details for display, a bounded number of images at a time."""

    def lookup(image: ImageRecord) -> List[SnapshotInfo]:
        try:
            return describe_image_snapshots(config.client_for(image.region), image)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error describing snapshots for {image.image_id} in region {image.region}: {e}")
            return []

    if not images:
        return []

    with ThreadPoolExecutor(max_workers=min(config.max_concurrency, len(images))) as executor:
        snapshots = list(executor.map(lookup, images))
    return list(zip(images, snapshots))


def print_inventory(rows: List[Tuple[ImageRecord, List[SnapshotInfo]]],
                    now: Optional[datetime.datetime] = None) -> None:
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)

    for image, snapshots in rows:
        age = format_age(image.age(now))
        print(f"{age:<5} {image.image_id:<20} {image.name:<20} {image.region}")
        for snapshot in snapshots:
            snapshot_age = format_age(now - snapshot.start_time) if snapshot.start_time else '-'
            print(f"    {snapshot_age:<5} {snapshot.snapshot_id:<20} {snapshot.description}")


def run_query(config: EngineConfig, pattern: str) -> int:
    exit_code = 0
    try:
        images = query_all_regions(config, pattern)
    except RegionConfigError as e:
        print(f"Error querying AMIs across regions: {e}")
        images = e.partial_images
        exit_code = 1

    images = sorted(images, key=lambda image: image.creation_date, reverse=True)
    print_inventory(resolve_snapshots(config, images))
    return exit_code


def run_cleanup(config: EngineConfig, policy: RetentionPolicy, pattern: str,
                assume_yes: bool = False, dry_run: bool = False) -> int:
    print(f"Policy: {policy.describe()}")
    print(f"Mode: {'DRY RUN' if dry_run else 'LIVE DELETION'}")
    print("=" * 50)

    try:
        images = query_all_regions(config, pattern)
    except RegionConfigError as e:
        # Do not delete from a partial inventory
        print(f"Error during cleanup: {e}")
        return 1

    deletion_set = evaluate(images, policy)
    report = execute(deletion_set, config, assume_yes=assume_yes, dry_run=dry_run)

    if report.aborted or report.dry_run or deletion_set.is_empty:
        return 0

    print(f"\n{'='*60}")
    print("DELETION SUMMARY")
    print(f"{'='*60}")
    print(f"Regions processed: {len(report.completed_regions)}")
    print(f"AMIs deregistered: {report.deregistered}")
    print(f"Snapshots deleted: {report.deleted}")
    print(f"Failed: {report.failed}")
    print(f"{'='*60}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ami-cleanup',
        description="Query and clean up AMIs and their snapshots across AWS regions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
DURATIONS:
  A number followed by one unit: s, m (minutes), h, d, w, M (30-day months), y.
  Fractions are allowed, e.g. 2.3h.

EXAMPLES:
  # List matching AMIs in every region
  ami-cleanup query --pattern 'northflier-????-??-??-*'

  # Show what would be deleted
  ami-cleanup cleanup --older-than 30d --dry-run

  # Keep only the 3 newest AMIs per region, without prompting
  ami-cleanup --profile staging cleanup --leave-count-remaining 3 -y

  # Limit to specific regions
  ami-cleanup --region us-east-1 --region eu-west-1 cleanup --older-than 1M
"""
    )
    parser.add_argument('--profile', help='AWS profile to use')
    parser.add_argument('--region', action='append', dest='regions', metavar='REGION',
                        help='Only operate in this region (repeatable, default: all enabled regions)')
    parser.add_argument('--home-region', default=DEFAULT_HOME_REGION,
                        help=f'Region used to discover the enabled regions (default: {DEFAULT_HOME_REGION})')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose mode')
    parser.add_argument('--log-format', choices=['text', 'json'],
                        help='Log format, json or text (default: text)')

    subparsers = parser.add_subparsers(dest='command')
    subparsers.required = True

    query_parser = subparsers.add_parser('query', help='List matching AMIs and their snapshots')
    query_parser.add_argument('--pattern', default=DEFAULT_PATTERN,
                              help=f'Pattern for matching AMI names (default: {DEFAULT_PATTERN})')

    cleanup_parser = subparsers.add_parser('cleanup', help='Cleanup AMIs and snapshots based on relative date')
    cleanup_parser.add_argument('--pattern', default=DEFAULT_PATTERN,
                                help=f'Pattern for matching AMI names (default: {DEFAULT_PATTERN})')
    cleanup_parser.add_argument('--older-than', help='Relative date for cleanup (e.g., 7d, 1M)')
    cleanup_parser.add_argument('--newer-than', help='Relative date for cleanup (e.g., 7d, 1M)')
    cleanup_parser.add_argument('--leave-count-remaining', type=int, default=0,
                                help='Number of newest AMIs to keep per region')
    cleanup_parser.add_argument('-y', '--assume-yes', action='store_true',
                                help='Assume yes to prompts and run non-interactively')
    cleanup_parser.add_argument('--dry-run', action='store_true',
                                help='Show what would be deleted without actually deleting')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.log_format)

    policy = None
    if args.command == 'cleanup':
        if not args.older_than and not args.newer_than and not args.leave_count_remaining:
            print("Error: either --older-than, --newer-than, or --leave-count-remaining must be provided")
            parser.print_help()
            return 1
        try:
            policy = build_policy(args.older_than, args.newer_than, args.leave_count_remaining)
        except AmiCleanupError as e:
            print(f"Error: {e}")
            return 1

    try:
        config = EngineConfig.from_profile(args.profile, home_region=args.home_region, regions=args.regions)
        if args.profile:
            print(f"Using AWS profile: {args.profile}")
    except ProfileNotFound:
        print(f"Error: AWS profile '{args.profile}' not found.")
        print("Available profiles can be listed with: aws configure list-profiles")
        return 1

    if not validate_aws_credentials(config.session):
        return 1

    try:
        if args.command == 'query':
            return run_query(config, args.pattern)
        return run_cleanup(config, policy, args.pattern, assume_yes=args.assume_yes, dry_run=args.dry_run)
    except AmiCleanupError as e:
        print(f"Error: {e}")
        return 1
    except ClientError as e:
        error_code = e.response['Error']['Code']
        if error_code == 'UnauthorizedOperation':
            print("Error: Insufficient permissions. Required permissions:")
            print("- ec2:DescribeRegions")
            print("- ec2:DescribeImages")
            print("- ec2:DescribeSnapshots")
            print("- ec2:DeregisterImage")
            print("- ec2:DeleteSnapshot")
        else:
            print(f"AWS API Error: {e.response['Error']['Message']}")
        return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
