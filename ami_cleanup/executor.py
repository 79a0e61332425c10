"""
Deletion of the AMIs and snapshots selected by the retention policy.

Within each region deletion runs in two fixed phases: every AMI is
deregistered first, then every snapshot is deleted. A snapshot backing a
registered AMI cannot be deleted, so the phases must never be interleaved.
"""

import logging
from typing import Callable

from botocore.exceptions import BotoCoreError, ClientError

from .models import DeletionReport, DeletionSet, ItemOutcome, RegionPlan

logger = logging.getLogger(__name__)

CONFIRM_TOKEN = 'y'


def _error_message(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Message', str(error))
    return str(error)


def print_deletion_plan(deletion_set: DeletionSet) -> None:
    """Show everything that will be deleted, region by region."""
    for plan in deletion_set:
        if plan.is_empty:
            continue
        print(f"AMIs to be deleted in region {plan.region}:")
        for image in plan.images:
            print("-", image.image_id)

        print(f"Snapshots to be deleted in region {plan.region}:")
        for snapshot_id in plan.snapshot_ids:
            print("-", snapshot_id)


def confirm_deletion(input_func: Callable[[str], str] = input) -> bool:
    """Ask once; only the literal confirmation token proceeds."""
    try:
        response = input_func("Do you want to proceed with the deletion? (y/n): ")
    except EOFError:
        logger.warning("No confirmation received on standard input")
        return False
    return response.rstrip('\r\n') == CONFIRM_TOKEN


def deregister_images(ec2_client, plan: RegionPlan, report: DeletionReport) -> None:
    for image in plan.images:
        try:
            ec2_client.deregister_image(ImageId=image.image_id)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deregistering AMI {image.image_id} in region {plan.region}: {e}")
            report.outcomes.append(ItemOutcome(plan.region, 'image', image.image_id, False, _error_message(e)))
            continue

        print(f"Deregistered AMI: {image.image_id}")
        report.outcomes.append(ItemOutcome(plan.region, 'image', image.image_id, True))


def delete_snapshots(ec2_client, plan: RegionPlan, report: DeletionReport) -> None:
    for snapshot_id in plan.snapshot_ids:
        try:
            ec2_client.delete_snapshot(SnapshotId=snapshot_id)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting snapshot {snapshot_id} in region {plan.region}: {e}")
            report.outcomes.append(ItemOutcome(plan.region, 'snapshot', snapshot_id, False, _error_message(e)))
            continue

        print(f"Deleted snapshot: {snapshot_id}")
        report.outcomes.append(ItemOutcome(plan.region, 'snapshot', snapshot_id, True))


def cleanup_region(ec2_client, plan: RegionPlan, report: DeletionReport) -> None:
    deregister_images(ec2_client, plan, report)
    delete_snapshots(ec2_client, plan, report)
    print(f"Cleanup completed in region {plan.region}.")
    report.completed_regions.append(plan.region)


def execute(deletion_set: DeletionSet, config, assume_yes: bool = False, dry_run: bool = False,
            input_func: Callable[[str], str] = input) -> DeletionReport:
    """
    Delete every AMI and snapshot in deletion_set.

    The full plan is printed before anything is touched. Unless assume_yes is
    set the user must answer ``y``; any other answer aborts the whole run.
    Individual failures are logged and skipped, never retried.

    Args:
        deletion_set: Output of retention.evaluate
        config: EngineConfig used to build one EC2 client per region
        assume_yes: Skip the confirmation prompt
        dry_run: Print the plan and stop
        input_func: Prompt function, ``input`` by default

    Returns:
        DeletionReport with one outcome per AMI or snapshot attempted
    """
    report = DeletionReport(dry_run=dry_run)

    if deletion_set.is_empty:
        print("No AMIs or snapshots to delete.")
        return report

    print_deletion_plan(deletion_set)

    if dry_run:
        print("DRY RUN: No AMIs or snapshots were deleted.")
        return report

    if not assume_yes and not confirm_deletion(input_func):
        print("Aborting deletion.")
        report.aborted = True
        return report

    for plan in deletion_set:
        if plan.is_empty:
            continue

        try:
            ec2_client = config.client_for(plan.region)
        except Exception as e:
            logger.error(f"Error loading config for region {plan.region}: {e}")
            for image in plan.images:
                report.outcomes.append(ItemOutcome(plan.region, 'image', image.image_id, False, str(e)))
            for snapshot_id in plan.snapshot_ids:
                report.outcomes.append(ItemOutcome(plan.region, 'snapshot', snapshot_id, False, str(e)))
            continue

        cleanup_region(ec2_client, plan, report)

    return report
