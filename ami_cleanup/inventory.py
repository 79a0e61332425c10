"""
Per-region AMI inventory.

Lists the caller's available AMIs whose name matches an EC2 name filter and
annotates each one with the completed snapshots created for it.
"""

import datetime
import logging
from typing import Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .errors import PatternError
from .models import AVAILABLE, ImageRecord, SnapshotInfo

logger = logging.getLogger(__name__)

# Don't report errors for regions the account has no access to
IGNORED_STATUS_CODES = (401,)

SNAPSHOT_NOT_FOUND = 'InvalidSnapshot.NotFound'


def is_ignored_error(error: Exception) -> bool:
    if not isinstance(error, ClientError):
        return False
    status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
    return status in IGNORED_STATUS_CODES


def validate_pattern(pattern: str) -> str:
    """EC2 name filters use ``?`` and ``*`` wildcards; an empty filter is never valid."""
    if not isinstance(pattern, str) or not pattern.strip():
        raise PatternError("AMI name pattern must be a non-empty string")
    return pattern


def parse_creation_date(value: Optional[str]) -> Optional[datetime.datetime]:
    """Parse an EC2 CreationDate; returns None unless it is ISO-8601 with a UTC offset."""
    if not value:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def list_images(ec2_client, pattern: str) -> List[Dict]:
    """Raw DescribeImages results for the caller's available images matching pattern."""
    images = []
    paginator = ec2_client.get_paginator('describe_images')
    for page in paginator.paginate(
        Owners=['self'],
        Filters=[
            {'Name': 'name', 'Values': [pattern]},
            {'Name': 'state', 'Values': [AVAILABLE]},
        ]
    ):
        images.extend(page.get('Images', []))
    return images


def list_image_snapshot_ids(ec2_client, image_id: str) -> List[str]:
    """Ids of completed snapshots whose description mentions image_id."""
    snapshot_ids = []
    paginator = ec2_client.get_paginator('describe_snapshots')
    for page in paginator.paginate(
        OwnerIds=['self'],
        Filters=[
            {'Name': 'description', 'Values': [f"*{image_id}*"]},
            {'Name': 'status', 'Values': ['completed']},
        ]
    ):
        snapshot_ids.extend(snapshot['SnapshotId'] for snapshot in page.get('Snapshots', []))
    return snapshot_ids


def query_images(ec2_client, region: str, pattern: str) -> List[ImageRecord]:
    """
    Inventory of matching AMIs in one region, newest first.

    Args:
        ec2_client: EC2 client scoped to region
        region: Region name, stamped onto every record
        pattern: EC2 name filter (``?`` one character, ``*`` any run)

    Returns:
        List of ImageRecord sorted by creation date, newest first. Empty when
        the image listing fails; a 401 from a region the account cannot reach
        is not reported.
    """
    try:
        raw_images = list_images(ec2_client, pattern)
    except (ClientError, BotoCoreError) as e:
        if is_ignored_error(e):
            logger.debug(f"Skipping region {region}: {e}")
        else:
            logger.error(f"Error describing images in region {region}: {e}")
        return []

    images = []
    for image in raw_images:
        image_id = image.get('ImageId', '')
        creation_date = parse_creation_date(image.get('CreationDate'))
        if creation_date is None:
            logger.warning(f"Error parsing creation date {image.get('CreationDate')!r} "
                           f"for {image_id} in region {region}, skipping")
            continue

        try:
            snapshot_ids = list_image_snapshot_ids(ec2_client, image_id)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error describing snapshots for {image_id} in region {region}: {e}")
            snapshot_ids = []

        images.append(ImageRecord(
            image_id=image_id,
            name=image.get('Name', ''),
            creation_date=creation_date,
            state=image.get('State', ''),
            region=region,
            snapshot_ids=tuple(snapshot_ids),
        ))

    images.sort(key=lambda record: record.creation_date, reverse=True)
    logger.debug(f"Found {len(images)} matching AMIs in {region}")
    return images


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


def _describe_snapshots_by_id(ec2_client, snapshot_ids: List[str]) -> List[Dict]:
    snapshots = []
    paginator = ec2_client.get_paginator('describe_snapshots')
    for page in paginator.paginate(SnapshotIds=snapshot_ids):
        snapshots.extend(page.get('Snapshots', []))
    return snapshots


def describe_image_snapshots(ec2_client, image: ImageRecord) -> List[SnapshotInfo]:
    """
    Snapshot metadata for display, in the image's snapshot order.

    EC2 rejects the whole batch when any one id no longer exists, so on
    InvalidSnapshot.NotFound each id is looked up on its own and the missing
    ones are skipped. Any other ClientError is raised.
    """
    if not image.snapshot_ids:
        return []

    try:
        raw_snapshots = _describe_snapshots_by_id(ec2_client, list(image.snapshot_ids))
    except ClientError as e:
        if _error_code(e) != SNAPSHOT_NOT_FOUND:
            raise
        logger.debug(f"Some snapshots of {image.image_id} are gone, looking them up one by one")
        raw_snapshots = []
        for snapshot_id in image.snapshot_ids:
            try:
                raw_snapshots.extend(_describe_snapshots_by_id(ec2_client, [snapshot_id]))
            except ClientError as e:
                if _error_code(e) != SNAPSHOT_NOT_FOUND:
                    raise
                logger.warning(f"Snapshot {snapshot_id} of {image.image_id} no longer exists")

    found = {}
    for snapshot in raw_snapshots:
        found[snapshot['SnapshotId']] = SnapshotInfo(
            snapshot_id=snapshot['SnapshotId'],
            start_time=snapshot.get('StartTime'),
            description=snapshot.get('Description', ''),
        )

    return [found[snapshot_id] for snapshot_id in image.snapshot_ids if snapshot_id in found]
