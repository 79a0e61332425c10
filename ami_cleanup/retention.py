"""Retention policy evaluation: which AMIs and snapshots to delete."""

import datetime
import logging
from typing import Dict, Iterable, List, Optional

from .models import AVAILABLE, DeletionSet, ImageRecord, RegionPlan, RetentionPolicy

logger = logging.getLogger(__name__)


def group_by_region(images: Iterable[ImageRecord]) -> Dict[str, List[ImageRecord]]:
    """Group images by region, preserving first-seen region order and image order."""
    grouped: Dict[str, List[ImageRecord]] = {}
    for image in images:
        grouped.setdefault(image.region, []).append(image)
    return grouped


def _plan_leave_count(region: str, images: List[ImageRecord], leave_count: int) -> RegionPlan:
    plan = RegionPlan(region=region)
    if len(images) <= leave_count:
        logger.info(f"No AMIs to delete in region {region}.")
        plan.kept = list(images)
        return plan

    newest_first = sorted(images, key=lambda image: image.creation_date, reverse=True)
    plan.kept = newest_first[:leave_count]
    for image in newest_first[leave_count:]:
        plan.add(image)
    return plan


def _plan_by_age(region: str, images: List[ImageRecord], policy: RetentionPolicy,
                 now: datetime.datetime) -> RegionPlan:
    plan = RegionPlan(region=region)
    for image in images:
        if image.state != AVAILABLE:
            plan.kept.append(image)
            continue

        age = image.age(now)
        if policy.older_than and age > policy.older_than:
            plan.add(image)
        elif policy.newer_than and age < policy.newer_than:
            plan.add(image)
        else:
            plan.kept.append(image)

    if plan.is_empty:
        logger.info(f"No AMIs or snapshots to delete in region {region}.")
    return plan


def evaluate(images: Iterable[ImageRecord], policy: RetentionPolicy,
             now: Optional[datetime.datetime] = None) -> DeletionSet:
    """
    Split an inventory into images to keep and images to delete.

    Args:
        images: Merged inventory, any region order
        policy: Retention policy; ``leave_count`` wins over the age thresholds
        now: Reference time for age comparisons, defaults to the current UTC time

    Returns:
        DeletionSet with one RegionPlan per region. Every input image is in
        exactly one of the plan's ``images`` or ``kept`` lists.
    """
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)

    deletion_set = DeletionSet()
    for region, region_images in group_by_region(images).items():
        if policy.keeps_count:
            plan = _plan_leave_count(region, region_images, policy.leave_count)
        else:
            plan = _plan_by_age(region, region_images, policy, now)
        deletion_set.plans.append(plan)

    logger.debug(f"Policy '{policy.describe()}': {len(deletion_set.images)} AMIs and "
                 f"{len(deletion_set.snapshot_ids)} snapshots selected for deletion")
    return deletion_set
