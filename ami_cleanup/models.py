"""Records passed between the inventory, retention and deletion stages."""

import datetime
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from .errors import PolicyError

AVAILABLE = 'available'


@dataclass(frozen=True)
class ImageRecord:
    """One AMI in one region, as returned by the inventory query."""
    image_id: str
    name: str
    creation_date: datetime.datetime
    state: str
    region: str
    snapshot_ids: Tuple[str, ...] = ()

    def age(self, now: datetime.datetime) -> datetime.timedelta:
        return now - self.creation_date


@dataclass(frozen=True)
class SnapshotInfo:
    snapshot_id: str
    start_time: Optional[datetime.datetime]
    description: str = ''


@dataclass(frozen=True)
class RetentionPolicy:
    """
    Which images are eligible for deletion.

    ``leave_count`` keeps the newest N images per region and takes
    precedence over the age thresholds when it is set.
    """
    older_than: Optional[datetime.timedelta] = None
    newer_than: Optional[datetime.timedelta] = None
    leave_count: int = 0

    def __post_init__(self):
        if self.leave_count < 0:
            raise PolicyError("leave count must not be negative")
        if not self.leave_count and not self.older_than and not self.newer_than:
            raise PolicyError("either older-than, newer-than, or leave-count-remaining must be provided")

    @property
    def keeps_count(self) -> bool:
        return self.leave_count > 0

    def describe(self) -> str:
        if self.keeps_count:
            return f"keep newest {self.leave_count}"
        parts = []
        if self.older_than:
            parts.append(f"older than {self.older_than}")
        if self.newer_than:
            parts.append(f"newer than {self.newer_than}")
        return ' or '.join(parts)


@dataclass
class RegionPlan:
    region: str
    images: List[ImageRecord] = field(default_factory=list)
    snapshot_ids: List[str] = field(default_factory=list)
    kept: List[ImageRecord] = field(default_factory=list)

    def add(self, image: ImageRecord) -> None:
        """Mark an image for deletion along with every snapshot it references."""
        self.images.append(image)
        for snapshot_id in image.snapshot_ids:
            if snapshot_id not in self.snapshot_ids:
                self.snapshot_ids.append(snapshot_id)

    @property
    def is_empty(self) -> bool:
        return not self.images and not self.snapshot_ids


@dataclass
class DeletionSet:
    plans: List[RegionPlan] = field(default_factory=list)

    def __iter__(self) -> Iterator[RegionPlan]:
        return iter(self.plans)

    @property
    def images(self) -> List[ImageRecord]:
        return [image for plan in self.plans for image in plan.images]

    @property
    def snapshot_ids(self) -> List[str]:
        return [snapshot_id for plan in self.plans for snapshot_id in plan.snapshot_ids]

    @property
    def kept(self) -> List[ImageRecord]:
        return [image for plan in self.plans for image in plan.kept]

    @property
    def is_empty(self) -> bool:
        return all(plan.is_empty for plan in self.plans)


@dataclass
class RegionResult:
    """Outcome of one region task in the fan-out; ``error`` is set when the task failed."""
    region: str
    images: List[ImageRecord] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ItemOutcome:
    region: str
    resource_type: str  # 'image' or 'snapshot'
    resource_id: str
    success: bool
    error: str = ''


@dataclass
class DeletionReport:
    outcomes: List[ItemOutcome] = field(default_factory=list)
    aborted: bool = False
    dry_run: bool = False
    completed_regions: List[str] = field(default_factory=list)

    @property
    def deregistered(self) -> int:
        return sum(1 for o in self.outcomes if o.success and o.resource_type == 'image')

    @property
    def deleted(self) -> int:
        return sum(1 for o in self.outcomes if o.success and o.resource_type == 'snapshot')

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    def by_region(self, region: str) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.region == region]
