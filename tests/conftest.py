"""
Pytest configuration file.

Shared helpers for building fake EC2 clients and images.
"""
import datetime
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from ami_cleanup.models import ImageRecord

NOW = datetime.datetime(2024, 6, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


def client_error(code='InternalError', message='boom', status=500, operation='DescribeImages'):
    """Build a real botocore ClientError with the given code and HTTP status."""
    return ClientError(
        {
            'Error': {'Code': code, 'Message': message},
            'ResponseMetadata': {'HTTPStatusCode': status},
        },
        operation,
    )


def make_image(image_id, age, region='us-east-1', state='available', snapshots=(), now=NOW, name=None):
    return ImageRecord(
        image_id=image_id,
        name=name or f"northflier-{image_id}",
        creation_date=now - age,
        state=state,
        region=region,
        snapshot_ids=tuple(snapshots),
    )


def fake_ec2_client(images=None, snapshots_by_image=None, images_error=None, snapshot_errors=None,
                    snapshot_details=None, strict_snapshot_ids=False):
    """
    MagicMock EC2 client whose paginators serve canned pages.

    Args:
        images: raw DescribeImages entries
        snapshots_by_image: image id -> list of snapshot ids
        images_error: exception raised while paginating describe_images
        snapshot_errors: image ids whose snapshot lookup raises
        snapshot_details: raw DescribeSnapshots entries served by SnapshotIds lookups
        strict_snapshot_ids: fail a SnapshotIds lookup naming an unknown id, as EC2 does
    """
    snapshots_by_image = snapshots_by_image or {}
    snapshot_errors = snapshot_errors or set()
    snapshot_details = snapshot_details or []
    client = MagicMock()

    def paginate_images(**kwargs):
        if images_error is not None:
            raise images_error
        return [{'Images': list(images or [])}]

    def paginate_snapshots(**kwargs):
        if 'SnapshotIds' in kwargs:
            wanted = set(kwargs['SnapshotIds'])
            missing = wanted - {s['SnapshotId'] for s in snapshot_details}
            if strict_snapshot_ids and missing:
                raise client_error('InvalidSnapshot.NotFound', f"The snapshot '{sorted(missing)[0]}' does not exist.",
                                   status=400, operation='DescribeSnapshots')
            return [{'Snapshots': [s for s in snapshot_details if s['SnapshotId'] in wanted]}]
        description = kwargs['Filters'][0]['Values'][0]
        image_id = description.strip('*')
        if image_id in snapshot_errors:
            raise client_error(operation='DescribeSnapshots')
        return [{'Snapshots': [{'SnapshotId': s} for s in snapshots_by_image.get(image_id, [])]}]

    def get_paginator(name):
        paginator = MagicMock()
        if name == 'describe_images':
            paginator.paginate.side_effect = paginate_images
        elif name == 'describe_snapshots':
            paginator.paginate.side_effect = paginate_snapshots
        else:
            raise AssertionError(f"unexpected paginator {name}")
        return paginator

    client.get_paginator.side_effect = get_paginator
    return client


class FakeConfig:
    """Stands in for EngineConfig with one prepared client per region."""

    def __init__(self, clients, regions=None, max_concurrency=10, failing_regions=()):
        self.clients = clients
        self.regions = regions if regions is not None else list(clients)
        self.home_region = 'us-west-2'
        self.max_concurrency = max_concurrency
        self.failing_regions = set(failing_regions)

    def client_for(self, region, service='ec2'):
        if region in self.failing_regions:
            raise RuntimeError(f"could not load config for {region}")
        return self.clients[region]


@pytest.fixture
def now():
    return NOW
