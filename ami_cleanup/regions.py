"""Region enumeration."""

import logging
from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from .errors import RegionEnumerationError

logger = logging.getLogger(__name__)


def get_regions(config) -> List[str]:
    """
    Regions to operate in, in the order EC2 reports them.

    An explicit region list on the config is returned as-is. Otherwise the
    enabled regions are read with DescribeRegions from the home region.
    """
    if config.regions:
        return list(config.regions)

    try:
        ec2_client = config.client_for(config.home_region)
        response = ec2_client.describe_regions()
    except ClientError as e:
        raise RegionEnumerationError(
            f"Error getting region details: {e.response['Error']['Message']}") from e
    except BotoCoreError as e:
        raise RegionEnumerationError(f"Error getting region details: {e}") from e

    regions = [region['RegionName'] for region in response.get('Regions', [])]
    logger.debug(f"Discovered {len(regions)} regions from {config.home_region}")
    return regions
