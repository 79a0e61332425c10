"""
Parallel region scanning.

Every region gets its own task and its own EC2 client. At most
``config.max_concurrency`` regions are queried at once; the rest wait for a
free worker. A failing region never cancels the others.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List

from .errors import RegionConfigError
from .inventory import query_images, validate_pattern
from .models import ImageRecord, RegionResult
from .regions import get_regions

logger = logging.getLogger(__name__)


def plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


def scan_region(config, region: str, pattern: str) -> RegionResult:
    """
    Build a client for region and run the inventory query there.

    Only a failure to build the client is carried as the region's error.
    Anything else going wrong in the query is logged and the region
    contributes no images.
    """
    try:
        ec2_client = config.client_for(region)
    except Exception as e:
        logger.error(f"Error loading config for region {region}: {e}")
        return RegionResult(region=region, error=e)

    try:
        images = query_images(ec2_client, region, pattern)
    except Exception as e:
        logger.error(f"Error querying AMIs in region {region}: {e}")
        images = []
    return RegionResult(region=region, images=images)


def scan_regions(config, pattern: str) -> List[RegionResult]:
    """
    Query every region in parallel.

    Returns:
        One RegionResult per region, in completion order. A region whose
        client could not be built carries the error instead of images.

    Raises:
        RegionEnumerationError: the region list could not be obtained
    """
    validate_pattern(pattern)
    regions = get_regions(config)
    if not regions:
        return []

    results: List[RegionResult] = []
    results_lock = threading.Lock()
    max_workers = min(config.max_concurrency, len(regions))
    logger.info(f"Using {max_workers} parallel workers for {len(regions)} regions")

    def run(region: str) -> None:
        result = scan_region(config, region, pattern)
        with results_lock:
            results.append(result)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(run, region) for region in regions]
        # Wait for every region; run() never raises
        for future in as_completed(futures):
            future.result()

    return results


def merge_results(results: List[RegionResult]) -> List[ImageRecord]:
    merged = []
    for result in results:
        if result.ok:
            merged.extend(result.images)
    return merged


def query_all_regions(config, pattern: str) -> List[ImageRecord]:
    """
    Inventory of matching AMIs across every region.

    Regions that fail inside the inventory query simply contribute nothing.
    If any region failed to build its client, RegionConfigError is raised
    after all regions have finished, carrying the merged partial inventory.
    """
    results = scan_regions(config, pattern)
    images = merge_results(results)

    print(f"Found {len(images)} {plural(len(images), 'AMI')} from "
          f"{len(results)} {plural(len(results), 'region')} queried")

    failed = [result for result in results if not result.ok]
    if failed:
        raise RegionConfigError(
            f"Error loading config for region {failed[0].region}: {failed[0].error}",
            failed_regions=[result.region for result in failed],
            cause=failed[0].error,
            partial_images=images,
        )

    return images
