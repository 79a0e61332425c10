"""
Cleanup AMIs - Lambda Version
Serverless function for scheduled AMI and snapshot retention
"""

import os
import logging
from typing import Any, Dict, List, Optional

import boto3

from .config import DEFAULT_HOME_REGION, DEFAULT_PATTERN, EngineConfig
from .duration import parse_duration
from .errors import RegionConfigError
from .executor import execute
from .fanout import query_all_regions
from .models import DeletionReport, DeletionSet, RetentionPolicy
from .retention import evaluate

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == 'true'


def _split_regions(value) -> Optional[List[str]]:
    if not value:
        return None
    if isinstance(value, str):
        return [region.strip() for region in value.split(',') if region.strip()]
    return list(value)


def load_parameters(event: Dict[str, Any]) -> Dict[str, Any]:
    """Parameters from the event's ``params`` block, falling back to environment variables."""
    params = event.get('params', {}) or {}
    return {
        'pattern': params.get('pattern', os.environ.get('PATTERN', DEFAULT_PATTERN)),
        'older_than': params.get('older_than', os.environ.get('OLDER_THAN', '')),
        'newer_than': params.get('newer_than', os.environ.get('NEWER_THAN', '')),
        'leave_count': int(params.get('leave_count', os.environ.get('LEAVE_COUNT', '0'))),
        'dry_run': params.get('dry_run', _env_bool('DRY_RUN', 'true')),
        'regions': _split_regions(params.get('regions', os.environ.get('REGIONS', ''))),
        'home_region': params.get('home_region', os.environ.get('AWS_REGION', DEFAULT_HOME_REGION)),
    }


def build_policy(params: Dict[str, Any]) -> RetentionPolicy:
    return RetentionPolicy(
        older_than=parse_duration(params['older_than']) if params['older_than'] else None,
        newer_than=parse_duration(params['newer_than']) if params['newer_than'] else None,
        leave_count=params['leave_count'],
    )


def summarize(deletion_set: DeletionSet, report: DeletionReport) -> List[Dict]:
    """Per-region results for the response body."""
    results = []
    for plan in deletion_set:
        outcomes = report.by_region(plan.region)
        results.append({
            'region': plan.region,
            'amis_selected': [image.image_id for image in plan.images],
            'snapshots_selected': list(plan.snapshot_ids),
            'amis_kept': len(plan.kept),
            'amis_deregistered': sum(1 for o in outcomes if o.success and o.resource_type == 'image'),
            'snapshots_deleted': sum(1 for o in outcomes if o.success and o.resource_type == 'snapshot'),
            'errors': [f"{o.resource_id}: {o.error}" for o in outcomes if not o.success],
        })
    return results


def lambda_handler(event: Dict[str, Any], context) -> Dict[str, Any]:
    """
    AWS Lambda handler for AMI cleanup

    Args:
        event: Lambda event object
        context: Lambda context object

    Returns:
        Dict with cleanup results
    """
    try:
        logger.info("Starting AMI cleanup")

        params = load_parameters(event)
        policy = build_policy(params)
        dry_run = params['dry_run']

        logger.info(f"Configuration - Pattern: {params['pattern']}, Policy: {policy.describe()}, "
                    f"Dry run: {dry_run}, Regions: {params['regions'] or 'all'}")

        # Validate credentials
        session = boto3.Session()
        try:
            response = session.client('sts').get_caller_identity()
            account_id = response.get('Account', 'Unknown')
            logger.info(f"Cleaning up AMIs in AWS Account: {account_id}")
        except Exception as e:
            logger.error(f"Failed to validate credentials: {e}")
            raise Exception("Invalid AWS credentials")

        config = EngineConfig(session=session, home_region=params['home_region'], regions=params['regions'])

        try:
            images = query_all_regions(config, params['pattern'])
        except RegionConfigError as e:
            logger.error(f"Region configuration failed for {', '.join(e.failed_regions)}: {e}")
            raise

        deletion_set = evaluate(images, policy)
        # No one to answer a prompt here
        report = execute(deletion_set, config, assume_yes=True, dry_run=dry_run)

        region_results = summarize(deletion_set, report)
        alerts_triggered = report.failed > 0
        operation_mode = "DRY RUN" if dry_run else "ACTUAL DELETION"

        logger.info(f"Cleanup completed ({operation_mode}). "
                    f"AMIs selected: {len(deletion_set.images)}, "
                    f"AMIs deregistered: {report.deregistered}, "
                    f"Snapshots deleted: {report.deleted}")

        if alerts_triggered:
            logger.warning(f"CLEANUP ALERT: {report.failed} deletions failed during cleanup!")

        return {
            'statusCode': 201 if alerts_triggered else 200,
            'body': {
                'message': f'AMI cleanup completed successfully ({operation_mode})',
                'results': {
                    'region_results': region_results,
                    'summary': {
                        'images_found': len(images),
                        'amis_selected': len(deletion_set.images),
                        'snapshots_selected': len(deletion_set.snapshot_ids),
                        'amis_deregistered': report.deregistered,
                        'snapshots_deleted': report.deleted,
                        'failed': report.failed,
                    },
                    'cleanup_parameters': {
                        'pattern': params['pattern'],
                        'policy': policy.describe(),
                        'dry_run': dry_run,
                        'account_id': account_id,
                    }
                },
                'executionId': context.aws_request_id,
                'alerts_triggered': alerts_triggered
            }
        }

    except Exception as e:
        logger.error(f"AMI cleanup failed: {str(e)}")
        return {
            'statusCode': 500,
            'body': {
                'error': str(e),
                'message': 'AMI cleanup failed',
                'executionId': context.aws_request_id
            }
        }
