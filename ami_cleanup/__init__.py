"""Multi-region AMI and snapshot retention for AWS accounts."""

__version__ = '0.1.0'
