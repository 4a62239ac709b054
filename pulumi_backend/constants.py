"""Centralized constants for the Pulumi backend tool."""

# Environment variables consumed by pulumi / aws
PASSPHRASE_ENV = "PULUMI_CONFIG_PASSPHRASE"
ACCESS_TOKEN_ENV = "PULUMI_ACCESS_TOKEN"
REGION_ENV = "AWS_REGION"

FALLBACK_REGION = "eu-west-3"

# Backend location schemes
S3_SCHEME = "s3://"
OBJECT_STORE_SCHEME = "objectstore://"
AWSKMS_SCHEME = "awskms://"

# Secrets
DEFAULT_KMS_ALIAS = "alias/pulumi-secrets"
KMS_ALIAS_PREFIX = "alias/"
KMS_KEY_DESCRIPTION = "Pulumi State Encryption Key"
KMS_KEY_TAGS = "TagKey=Purpose,TagValue=PulumiStateEncryption"

# Bucket configuration
POLICY_STATEMENT_SID = "AllowPulumiStateAccess"
POLICY_VERSION = "2012-10-17"
POLICY_ACTIONS = ["s3:GetObject", "s3:PutObject", "s3:DeleteObject", "s3:ListBucket"]
LIFECYCLE_RULE_ID = "ExpireOldVersions"
NONCURRENT_VERSION_DAYS = 90
POLICY_PROPAGATION_DELAY = 5.0
REGION_WITHOUT_LOCATION_CONSTRAINT = "us-east-1"

# Staging directories for exported state
STAGING_DIR_TO_OBJECT_STORE = ".pulumi-migrate-temp"
STAGING_DIR_TO_HOSTED = ".pulumi-cloud-migrate-temp"

# Project scaffold
PROJECT_FILE = "Pulumi.yaml"
DEFAULT_TEMPLATE = "typescript"
DEFAULT_STACK_NAME = "dev"

AWS_REGIONS = [
    "us-east-1",
    "us-east-2",
    "us-west-1",
    "us-west-2",
    "eu-west-1",
    "eu-west-2",
    "eu-west-3",
    "eu-central-1",
    "ap-northeast-1",
    "ap-northeast-2",
    "ap-southeast-1",
    "ap-southeast-2",
]
PROJECT_TEMPLATES = ["typescript", "python", "go", "csharp", "nodejs"]
INIT_SECRETS_PROVIDERS = ["awskms", "passphrase", "default"]

PULUMI_INSTALL_URL = "https://www.pulumi.com/docs/install/"
