"""Constants for the Linode COSI driver."""

# Parameter prefix
PARAM_PREFIX = "cosi.linode.com/v1"

# BucketClass / BucketAccessClass parameters
PARAM_REGION = f"{PARAM_PREFIX}/region"
PARAM_ACL = f"{PARAM_PREFIX}/acl"
PARAM_CORS = f"{PARAM_PREFIX}/cors"
PARAM_POLICY = f"{PARAM_PREFIX}/policy"
PARAM_PERMISSIONS = f"{PARAM_PREFIX}/permissions"
PARAM_CLEANUP = f"{PARAM_PREFIX}/cleanup"
PARAM_LINODE_TOKEN_SECRET_NAME = f"{PARAM_PREFIX}/linode-token-secret-name"
PARAM_LINODE_TOKEN_SECRET_NAMESPACE = f"{PARAM_PREFIX}/linode-token-secret-namespace"

# BucketClaim annotations
ANNOTATION_LINODE_TOKEN_SECRET_NAME = PARAM_LINODE_TOKEN_SECRET_NAME
ANNOTATION_LINODE_TOKEN_SECRET_NAMESPACE = PARAM_LINODE_TOKEN_SECRET_NAMESPACE

# Secret key holding a provider token
LINODE_TOKEN_SECRET_KEY = "LINODE_TOKEN"

# COSI objects
COSI_API_GROUP = "objectstorage.k8s.io"
COSI_API_VERSION = "v1alpha1"
PLURAL_BUCKETS = "buckets"
PLURAL_BUCKET_CLAIMS = "bucketclaims"
PLURAL_BUCKET_CLASSES = "bucketclasses"

# Credential map keys
S3 = "s3"
S3_REGION = "region"
S3_ENDPOINT = "endpoint"
S3_ACCESS_KEY_ID = "accessKeyID"
S3_ACCESS_SECRET_KEY = "accessSecretKey"

# Ephemeral keys
EPHEMERAL_KEY_PREFIX = "cosi-bucket"

# Timeouts (seconds)
KEY_CLEANUP_TIMEOUT = 3.0
ENDPOINT_CACHE_DEFAULT_TTL = 30.0
ENDPOINT_CACHE_REFRESH_TIMEOUT = 15.0
OBSERVABILITY_SHUTDOWN_TIMEOUT = 25.0
DEFAULT_HTTP_TIMEOUT = 30.0

# RPC method names
METHOD_GET_INFO = "DriverGetInfo"
METHOD_CREATE_BUCKET = "DriverCreateBucket"
METHOD_DELETE_BUCKET = "DriverDeleteBucket"
METHOD_GRANT_BUCKET_ACCESS = "DriverGrantBucketAccess"
METHOD_REVOKE_BUCKET_ACCESS = "DriverRevokeBucketAccess"

# Log field keys
KEY_BUCKET_ID = "bucket_id"
KEY_BUCKET_REGION = "bucket_region"
KEY_BUCKET_LABEL = "bucket_label"
KEY_BUCKET_ACL = "bucket_acl"
KEY_BUCKET_CORS = "bucket_cors"
KEY_BUCKET_ACCESS_NAME = "bucket_access_name"
KEY_BUCKET_ACCESS_AUTH = "bucket_access_auth"
KEY_BUCKET_ACCESS_PERMISSIONS = "bucket_access_permissions"
KEY_BUCKET_ACCESS_ID = "bucket_access_id"
