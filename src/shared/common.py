# S3, DynamoDB and parsing constants for the reading ingester

UPLOAD_DIR = "newTBP/"
PARSE_ERR_DIR = "newParseErr/"
PROCESSED_DIR = "newP/"

METRICS_NAMESPACE = "ReadingIngester"
SERVICE_NAME = "reading-ingester"

# Timestamp layouts used by the two row interpretation modes
PAIR_TIMESTAMP_FORMAT = "%m/%d/%y %H:%M:%S"
FIXED_INTERVAL_TIMESTAMP_FORMAT = "%m/%d/%Y %H:%M"

DEFAULT_INTERVAL_MINUTES = 60
DEFAULT_BATCH_SIZE = 25
DEFAULT_CHUNK_SIZE = 2048

# DynamoDB TransactWriteItems hard limit
MAX_TRANSACTION_ITEMS = 100
