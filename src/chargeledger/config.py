import os

from dotenv import load_dotenv

load_dotenv()

DB_PATH = os.getenv("CHARGELEDGER_DB", "chargeledger.db")
LOG_LEVEL = os.getenv("CHARGELEDGER_LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("CHARGELEDGER_LOG_FILE", "chargeledger.log")
SYNC_INTERVAL_SECS = int(os.getenv("CHARGELEDGER_SYNC_INTERVAL", "3600"))
METRICS_PORT = int(os.getenv("CHARGELEDGER_METRICS_PORT", "0")) or None
FLUENTD_ENDPOINT = os.getenv("CHARGELEDGER_FLUENTD_ENDPOINT") or None
FLUENTD_TAG = os.getenv("CHARGELEDGER_FLUENTD_TAG", "chargeledger")

# Response size ceiling for the transactions-in-error listing
TRANSACTIONS_IN_ERROR_MAX_RESULTS = 100
DB_RECORD_COUNT_DEFAULT = 100
DB_RECORD_COUNT_MAX = 1000
EXPORT_PAGE_SIZE = 1000
CSV_SEPARATOR = ","
