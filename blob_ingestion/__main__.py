import sys

from blob_ingestion.backfill_job import main

if __name__ == "__main__":
    sys.exit(main())
