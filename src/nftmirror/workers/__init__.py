"""Background workers.

Workers:
    - EventIngestionWorker: polls chain logs and feeds them to the projector
"""

from nftmirror.workers.event_ingestion_worker import EventIngestionWorker

__all__ = ["EventIngestionWorker"]
