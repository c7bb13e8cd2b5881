from __future__ import annotations

import concurrent.futures
from contextlib import contextmanager
from typing import Iterator

from google.api_core import exceptions as gexc
from google.cloud import firestore

from billing.errors import StoreReadFailure, StoreTimeout, StoreWriteFailure
from config.settings import Settings


def get_firestore_client(cfg: Settings) -> firestore.Client:
    # If FIRESTORE_PROJECT_ID is empty, the library will use ADC default project.
    if cfg.FIRESTORE_PROJECT_ID:
        return firestore.Client(project=cfg.FIRESTORE_PROJECT_ID)
    return firestore.Client()


@contextmanager
def store_call(op: str, write: bool = False) -> Iterator[None]:
    """Translate Firestore client errors into the store error taxonomy."""
    try:
        yield
    except (gexc.DeadlineExceeded, gexc.RetryError, concurrent.futures.TimeoutError) as e:
        raise StoreTimeout(op, str(e)) from e
    except gexc.GoogleAPIError as e:
        if write:
            raise StoreWriteFailure(op, str(e)) from e
        raise StoreReadFailure(op, str(e)) from e
