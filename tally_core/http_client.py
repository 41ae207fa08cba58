"""
Shared requests session for the counter server.

Reads and target updates are retried by urllib3 on gateway errors. The
increment POST is not: it is not idempotent, so a lost response would be
counted twice. The reconciliation scheduler re-sends whatever is still
pending instead.
"""

import os

import certifi
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

IDEMPOTENT_METHODS = ("HEAD", "GET", "PATCH")

_retry_policy = Retry(
    total=3,
    backoff_factor=1,
    status_forcelist=[502, 503, 504],
    allowed_methods=list(IDEMPOTENT_METHODS),
)


def ca_bundle_path():
    """REQUESTS_CA_BUNDLE / SSL_CERT_FILE when it points at a file, else certifi's bundle."""
    for var in ("REQUESTS_CA_BUNDLE", "SSL_CERT_FILE"):
        path = os.environ.get(var)
        if path and os.path.isfile(path):
            return path
    return certifi.where()


def create_session():
    """One small pool: the UI worker and one sync worker at most."""
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=1, pool_maxsize=3, max_retries=_retry_policy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.verify = ca_bundle_path()
    return session


def reset_session(session):
    """Drop pooled connections after a crash and hand back a fresh session."""
    session.close()
    return create_session()


http = create_session()
