"""
Best-effort upload of confirmed detections to a reporting server.

Nothing here is required to record evidence: the vault works fully offline
and records simply stay queued (syncStatus PENDING or FAILED) until a drain
succeeds.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import requests

from utils.constants import SYNC_BATCH_LIMIT, SYNC_UPLOAD_PATH
from utils.logging import sync_logger as logger
from utils.skimguard.custody import EXPORTABLE_STATUSES, CustodyAuthority
from utils.skimguard.models import DetectionStatus
from utils.skimguard.vault import EvidenceVault


class SyncHTTPError(RuntimeError):
    """Exception raised when the sync server rejects a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SyncConnectionError(SyncHTTPError):
    """Exception raised when the sync server is unreachable."""
    pass


class SyncClient:
    """HTTP client for the detection reporting server."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0
    ):
        """
        Initialize sync client.

        Args:
            base_url: Base URL of the server (e.g., https://reports.example.org/api)
            api_key: Optional API key for authentication
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['X-API-Key'] = self.api_key
        return headers

    def _request(self, method: str, path: str, data: dict | None = None) -> dict:
        """
        Perform a request against the server.

        Raises:
            SyncHTTPError: On HTTP errors
            SyncConnectionError: If the server is unreachable
        """
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(
                method,
                url,
                json=data,
                headers=self._headers(),
                timeout=self.timeout
            )
            response.raise_for_status()
            return response.json() if response.content else {}
        except requests.ConnectionError as e:
            raise SyncConnectionError(f"Cannot connect to sync server at {self.base_url}: {e}")
        except requests.Timeout:
            raise SyncConnectionError(f"Request to sync server timed out after {self.timeout}s")
        except requests.HTTPError as e:
            raise SyncHTTPError(
                f"Sync server returned error: {e.response.status_code}",
                status_code=e.response.status_code
            )
        except (requests.RequestException, ValueError) as e:
            raise SyncHTTPError(f"Request failed: {e}")

    def upload_detection(self, disclosure: dict) -> dict:
        """Upload one sanitized detection."""
        return self._request('POST', SYNC_UPLOAD_PATH, disclosure)

    def health_check(self) -> bool:
        """True if the server is reachable and healthy."""
        try:
            result = self._request('GET', '/health')
            return result.get('status') == 'healthy'
        except SyncHTTPError:
            return False


@dataclass
class SyncResult:
    """Outcome of one drain of the sync queue."""
    uploaded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    requeued: list[str] = field(default_factory=list)
    withheld: int = 0
    corrupted: int = 0
    aborted: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            'uploaded': len(self.uploaded),
            'failed': len(self.failed),
            'requeued': len(self.requeued),
            'withheld': self.withheld,
            'corrupted': self.corrupted,
            'aborted': self.aborted,
            'error': self.error,
        }


def sync_pending_records(
    vault: EvidenceVault,
    authority: CustodyAuthority,
    client: SyncClient,
    limit: int = SYNC_BATCH_LIMIT
) -> SyncResult:
    """
    Drain queued records to the sync server, oldest first.

    Only records cleared for export are selected and uploaded, in sanitized
    form; the rest stay queued and are reported as withheld. A connection
    failure stops the drain. A record rewritten while its upload was in
    flight stays queued for the next drain.
    """
    result = SyncResult()
    result.withheld = vault.count_pending_sync(
        [s for s in DetectionStatus if s not in EXPORTABLE_STATUSES]
    )

    for entry in vault.pending_sync(limit=limit, statuses=EXPORTABLE_STATUSES):
        record = entry.record
        if record is None:
            result.corrupted += 1
            continue
        if not authority.authorize_export(record):
            result.withheld += 1
            continue

        try:
            client.upload_detection(authority.sanitize_for_disclosure(record))
        except SyncConnectionError as e:
            vault.mark_sync_failed(record.id, entry.revision)
            result.failed.append(record.id)
            result.aborted = True
            result.error = str(e)
            logger.warning(f"Sync stopped: {e}")
            break
        except SyncHTTPError as e:
            vault.mark_sync_failed(record.id, entry.revision)
            result.failed.append(record.id)
            result.error = str(e)
            logger.warning(f"Upload of {record.id} failed: {e}")
            continue

        if vault.mark_synced(record.id, entry.revision):
            result.uploaded.append(record.id)
        else:
            result.requeued.append(record.id)
            logger.info(f"Record {record.id} changed during upload, left queued")

    logger.info(
        f"Sync finished: {len(result.uploaded)} uploaded, {len(result.failed)} failed, "
        f"{result.withheld} withheld"
    )
    return result
