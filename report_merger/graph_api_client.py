"""Microsoft Graph API client for SharePoint report storage."""

import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

import requests

from .utils.exceptions import DocumentStoreError
from .utils.graph_api_error_handler import (
    GraphAPIErrorHandler,
    safe_graph_operation,
    validate_graph_response,
    with_retry,
)

logger = logging.getLogger(__name__)


class GraphAPIClient:
    """Client for SharePoint document library operations through Microsoft Graph.

    Paths are relative to the root of the site's default document library,
    e.g. ``GeneratedReports/P-1001/Drafts/report.docx``.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        tenant_id: str,
        site_url: str = "",
        max_retries: int = 3,
        timeout: int = 60,
        retry_delay: float = 1.0,
    ):
        """Initialize Graph API client with Azure app credentials and the SharePoint site."""
        self.client_id = client_id
        self.client_secret = client_secret
        self.tenant_id = tenant_id
        self.site_url = site_url
        self.access_token = None
        self.token_expires_at = 0
        self.base_url = "https://graph.microsoft.com/v1.0"
        self.timeout = timeout
        self.error_handler = GraphAPIErrorHandler(max_retries=max_retries, base_delay=retry_delay)

        self.current_site_id: Optional[str] = None
        self.current_drive_id: Optional[str] = None

    @with_retry()
    def authenticate(self) -> str:
        """Get access token using client credentials flow."""
        if self.access_token and time.time() < self.token_expires_at:
            return self.access_token

        token_url = (
            f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token"
        )

        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": "https://graph.microsoft.com/.default",
            "grant_type": "client_credentials",
        }

        with safe_graph_operation("authentication", self.error_handler):
            logger.info(f"🔐 Authenticating with tenant: {self.tenant_id}")

            response = requests.post(token_url, data=data, timeout=self.timeout)

            if not response.ok:
                try:
                    error_details = response.json()
                    logger.error(
                        f"❌ Authentication failed ({response.status_code}): "
                        f"{error_details.get('error', '')} {error_details.get('error_description', '')}"
                    )
                except ValueError:
                    logger.error(f"❌ Authentication failed ({response.status_code}): {response.text}")

            validate_graph_response(response, "authentication")

            token_data = response.json()
            self.access_token = token_data["access_token"]
            # Set expiry with 5 minute buffer
            self.token_expires_at = time.time() + token_data["expires_in"] - 300

            logger.info("✅ Authenticated with Microsoft Graph API")
            return self.access_token

    def _get_headers(self) -> Dict[str, str]:
        """Get request headers with authorization."""
        token = self.authenticate()
        return {"Authorization": f"Bearer {token}"}

    @with_retry()
    def resolve_drive(self, site_url: Optional[str] = None) -> str:
        """Resolve the default document library of a SharePoint site to its drive ID."""
        site_url = site_url or self.site_url
        if self.current_drive_id and site_url == self.site_url:
            return self.current_drive_id

        if not site_url:
            raise DocumentStoreError("SharePoint site URL is not configured")

        parsed = urlparse(site_url)
        if not parsed.scheme or not parsed.netloc:
            raise DocumentStoreError(f"Invalid SharePoint site URL format: {site_url}")

        site_path = parsed.path.rstrip("/")
        site_endpoint = f"{self.base_url}/sites/{parsed.netloc}:{quote(site_path)}"

        response = requests.get(site_endpoint, headers=self._get_headers(), timeout=self.timeout)
        validate_graph_response(response, "resolve site")
        site_id = response.json()["id"]

        response = requests.get(
            f"{self.base_url}/sites/{site_id}/drives",
            headers=self._get_headers(),
            timeout=self.timeout,
        )
        validate_graph_response(response, "list drives")
        drives = response.json().get("value", [])
        if not drives:
            raise DocumentStoreError(f"No document library found for site: {site_url}")

        drive = next(
            (d for d in drives if d.get("driveType") == "documentLibrary"), drives[0]
        )

        self.site_url = site_url
        self.current_site_id = site_id
        self.current_drive_id = drive["id"]
        logger.info(f"Resolved SharePoint site '{site_path}' to drive ID: {self.current_drive_id}")
        return self.current_drive_id

    def _item_url(self, relative_path: str, suffix: str = "") -> str:
        drive_id = self.resolve_drive()
        encoded_path = quote(relative_path.strip("/"))
        if suffix:
            return f"{self.base_url}/drives/{drive_id}/root:/{encoded_path}:{suffix}"
        return f"{self.base_url}/drives/{drive_id}/root:/{encoded_path}"

    @with_retry()
    def get_item(self, relative_path: str) -> Optional[Dict[str, Any]]:
        """Return drive item metadata for a path, or None when it does not exist."""
        response = requests.get(
            self._item_url(relative_path), headers=self._get_headers(), timeout=self.timeout
        )
        if response.status_code == 404:
            return None
        validate_graph_response(response, f"get item '{relative_path}'")
        return response.json()

    @with_retry()
    def download_file(self, relative_path: str) -> bytes:
        """Download a file from the document library into memory."""
        if not relative_path or not relative_path.strip("/"):
            raise DocumentStoreError("A relative file path must be provided")

        response = requests.get(
            self._item_url(relative_path, "/content"),
            headers=self._get_headers(),
            timeout=self.timeout,
        )
        if response.status_code == 404:
            raise DocumentStoreError(
                f"File not found in SharePoint: {relative_path}", "FILE_NOT_FOUND"
            )
        validate_graph_response(response, f"download '{relative_path}'")

        logger.info(f"Downloaded '{relative_path}' from SharePoint: {len(response.content)} bytes")
        return response.content

    @with_retry()
    def upload_file(self, relative_path: str, content: bytes) -> Dict[str, Any]:
        """Upload content to a path, creating parent folders, and return the drive item."""
        if not relative_path or not relative_path.strip("/"):
            raise DocumentStoreError("A relative file path must be provided")

        self.ensure_folder_hierarchy(relative_path, is_file_path=True)

        headers = self._get_headers()
        headers["Content-Type"] = "application/octet-stream"
        response = requests.put(
            self._item_url(relative_path, "/content"),
            headers=headers,
            data=content,
            timeout=self.timeout,
        )
        validate_graph_response(response, f"upload '{relative_path}'")

        item = response.json()
        logger.info(f"📤 Uploaded file to SharePoint: {item.get('webUrl')}")
        return item

    def ensure_folder_hierarchy(self, relative_path: str, is_file_path: bool = False) -> None:
        """Create every missing folder along ``relative_path``.

        With ``is_file_path`` the last segment is treated as a file name and
        not created.
        """
        parts = [part for part in relative_path.split("/") if part]
        if not parts:
            logger.warning(f"No valid folder parts found for path: {relative_path}")
            return

        last_index = len(parts) - 1 if is_file_path else len(parts)
        current_path = ""

        for part in parts[:last_index]:
            parent_path = current_path
            current_path = f"{current_path}/{part}" if current_path else part

            if self.get_item(current_path) is None:
                self._create_folder(parent_path, part)

        logger.debug(f"Ensured folder hierarchy: {relative_path}")

    @with_retry()
    def _create_folder(self, parent_path: str, name: str) -> None:
        drive_id = self.resolve_drive()
        if parent_path:
            children_url = self._item_url(parent_path, "/children")
        else:
            children_url = f"{self.base_url}/drives/{drive_id}/root/children"

        headers = self._get_headers()
        headers["Content-Type"] = "application/json"
        body = {
            "name": name,
            "folder": {},
            "@microsoft.graph.conflictBehavior": "fail",
        }

        response = requests.post(children_url, headers=headers, json=body, timeout=self.timeout)
        if response.status_code == 409:
            # Created concurrently by another request
            logger.debug(f"Folder already exists: {parent_path}/{name}")
            return
        validate_graph_response(response, f"create folder '{name}'")
        logger.info(f"📁 Created SharePoint folder: {parent_path}/{name}".replace("//", "/"))

    @with_retry()
    def list_files(self, folder_path: str) -> List[str]:
        """List the relative paths of files (not folders) directly inside a folder.

        A missing folder yields an empty list.
        """
        folder = self.get_item(folder_path)
        if folder is None:
            logger.warning(f"Folder does not exist: {folder_path}")
            return []

        drive_id = self.resolve_drive()
        url = f"{self.base_url}/drives/{drive_id}/items/{folder['id']}/children"
        files = []

        while url:
            response = requests.get(url, headers=self._get_headers(), timeout=self.timeout)
            validate_graph_response(response, f"list '{folder_path}'")
            data = response.json()

            for item in data.get("value", []):
                if "file" in item and item.get("name"):
                    files.append(f"{folder_path.rstrip('/')}/{item['name']}")

            url = data.get("@odata.nextLink")

        logger.debug(f"Found {len(files)} files in {folder_path}")
        return files
