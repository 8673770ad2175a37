"""Report generation: template download, image collection, merge and upload."""

import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from .docx_processor import WordTemplateProcessor
from .merge_values import IMAGE_EXTENSIONS, PDF_EXTENSION, MergeValue, classify_pdf_bytes
from .pdf_renderer import PdfPageRenderer
from .utils.exceptions import ConfigurationError, DocumentStoreError, ValidationError

logger = logging.getLogger(__name__)


def image_placeholder_key(file_name: str) -> str:
    """Build the ``img_<stem>`` placeholder name for a stored image file."""
    stem = os.path.splitext(os.path.basename(file_name))[0].lower()
    return "img_" + re.sub(r"[^a-z0-9_]", "_", stem)


def draft_report_path(
    base_path: str, project_number: str, drafts_folder: str, now: Optional[datetime] = None
) -> str:
    timestamp = (now or datetime.now()).strftime("%Y%m%d_%H%M")
    return f"{base_path.strip('/')}/{project_number}/{drafts_folder}/Draft_Report_{timestamp}.docx"


class ReportService:
    """Generates draft reports from the master template and stores them in SharePoint.

    ``store`` is any object with the :class:`~report_merger.graph_api_client.GraphAPIClient`
    file operations (``download_file``, ``upload_file``, ``list_files`` and
    ``ensure_folder_hierarchy``).
    """

    def __init__(
        self,
        store,
        config: Optional[Dict[str, Any]] = None,
        clock: Callable[[], datetime] = datetime.now,
        pdf_renderer: Optional[PdfPageRenderer] = None,
    ) -> None:
        self.store = store
        self.config = config or {}
        global_settings = self.config.get("global_settings", {})
        self.sharepoint_config = global_settings.get("sharepoint", {})
        self.clock = clock

        if pdf_renderer is None:
            pdf_settings = global_settings.get("pdf_rendering", {})
            pdf_renderer = PdfPageRenderer(
                dpi=pdf_settings.get("dpi", 300),
                max_width_px=pdf_settings.get("max_width_px", 2200),
                jpeg_quality=pdf_settings.get("jpeg_quality", 80),
            )
        self.pdf_renderer = pdf_renderer

    def _project_root(self, project_number: str) -> str:
        if not project_number or not str(project_number).strip():
            raise ValidationError("A project number is required")
        base_path = self.sharepoint_config.get("reports_base_path", "GeneratedReports")
        return f"{base_path.strip('/')}/{project_number}"

    def collect_report_images(self, project_number: str) -> Dict[str, Any]:
        """Download every image and PDF stored for a project, keyed by placeholder name.

        Folders are listed sequentially; downloads run in parallel. A failed
        download is logged and skipped. PDFs are rendered to page images.
        """
        project_root = self._project_root(project_number)
        image_paths: List[str] = []
        for folder in self.sharepoint_config.get("image_folders", []):
            for path in self.store.list_files(f"{project_root}/{folder}"):
                if path.lower().endswith(IMAGE_EXTENSIONS + (PDF_EXTENSION,)):
                    image_paths.append(path)
                else:
                    logger.debug(f"Ignoring non-image file {path}")

        if not image_paths:
            logger.info(f"No report images found for project {project_number}")
            return {}

        max_workers = self.sharepoint_config.get("max_concurrent_downloads", 5)
        images: Dict[str, Any] = {}

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(self.store.download_file, path): path
                for path in image_paths
            }
            for future in as_completed(futures):
                path = futures[future]
                try:
                    content = future.result()
                except DocumentStoreError as e:
                    logger.warning(f"⚠️ Skipping image {path}: {e}")
                    continue

                key = image_placeholder_key(path)
                if key in images:
                    logger.warning(f"Duplicate image key '{key}' from {path}, keeping first")
                    continue
                images[key] = self._to_merge_value(key, path, content)

        logger.info(f"Collected {len(images)} image(s) for project {project_number}")
        return images

    def _to_merge_value(self, key: str, path: str, content: bytes) -> Union[bytes, MergeValue]:
        if path.lower().endswith(PDF_EXTENSION):
            return classify_pdf_bytes(key, content, self.pdf_renderer)
        return content

    def generate_report(
        self,
        project_number: str,
        values: Dict[str, Any],
        template_path: Optional[str] = None,
    ) -> str:
        """Merge values and project images into the master template and upload the draft.

        Returns the web URL of the uploaded document.
        """
        template_path = template_path or self.sharepoint_config.get("master_template_path")
        if not template_path:
            raise ConfigurationError("Master template path is not configured")

        logger.info(f"Generating report for project {project_number}")

        template_bytes = self.store.download_file(template_path)
        if not template_bytes:
            raise DocumentStoreError(f"Template is empty in SharePoint: {template_path}")

        processor = WordTemplateProcessor(template_bytes, self.config, self.pdf_renderer)
        placeholders = processor.get_merge_fields()
        logger.info(f"Found {len(placeholders)} merge fields in template")

        merge_values = dict(values)
        merge_values.update(self.collect_report_images(project_number))

        result = processor.merge_data(merge_values)

        relative_path = draft_report_path(
            self.sharepoint_config.get("reports_base_path", "GeneratedReports"),
            project_number,
            self.sharepoint_config.get("drafts_folder_name", "Drafts"),
            self.clock(),
        )
        item = self.store.upload_file(relative_path, result.content)

        logger.info(f"✅ Uploaded generated report to SharePoint: {relative_path}")
        return item.get("webUrl", "")

    def ensure_report_folders(self, project_number: str) -> List[str]:
        """Create the drafts folder and every image folder for a project."""
        project_root = self._project_root(project_number)
        folders = [f"{project_root}/{self.sharepoint_config.get('drafts_folder_name', 'Drafts')}"]
        folders.extend(
            f"{project_root}/{folder}" for folder in self.sharepoint_config.get("image_folders", [])
        )

        for folder in folders:
            self.store.ensure_folder_hierarchy(folder)

        logger.info(f"Ensured {len(folders)} folders for project {project_number}")
        return folders
