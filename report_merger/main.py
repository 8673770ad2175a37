"""Main API handler with Flask, click CLI and Google Cloud Function support."""

import base64
import binascii
import io
import json
import logging
import os
import traceback
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union

import click
from flask import Flask, jsonify, request, send_file
from werkzeug.exceptions import RequestEntityTooLarge

from . import __version__
from .config_manager import ConfigManager
from .docx_processor import WordTemplateProcessor
from .excel_processor import ExcelProcessor
from .graph_api_client import GraphAPIClient
from .graph_api_config import get_graph_api_credentials, load_graph_api_config
from .merge_values import PDF_EXTENSION, TextValue, classify_pdf_bytes
from .report_service import ReportService
from .utils.exceptions import (
    AuthenticationError,
    ConfigurationError,
    FileProcessingError,
    ReportMergerError,
    ValidationError,
)
from .utils.validation import sanitize_filename, validate_merge_request

DOCX_MIMETYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

logger = logging.getLogger(__name__)

# Initialize components
config_manager = ConfigManager()
app_config = config_manager.get_app_config()

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = app_config["max_file_size_mb"] * 1024 * 1024


def setup_logging() -> None:
    """Setup logging configuration."""
    log_level = app_config.get("log_level", "INFO").upper()
    verbose_logging = os.environ.get("VERBOSE_LOGGING", "true").lower() == "true"

    # If verbose logging is disabled, increase the default log level
    if not verbose_logging and log_level in ["DEBUG", "INFO"]:
        log_level = "WARNING"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    if not root_logger.handlers:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if not verbose_logging:
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
        logging.getLogger("PIL").setLevel(logging.WARNING)


def authenticate_request() -> bool:
    """Authenticate API request."""
    if app_config.get("development_mode", False):
        logger.debug("Authentication bypassed in development mode")
        return True

    api_key = app_config.get("api_key")
    if not api_key:
        return True  # No authentication required if no key configured

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        return token == api_key

    request_key = request.args.get("api_key") or request.form.get("api_key")
    return request_key == api_key


def create_error_response(
    error: Exception, status_code: int = 500
) -> Tuple[Dict[str, Any], int]:
    """Create standardized error response."""
    error_response = {
        "success": False,
        "error": {
            "type": type(error).__name__,
            "message": str(error),
            "code": status_code,
        },
    }

    if getattr(error, "error_code", None):
        error_response["error"]["error_code"] = error.error_code

    if app_config.get("development_mode", False):
        error_response["error"]["traceback"] = traceback.format_exc()

    logger.error(f"API Error ({status_code}): {error}")
    return error_response, status_code


def _status_for(error: Exception) -> int:
    if isinstance(error, AuthenticationError):
        return 401
    if isinstance(error, (ValidationError, FileProcessingError)):
        return 400
    return 500


@app.errorhandler(RequestEntityTooLarge)
def handle_file_too_large(error):
    """Handle file size too large error."""
    content_length = request.headers.get("Content-Length", "Unknown")
    logger.error(f"413 Error - Request too large: {request.path} ({content_length} bytes)")
    return create_error_response(
        ValidationError(
            f"Request size exceeds maximum allowed size of {app_config['max_file_size_mb']}MB"
        ),
        413,
    )


@app.before_request
def before_request():
    """Pre-request authentication."""
    if request.endpoint == "health":
        return None

    if not authenticate_request():
        error_response, status_code = create_error_response(
            AuthenticationError("Invalid API key"), 401
        )
        return jsonify(error_response), status_code

    return None


def _decode_base64(field_name: str, data: str) -> bytes:
    if "," in data and data.startswith("data:"):
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Field '{field_name}' is not valid base64: {e}")


def _parse_json_field(raw: Optional[str], field_name: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in '{field_name}': {e}")
    if not isinstance(parsed, dict):
        raise ValidationError(f"'{field_name}' must be a JSON object")
    return parsed


def _text_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """Treat request strings as literal text, never as server file paths."""
    return {
        name: TextValue(value) if isinstance(value, str) else value
        for name, value in values.items()
    }


def _uploaded_value(field_name: str, filename: str, content: bytes):
    if filename and filename.lower().endswith(PDF_EXTENSION):
        return classify_pdf_bytes(field_name, content)
    return content


def parse_merge_request() -> Tuple[bytes, str, Dict[str, Any], Dict[str, Any]]:
    """Read template bytes, file name, merge values and config from the request.

    Multipart requests carry a ``template`` file, a ``values`` JSON field and
    any number of extra files, each becoming the value of the field it was
    uploaded under. JSON requests carry a base64 ``template`` and base64
    ``images``.
    """
    if request.is_json:
        payload = request.get_json(silent=True)
        validate_merge_request(payload)

        template_bytes = _decode_base64("template", payload["template"])
        values = _text_values(payload.get("values", {}))
        for name, data in payload.get("images", {}).items():
            values[name] = _decode_base64(name, data)

        config = payload.get("config") or config_manager.get_default_config()
        filename = payload.get("filename", "template.docx")
        return template_bytes, filename, values, config

    if "template" not in request.files:
        raise ValidationError("A 'template' .docx file is required")

    template_file = request.files["template"]
    template_bytes = template_file.read()
    values = _text_values(_parse_json_field(request.form.get("values"), "values"))

    for field_name, uploaded in request.files.items():
        if field_name == "template":
            continue
        values[field_name] = _uploaded_value(field_name, uploaded.filename, uploaded.read())

    config = _parse_json_field(request.form.get("config"), "config")
    if not config:
        config = config_manager.get_default_config()
    return template_bytes, template_file.filename or "template.docx", values, config


@app.route("/api/v1/health", methods=["GET"])
def health() -> Tuple[Dict[str, Any], int]:
    """Health check endpoint."""
    health_info = {
        "success": True,
        "status": "healthy",
        "version": __version__,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "services": {
            "config_manager": True,
            "graph_api": load_graph_api_config().validate_config()[0],
        },
        "features": {
            "bullet_lists": True,
            "pdf_pages": True,
            "debug_mode": app_config.get("development_mode", False),
        },
    }
    return health_info, 200


@app.route("/api/v1/merge", methods=["POST"])
def merge_document() -> Union[Tuple[Dict[str, Any], int], Any]:
    """Merge values into a Word template and return the merged document."""
    logger.info(f"🚀 Merge request received - Content-Type: {request.content_type}")

    try:
        template_bytes, filename, values, config = parse_merge_request()

        processor = WordTemplateProcessor(template_bytes, config)
        result = processor.merge_data(values)

        output_name = f"merged_{sanitize_filename(os.path.basename(filename))}"
        response = send_file(
            io.BytesIO(result.content),
            mimetype=DOCX_MIMETYPE,
            as_attachment=True,
            download_name=output_name,
        )
        response.headers["X-Merge-Diagnostics"] = json.dumps(result.diagnostics.to_dict())
        return response

    except Exception as e:
        return create_error_response(e, _status_for(e))


@app.route("/api/v1/placeholders", methods=["POST"])
def list_placeholders() -> Tuple[Dict[str, Any], int]:
    """List the placeholders found in a Word template."""
    try:
        if request.is_json:
            payload = request.get_json(silent=True) or {}
            if "template" not in payload:
                raise ValidationError("A template (base64 encoded .docx) is required")
            template_bytes = _decode_base64("template", payload["template"])
        elif "template" in request.files:
            template_bytes = request.files["template"].read()
        else:
            raise ValidationError("A 'template' .docx file is required")

        processor = WordTemplateProcessor(template_bytes)
        template_info = processor.validate_template()

        return {
            "success": True,
            "placeholders": template_info["merge_fields"],
            "template_info": template_info,
        }, 200

    except Exception as e:
        return create_error_response(e, _status_for(e))


@app.route("/api/v1/preview", methods=["POST"])
def preview_merge() -> Tuple[Dict[str, Any], int]:
    """Preview how values map onto template placeholders without merging."""
    try:
        template_bytes, _, values, config = parse_merge_request()
        processor = WordTemplateProcessor(template_bytes, config)
        return {"success": True, "preview": processor.preview_merge(values)}, 200

    except Exception as e:
        return create_error_response(e, _status_for(e))


@app.route("/api/v1/extract", methods=["POST"])
def extract_excel_values() -> Tuple[Dict[str, Any], int]:
    """Extract structure merge values from a hydraulics summary workbook."""
    excel_processor = None
    try:
        if "excel_file" not in request.files:
            raise ValidationError("An 'excel_file' upload is required")

        excel_processor = ExcelProcessor(request.files["excel_file"].read())
        values = excel_processor.to_merge_values(request.form.get("sheet_name") or None)
        return {"success": True, "values": values}, 200

    except Exception as e:
        return create_error_response(e, _status_for(e))
    finally:
        if excel_processor is not None:
            excel_processor.close()


def build_report_service(config: Optional[Dict[str, Any]] = None) -> ReportService:
    """Create a report service backed by the configured SharePoint site."""
    config = config or config_manager.load_config()
    sharepoint_config = config.get("global_settings", {}).get("sharepoint", {})

    credentials = get_graph_api_credentials()
    if not credentials:
        raise ConfigurationError("Graph API credentials are not configured")

    graph_settings = load_graph_api_config().get_settings()
    client = GraphAPIClient(
        credentials["client_id"],
        credentials["client_secret"],
        credentials["tenant_id"],
        site_url=sharepoint_config.get("site_url", ""),
        max_retries=graph_settings["retry_attempts"],
        timeout=graph_settings["timeout"],
        retry_delay=graph_settings["retry_delay"],
    )
    return ReportService(client, config)


@app.route("/api/v1/reports/generate", methods=["POST"])
def generate_report() -> Tuple[Dict[str, Any], int]:
    """Generate a draft report in SharePoint for a project."""
    try:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict) or not payload.get("project_number"):
            raise ValidationError("A JSON body with 'project_number' is required")

        values = payload.get("values", {})
        if not isinstance(values, dict):
            raise ValidationError("Values must be a JSON object")

        service = build_report_service()
        web_url = service.generate_report(
            payload["project_number"], _text_values(values), payload.get("template_path")
        )
        return {"success": True, "web_url": web_url}, 200

    except Exception as e:
        return create_error_response(e, _status_for(e))


def report_merger_handler(cloud_request):
    """Google Cloud Function entry point: dispatch through the Flask routes."""
    setup_logging()
    logger.info(f"🌐 Cloud Function Request: {cloud_request.method} {cloud_request.path}")

    with app.request_context(cloud_request.environ):
        return app.full_dispatch_request()


# CLI interface
@click.group()
def cli():
    """Word template merge CLI."""
    setup_logging()


@cli.command("merge")
@click.option(
    "--template",
    "-t",
    required=True,
    type=click.Path(exists=True),
    help="Path to Word template",
)
@click.option(
    "--values-file",
    "-v",
    required=True,
    type=click.Path(exists=True),
    help="Path to JSON file with merge values",
)
@click.option("--output-file", "-o", required=False, help="Output file name")
@click.option(
    "--config-file",
    "-c",
    required=False,
    type=click.Path(exists=True),
    help="Path to configuration JSON file",
)
def merge_cli(template, values_file, output_file=None, config_file=None):
    """Merge JSON values into a Word template.

    String values ending in an image or PDF extension are read as files.
    """
    try:
        with open(values_file, "r", encoding="utf-8") as f:
            values = json.load(f)

        if config_file:
            with open(config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
        else:
            config = config_manager.get_default_config()

        with open(template, "rb") as f:
            template_bytes = f.read()

        result = WordTemplateProcessor(template_bytes, config).merge_data(values)

        output_file = output_file or f"merged_{os.path.basename(template)}"
        with open(output_file, "wb") as f:
            f.write(result.content)

        click.echo(f"Successfully merged data into Word template: {output_file}")
        if result.diagnostics.has_issues:
            click.echo(json.dumps(result.diagnostics.to_dict(), indent=2), err=True)

    except (ReportMergerError, OSError, json.JSONDecodeError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


@cli.command("placeholders")
@click.option(
    "--template",
    "-t",
    required=True,
    type=click.Path(exists=True),
    help="Path to Word template",
)
@click.option("--pretty", is_flag=True, help="Pretty print JSON output")
def placeholders_cli(template: str, pretty: bool = False) -> None:
    """List the placeholders of a Word template."""
    try:
        with open(template, "rb") as f:
            template_info = WordTemplateProcessor(f.read()).validate_template()
    except (ReportMergerError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(json.dumps(template_info, indent=2 if pretty else None, ensure_ascii=False))


@cli.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--debug", is_flag=True, help="Enable debug mode")
def serve(host: Optional[str], port: Optional[int], debug: bool) -> None:
    """Start the Flask development server."""
    flask_config = app_config["flask_config"]
    host = host or flask_config["host"]
    port = port or flask_config["port"]

    logger.info(f"Starting report merger server on {host}:{port}")
    app.run(
        host=host,
        port=port,
        debug=debug or flask_config["debug"] or app_config.get("development_mode", False),
    )


if __name__ == "__main__":
    cli()
