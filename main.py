"""Cloud Functions entry point for the report merger."""

import functions_framework

from report_merger.main import report_merger_handler


@functions_framework.http
def report_merger(request):
    """Cloud Function entry point, served by the Flask routes."""
    return report_merger_handler(request)
