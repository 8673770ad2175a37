"""Custom exceptions for the report merger."""

from typing import Optional


class ReportMergerError(Exception):
    """Base exception for report merger operations."""

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class FileProcessingError(ReportMergerError):
    """Exception raised for file processing errors."""

    pass


class ExcelProcessingError(FileProcessingError):
    """Exception raised for Excel file processing errors."""

    pass


class PdfConversionError(FileProcessingError):
    """Exception raised when a PDF cannot be rendered to page images."""

    pass


class DocumentProcessingError(FileProcessingError):
    """Exception raised for Word document processing errors."""

    pass


class TemplateError(DocumentProcessingError):
    """Exception raised for template loading and structure errors."""

    pass


class ImageProcessingError(DocumentProcessingError):
    """Exception raised when supplied image bytes cannot be decoded or embedded."""

    pass


class NumberingError(DocumentProcessingError):
    """Exception raised when the numbering definitions cannot be read safely."""

    pass


class ConfigurationError(ReportMergerError):
    """Exception raised for configuration-related errors."""

    pass


class ValidationError(ReportMergerError):
    """Exception raised for validation errors."""

    pass


class APIError(ReportMergerError):
    """Exception raised for API-related errors."""

    pass


class AuthenticationError(APIError):
    """Exception raised for authentication errors."""

    pass


class ExternalServiceError(ReportMergerError):
    """Exception raised for external service errors."""

    pass


class DocumentStoreError(ExternalServiceError):
    """Exception raised for SharePoint document store errors."""

    pass
