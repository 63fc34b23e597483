"""
Services for Inscription Reader.

This package contains the recognition service client, settings loading,
preview resource management and document delivery.
"""

from .backend_client import BackendClient, PreprocessResult, ContinuousTranslation
from .configuration_service import AppSettings, ConfigurationService
from .document_export import DocumentExporter, decode_lines
from .preview_store import PreviewStore

__all__ = [
    'BackendClient',
    'PreprocessResult',
    'ContinuousTranslation',
    'AppSettings',
    'ConfigurationService',
    'DocumentExporter',
    'decode_lines',
    'PreviewStore',
]
