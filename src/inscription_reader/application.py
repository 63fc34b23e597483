"""
Application Layer - Dependency Injection and Component Wiring

This module provides the InscriptionApplication class that handles:
- Dependency injection and component creation
- Wiring all MVC layers together (Models → Services → Controllers → Views)
- Batch and interactive runs
- Clean resource management
"""

import sys
import logging
from pathlib import Path
from typing import Iterable, Optional, TextIO, Union

import httpx
from PyQt5.QtCore import QCoreApplication

from inscription_reader.core.error_formatting import configure_error_logger
from inscription_reader.models import WorkflowState, WorkflowStateModel
from inscription_reader.services import (
    AppSettings, BackendClient, DocumentExporter, PreviewStore
)
from inscription_reader.controllers import SessionController
from inscription_reader.views import ConsoleView


class InscriptionApplication:
    """Main application class handling dependency injection and lifecycle.

    Services Layer (backend_client, preview_store, document_exporter)
        ↓
    Models Layer (workflow_state_model)
        ↓
    Controllers Layer (session_controller)
        ↓
    Views Layer (console_view)

    Example:
        app = InscriptionApplication(AppSettings())
        sys.exit(app.run_batch(["stone_1.jpg", "stone_2.jpg"]))
    """

    def __init__(self, settings: Optional[AppSettings] = None, stream: Optional[TextIO] = None,
                 transport: Optional[httpx.BaseTransport] = None, configure_logging: bool = True):
        """Initialize application with settings.

        Args:
            settings: Application settings (defaults if omitted)
            stream: Output stream for the console view
            transport: Optional httpx transport (used by tests)
            configure_logging: Whether the error logger also writes to log_dir
        """
        self.settings = settings or AppSettings()
        self.stream = stream or sys.stdout
        self._transport = transport
        self._configure_logging = configure_logging

        self.qt_app: Optional[QCoreApplication] = None

        # Services layer components
        self.backend_client: Optional[BackendClient] = None
        self.preview_store: Optional[PreviewStore] = None
        self.document_exporter: Optional[DocumentExporter] = None

        # Models layer components
        self.workflow_model: Optional[WorkflowStateModel] = None

        # Controllers layer components
        self.session_controller: Optional[SessionController] = None

        # Views layer components
        self.console_view: Optional[ConsoleView] = None

        self.logger = logging.getLogger(__name__)

    def setup_dependencies(self):
        """Create and wire all application components using dependency injection."""
        self.logger.info("Setting up application dependencies...")

        self.qt_app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])

        error_logger = configure_error_logger(self.settings.log_dir if self._configure_logging else None)

        # Services layer
        self.logger.debug("Creating services layer components...")
        self.backend_client = BackendClient(
            base_url=self.settings.backend_url,
            timeout=self.settings.timeout_seconds,
            transport=self._transport,
        )
        self.preview_store = PreviewStore()
        self.document_exporter = DocumentExporter(self.settings.download_dir)

        # Models layer
        self.logger.debug("Creating models layer components...")
        self.workflow_model = WorkflowStateModel(
            WorkflowState(parameters=self.settings.default_parameters)
        )

        # Controllers layer
        self.logger.debug("Creating controllers layer components...")
        self.session_controller = SessionController(
            self.backend_client,
            self.preview_store,
            self.document_exporter,
            model=self.workflow_model,
            mode=self.settings.session_mode,
            document_name=self.settings.document_name,
            single_shot_document_name=self.settings.single_shot_document_name,
            error_logger=error_logger,
        )

        # Views layer
        self.logger.debug("Creating views layer components...")
        self.console_view = ConsoleView(self.session_controller, self.stream)

        self.logger.info(
            f"Application ready: backend={self.settings.backend_url}, "
            f"mode={self.settings.session_mode.value}"
        )

    def apply_parameters(self, scale: Optional[int] = None, noise_divisor: Optional[float] = None) -> bool:
        """Override the slider values; None keeps the current value."""
        if scale is None and noise_divisor is None:
            return True
        current = self.session_controller.state.parameters
        success, _ = self.session_controller.set_parameters(
            scale if scale is not None else current.scale,
            noise_divisor if noise_divisor is not None else current.noise_divisor,
        )
        return success

    def run_batch(self, images: Iterable[Union[str, Path]], scale: Optional[int] = None,
                  noise_divisor: Optional[float] = None) -> int:
        """Translate ``images`` in order as one session and save the document.

        A failing image stops the batch; the session is still completed if at
        least one image was translated so the work done so far is saved.

        Returns:
            Exit code (0 = success, 1 = error)
        """
        if self.session_controller is None:
            self.setup_dependencies()
        controller = self.session_controller

        if not self.apply_parameters(scale, noise_divisor):
            return 1

        failed = False
        for image in images:
            for step in (lambda: controller.select_file(image), controller.preprocess, controller.translate):
                success, message = step()
                if not success:
                    self.logger.error(f"Stopping batch at {image}: {message}")
                    failed = True
                    break
                self.logger.debug(message)
            if failed:
                break

        if controller.state.image_count == 0:
            session_id = controller.state.session_id
            if session_id:
                # An empty session is not completed; that would save an empty document
                self.logger.warning(
                    f"No image was translated; backend session {session_id} is left open"
                )
            else:
                self.logger.warning("No image was translated; nothing to save")
            return 1

        success, message = controller.complete_session()
        self.stream.write(message + "\n")
        return 0 if success and not failed else 1

    def run_interactive(self, input_stream: Optional[TextIO] = None) -> int:
        """Read commands from ``input_stream`` until quit."""
        if self.session_controller is None:
            self.setup_dependencies()
        return self.console_view.run(input_stream)

    def shutdown(self):
        """Release previews and close the backend connection."""
        self.logger.info("Shutting down application...")
        if self.session_controller is not None:
            self.session_controller.shutdown()
        if self.preview_store is not None:
            self.preview_store.close()
        if self.backend_client is not None:
            self.backend_client.close()
