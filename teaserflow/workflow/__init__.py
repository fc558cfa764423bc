"""Workflow package.

This package groups the step views that make up the teaser workflow (website
lookup, file upload, company confirmation, teaser editing, export) and the
controller that sequences them. Each view talks to the remote service through
``ApiClient`` and shares state with the others only through ``SessionStore``.
"""

from .controller import WorkflowController  # noqa: F401
from .editor import TeaserEditor  # noqa: F401
from .export import ExportCoordinator  # noqa: F401
from .outcome import Outcome  # noqa: F401
from .steps import Step  # noqa: F401
from .upload import UploadCoordinator  # noqa: F401
