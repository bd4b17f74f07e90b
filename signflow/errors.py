"""errors.py – Exception types raised across the SignFlow pipeline."""

from __future__ import annotations


class SignFlowError(Exception):
    """Base class for all pipeline errors."""


class TrackerInitializationError(SignFlowError):
    """The hand-tracking collaborator could not be constructed.

    Fatal to :meth:`signflow.pipeline.SignPipeline.start`; the pipeline
    cannot run without a tracker.
    """


class FrameSourceError(SignFlowError):
    """The camera / frame source could not be opened."""


class LanguageModelUnavailable(SignFlowError):
    """No semantic-analysis backend is loaded (no credential or model)."""
