"""Classification pipeline error taxonomy.

Every pipeline stage raises a subclass of :class:`ClassifyError`. Serving
surfaces catch the base class and translate it into a client-visible
failure; only :class:`ModelLoadError` is meant to stop the process.
"""

from __future__ import annotations


class ClassifyError(Exception):
    """Base class for all classification failures."""


class ModelLoadError(ClassifyError):
    """The export directory does not hold a loadable model."""


class FetchError(ClassifyError):
    """The image could not be fetched from its URL."""


class InvalidImageError(ClassifyError):
    """The bytes do not form a decodable image."""


class InferenceError(ClassifyError):
    """A graph node is missing or the forward pass failed."""


class LabelLookupError(ClassifyError):
    """The winning class index has no label."""


class LabelFileNotFoundError(LabelLookupError):
    """The tags file could not be opened."""


class LabelIndexError(LabelLookupError):
    """The requested index is outside the label list."""
