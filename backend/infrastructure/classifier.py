"""Category classifier integration hooks.

The session service never looks inside a classifier.  It only needs
``classify(document)`` to return a category label, a confidence in [0, 1] and
diagnostic metadata.  The keyword detector is installed by default; tests and
alternative deployments swap it through ``configure_classifier``.
"""
from __future__ import annotations

from typing import Protocol

from backend.domain import SpreadsheetDocument
from backend.extractors import detect
from backend.extractors.detect import ClassificationResult


class CategoryClassifier(Protocol):
    """Contract for category classifiers."""

    def classify(self, document: SpreadsheetDocument) -> ClassificationResult:
        """Return the category decision for a parsed workbook."""


class KeywordCategoryClassifier:
    """Default classifier backed by the keyword tables in ``rules.yaml``."""

    def classify(self, document: SpreadsheetDocument) -> ClassificationResult:
        return detect.classify(document)


_classifier: CategoryClassifier = KeywordCategoryClassifier()


def configure_classifier(classifier: CategoryClassifier) -> None:
    """Install the classifier used for new uploads."""

    global _classifier
    _classifier = classifier


def get_classifier() -> CategoryClassifier:
    """Return the currently configured classifier."""

    return _classifier


def reset_classifier() -> None:
    configure_classifier(KeywordCategoryClassifier())
