"""Cell-level record validators."""

from .base import RuleFinding, ValidatorDescriptor, ValidatorFn, ValidatorRegistry
from .dates import DateFormatValidator
from .english import EnglishAlphabetValidator
from .institutions import InstitutionNameValidator
from .keywords import ProhibitedKeywordValidator
from .spacing import SpacingValidator


def build_default_registry() -> ValidatorRegistry:
    registry = ValidatorRegistry()
    registry.register("spacing", SpacingValidator())
    registry.register("english_alphabet", EnglishAlphabetValidator())
    registry.register(
        "prohibited_keyword",
        ProhibitedKeywordValidator(),
        categories=("subject_details", "creative_activities", "behavior_opinion"),
    )
    registry.register(
        "institution_name",
        InstitutionNameValidator(),
        categories=("creative_activities", "subject_details"),
    )
    registry.register("date_format", DateFormatValidator(), categories=("attendance", "awards"))
    return registry


__all__ = [
    "DateFormatValidator",
    "EnglishAlphabetValidator",
    "InstitutionNameValidator",
    "ProhibitedKeywordValidator",
    "RuleFinding",
    "SpacingValidator",
    "ValidatorDescriptor",
    "ValidatorFn",
    "ValidatorRegistry",
    "build_default_registry",
]
