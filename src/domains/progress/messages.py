# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Localized messages for learner-facing error codes."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("en", "fr")

MESSAGES: dict[str, dict[str, str]] = {
    "STUDENT_NOT_FOUND": {
        "en": "Student not found.",
        "fr": "Étudiant introuvable.",
    },
    "MODULE_NOT_FOUND": {
        "en": "Module not found.",
        "fr": "Module introuvable.",
    },
    "CHAPTER_NOT_FOUND": {
        "en": "Chapter not found.",
        "fr": "Chapitre introuvable.",
    },
    "QUIZ_GROUP_NOT_FOUND": {
        "en": "Quiz not found.",
        "fr": "Quiz introuvable.",
    },
    "NO_IN_PROGRESS_QUIZ_ATTEMPT_FOUND": {
        "en": "No quiz attempt in progress was found.",
        "fr": "Aucune tentative de quiz en cours n'a été trouvée.",
    },
    "ROLE_NOT_ALLOWED": {
        "en": "Your role does not allow this action.",
        "fr": "Votre rôle ne permet pas cette action.",
    },
    "CROSS_SCHOOL_ACCESS": {
        "en": "This student does not belong to your school.",
        "fr": "Cet étudiant n'appartient pas à votre établissement.",
    },
    "PREVIOUS_CHAPTER_INCOMPLETE": {
        "en": "Complete the previous chapter and its quiz first.",
        "fr": "Terminez d'abord le chapitre précédent et son quiz.",
    },
    "PREVIOUS_MODULE_INCOMPLETE": {
        "en": "Complete the previous module first.",
        "fr": "Terminez d'abord le module précédent.",
    },
    "MODULE_FUTURE_YEAR": {
        "en": "This module belongs to a later academic year.",
        "fr": "Ce module appartient à une année académique ultérieure.",
    },
    "CHAPTER_NOT_COMPLETED": {
        "en": "Complete the chapter before taking its quiz.",
        "fr": "Terminez le chapitre avant de passer son quiz.",
    },
    "MODULE_CHAPTERS_INCOMPLETE": {
        "en": "Complete every chapter and chapter quiz before the module quiz.",
        "fr": "Terminez tous les chapitres et leurs quiz avant le quiz du module.",
    },
    "ATTEMPT_ALREADY_COMPLETED": {
        "en": "This quiz attempt has already been submitted.",
        "fr": "Cette tentative de quiz a déjà été soumise.",
    },
    "MISSING_PARAMETER": {
        "en": "Missing required parameter: {parameter}.",
        "fr": "Paramètre obligatoire manquant : {parameter}.",
    },
    "TENANT_NOT_FOUND": {
        "en": "School not found.",
        "fr": "Établissement introuvable.",
    },
    "TENANT_UNAVAILABLE": {
        "en": "The school database is temporarily unavailable.",
        "fr": "La base de données de l'établissement est temporairement indisponible.",
    },
}


def normalize_language(language: str | None, default: str = "fr") -> str:
    """Reduce a language tag such as ``en-US`` to a supported language."""
    if language:
        primary = language.split("-")[0].split("_")[0].lower()
        if primary in SUPPORTED_LANGUAGES:
            return primary
    return default


def localize(key: str, language: str | None = None, **params: Any) -> str:
    """Get the message for a key in the requested language.

    Unknown keys fall back to the key itself.
    """
    translations = MESSAGES.get(key)
    if translations is None:
        logger.debug("No message registered for key %s", key)
        return key

    template = translations.get(normalize_language(language), translations["fr"])
    try:
        return template.format(**params)
    except KeyError:
        return template
