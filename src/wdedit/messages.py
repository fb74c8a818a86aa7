from . import config

# Localized user-facing strings, printf-style placeholders
MESSAGES = {
    "en": {
        config.MESSAGE_EDIT_FAILURE: "Failed to update Wikidata item",
        config.MESSAGE_EDIT_SUCCESS: "Image successfully added to %s on Wikidata!",
    },
    "fr": {
        config.MESSAGE_EDIT_FAILURE: "Échec de la mise à jour de l’élément Wikidata",
        config.MESSAGE_EDIT_SUCCESS: "Image ajoutée avec succès à %s sur Wikidata !",
    },
    "de": {
        config.MESSAGE_EDIT_FAILURE: "Aktualisierung des Wikidata-Objekts fehlgeschlagen",
        config.MESSAGE_EDIT_SUCCESS: "Bild erfolgreich zu %s auf Wikidata hinzugefügt!",
    },
    "es": {
        config.MESSAGE_EDIT_FAILURE: "No se pudo actualizar el elemento de Wikidata",
        config.MESSAGE_EDIT_SUCCESS: "¡Imagen añadida correctamente a %s en Wikidata!",
    },
}


def render(message_key, *args, locale=config.DEFAULT_LOCALE):
    """Format a message for a locale, falling back to English and then to the key."""
    catalog = MESSAGES.get(locale) or MESSAGES[config.DEFAULT_LOCALE]
    template = catalog.get(message_key) or MESSAGES[config.DEFAULT_LOCALE].get(message_key)
    if template is None:
        return message_key
    if not args:
        return template
    try:
        return template % args
    except (TypeError, ValueError):
        return template
