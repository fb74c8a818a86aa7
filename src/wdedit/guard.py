from . import config


class EditGuardPolicy:
    """Blocks knowledge-base edits when the upload flow flagged a location mismatch."""

    def __init__(self, preferences, key=config.PREF_LOCATION_MATCHES):
        self.preferences = preferences
        self.key = key

    def allow(self):
        return bool(self.preferences.get_boolean(self.key, True))
