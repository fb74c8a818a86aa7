"""
Knowledge-base edits that follow a successful upload.

``annotate`` fans out into three chains once its synchronous preconditions
pass:

* A: P18 claim on the subject entity, then a provenance tag on that revision.
  The only chain whose outcome reaches the user.
* B: P180 relation from the file entity to the subject entity.
* C: one label per (language, text) pair on the file entity.

B and C share a single file-entity-id resolution. All remote calls run on
the dispatcher's worker pool; every notifier call runs on its foreground thread.
"""

import logging

from . import config
from .results import DEPENDENCY_UNRESOLVED, EditResult
from .scheduling import Dispatcher
from .utils import format_file_property_value, normalize_labels

logger = logging.getLogger(__name__)


class EntityAnnotationOrchestrator:
    def __init__(
        self,
        gateway,
        notifier,
        guard,
        preferences,
        dispatcher=None,
        listener=None,
        auth_token=None,
    ):
        self.gateway = gateway
        self.notifier = notifier
        self.guard = guard
        self.preferences = preferences
        self.dispatcher = dispatcher or Dispatcher()
        self.listener = listener
        self.auth_token = auth_token

    def annotate(self, entity_id, file_ref, labels=()):
        """Start all edits for one upload; outcomes surface through the notifier."""
        if not entity_id:
            self.notifier.log(logging.DEBUG, "Skipping creation of claim as entity id is empty")
            return
        if not file_ref:
            self.notifier.log(logging.DEBUG, "Skipping creation of claim as file name is empty")
            return
        if not self.guard.allow():
            self.notifier.log(
                logging.DEBUG,
                "Image location and nearby place location mismatched, so %s won't be edited",
                entity_id,
            )
            return

        title = self.preferences.get_string(config.PREF_TITLE, "")
        pairs = normalize_labels(labels)
        dispatcher = self.dispatcher

        # Chain A
        claim = dispatcher.run_in_background(self._create_claim, entity_id, file_ref)
        tagged = dispatcher.then_in_background(claim, self._tag_edit, entity_id)
        dispatcher.then_on_foreground(tagged, self._report_claim, entity_id, title)

        # Shared by chains B and C
        resolution = dispatcher.run_in_background(self._resolve_file_entity, file_ref)
        dispatcher.then_on_foreground(resolution, self._report_resolution, file_ref)

        # Chain B
        relation = dispatcher.then_in_background(resolution, self._set_relation, entity_id)
        dispatcher.then_on_foreground(relation, self._report_relation, entity_id)

        # Chain C
        if pairs:
            dispatcher.then_in_background(resolution, self._fan_out_labels, pairs)

    # Chain A

    def _create_claim(self, entity_id, file_ref):
        value = format_file_property_value(file_ref)
        logger.debug("Attempting to edit property %s of %s with %s", config.IMAGE_PROPERTY, entity_id, value)
        revision_id = self.gateway.create_claim(entity_id, config.IMAGE_PROPERTY, value)
        if _is_rejected(revision_id):
            return EditResult.rejected(f"{config.IMAGE_PROPERTY} claim on {entity_id} was not accepted")
        return revision_id

    def _tag_edit(self, claim, entity_id):
        if not claim.ok:
            return claim
        tag = EditResult.capture(self.gateway.add_edit_tag, claim.value, config.EDIT_TAG, config.EDIT_TAG_REASON)
        if tag.ok and not tag.value:
            tag = EditResult.rejected(f"tag {config.EDIT_TAG} was not applied to revision {claim.value}")
        if not tag.ok:
            # Tagging is metadata only; the claim revision stands.
            logger.warning(
                "[!] Claim on %s saved as revision %s but tagging failed: %s",
                entity_id,
                claim.value,
                tag.describe(),
            )
        return claim

    def _report_claim(self, result, entity_id, title):
        self.notifier.record(_event("claim", entity_id, result))
        if not result.ok:
            self.notifier.log(logging.ERROR, "Error occurred while making claim on %s: %s", entity_id, result.describe())
            self.notifier.notify_user_message(config.MESSAGE_EDIT_FAILURE)
            return
        self.notifier.log(logging.INFO, "[+] Claim on %s saved as revision %s", entity_id, result.value)
        try:
            self.notifier.notify_success(self.listener)
        except Exception as exc:
            self.notifier.log(logging.WARNING, "[!] Success notification for %s failed: %s", entity_id, exc)
        self.notifier.notify_user_message(config.MESSAGE_EDIT_SUCCESS, title)

    # Chains B and C

    def _resolve_file_entity(self, file_ref):
        file_entity_id = self.gateway.get_file_entity_id(file_ref)
        if not file_entity_id:
            return EditResult.unresolved(f"no entity id for {file_ref}")
        return file_entity_id

    def _report_resolution(self, result, file_ref):
        if result.ok:
            self.notifier.log(logging.DEBUG, "Entity id %s for %s was received successfully", result.value, file_ref)
        elif result.kind == DEPENDENCY_UNRESOLVED:
            self.notifier.log(logging.INFO, "Error acquiring entity id for %s", file_ref)
        else:
            self.notifier.log(logging.WARNING, "[!] Error occurred while getting entity id for %s: %s", file_ref, result.describe())

    def _set_relation(self, resolution, entity_id):
        if not resolution.ok:
            return EditResult.failure(DEPENDENCY_UNRESOLVED, resolution.message, resolution.cause)
        revision_id = self.gateway.set_entity_relation(entity_id, resolution.value)
        if _is_rejected(revision_id):
            return EditResult.rejected(f"{config.DEPICTS_PROPERTY} on {resolution.value} was not accepted")
        return revision_id

    def _report_relation(self, result, entity_id):
        if result.kind == DEPENDENCY_UNRESOLVED:
            return
        self.notifier.record(_event("relation", entity_id, result))
        if result.ok:
            self.notifier.log(logging.INFO, "Property %s set successfully for %s", config.DEPICTS_PROPERTY, result.value)
        else:
            self.notifier.log(
                logging.WARNING,
                "[!] Error occurred while setting %s for %s: %s",
                config.DEPICTS_PROPERTY,
                entity_id,
                result.describe(),
            )

    def _fan_out_labels(self, resolution, pairs):
        if not resolution.ok:
            return 0
        file_entity_id = resolution.value
        for language, text in pairs:
            label = self.dispatcher.run_in_background(self._set_label, file_entity_id, language, text)
            self.dispatcher.then_on_foreground(label, self._report_label, file_entity_id, language)
        return len(pairs)

    def _set_label(self, file_entity_id, language, text):
        revision_id = self.gateway.set_entity_label(file_entity_id, self.auth_token, language, text)
        if _is_rejected(revision_id):
            return EditResult.rejected(f"label [{language}] on {file_entity_id} was not accepted")
        return revision_id

    def _report_label(self, result, file_entity_id, language):
        self.notifier.record(_event("label", file_entity_id, result, language=language))
        if result.ok:
            self.notifier.log(logging.INFO, "Label [%s] set successfully for %s", language, result.value)
        else:
            self.notifier.log(
                logging.WARNING,
                "[!] Error occurred while setting label [%s] on %s: %s",
                language,
                file_entity_id,
                result.describe(),
            )


def _is_rejected(revision_id):
    """A missing, empty or sentinel revision id means the edit was not saved."""
    if revision_id is None:
        return True
    return str(revision_id).strip() in ("", str(config.REJECTED_REVISION_ID))


def _event(step, entity_id, result, **extra):
    event = {
        "step": step,
        "entity_id": entity_id,
        "ok": result.ok,
        "revision_id": result.value if result.ok else None,
        "failure_kind": result.kind,
        "message": result.message,
    }
    event.update(extra)
    return event
