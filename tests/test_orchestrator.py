import unittest

import requests

from fakes import FakeGateway, RecordingNotifier, StaticPreferences
from wdedit import config
from wdedit.guard import EditGuardPolicy
from wdedit.orchestrator import EntityAnnotationOrchestrator
from wdedit.scheduling import Dispatcher

LABELS = [("en", "Cat"), ("fr", "Chat"), ("de", "Katze")]


class OrchestratorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.gateway = FakeGateway()
        self.notifier = RecordingNotifier()
        self.preferences = StaticPreferences({config.PREF_TITLE: "Felis catus"})
        self.dispatcher = Dispatcher(max_workers=4)
        self.listener_calls = []

    def tearDown(self) -> None:
        self.dispatcher.shutdown(wait=True)

    def _orchestrator(self, auth_token="label-token") -> EntityAnnotationOrchestrator:
        return EntityAnnotationOrchestrator(
            gateway=self.gateway,
            notifier=self.notifier,
            guard=EditGuardPolicy(self.preferences),
            preferences=self.preferences,
            dispatcher=self.dispatcher,
            listener=lambda: self.listener_calls.append(True),
            auth_token=auth_token,
        )

    def annotate(self, entity_id="Q1", file_ref="File:Cat.jpg", labels=(), **kwargs) -> None:
        self._orchestrator(**kwargs).annotate(entity_id, file_ref, labels)
        self.assertTrue(self.dispatcher.wait_idle(timeout=10))


class PreconditionTests(OrchestratorTestCase):
    def test_guard_false_issues_no_remote_calls(self) -> None:
        self.preferences.values[config.PREF_LOCATION_MATCHES] = False
        self.annotate(labels=LABELS)
        self.assertEqual(self.gateway.calls, [])
        self.assertEqual(self.notifier.user_messages, [])

    def test_empty_entity_id_is_skipped(self) -> None:
        self.annotate(entity_id="", labels=LABELS)
        self.annotate(entity_id=None)
        self.assertEqual(self.gateway.calls, [])
        self.assertEqual(self.notifier.user_messages, [])

    def test_empty_file_ref_is_skipped_regardless_of_guard(self) -> None:
        for guard in (True, False):
            self.preferences.values[config.PREF_LOCATION_MATCHES] = guard
            self.annotate(file_ref="")
        self.assertEqual(self.gateway.calls, [])
        self.assertEqual(self.notifier.user_messages, [])

    def test_missing_input_skips_before_reading_guard(self) -> None:
        self.annotate(entity_id="")
        self.assertNotIn(config.PREF_LOCATION_MATCHES, self.preferences.reads)


class ClaimChainTests(OrchestratorTestCase):
    def test_file_name_is_stripped_and_quoted(self) -> None:
        self.annotate(file_ref="File:Example.jpg")
        self.assertEqual(
            self.gateway.calls_to("create_claim"),
            [("Q1", "P18", '"Example.jpg"')],
        )

    def test_successful_claim_and_tag(self) -> None:
        self.annotate()
        self.assertEqual(
            self.gateway.calls_to("add_edit_tag"),
            [(55, config.EDIT_TAG, config.EDIT_TAG_REASON)],
        )
        self.assertEqual(self.notifier.successes, 1)
        self.assertEqual(self.listener_calls, [True])
        self.assertEqual(self.notifier.user_messages, [(config.MESSAGE_EDIT_SUCCESS, ("Felis catus",))])

    def test_sentinel_revision_never_tags(self) -> None:
        self.gateway.claim_revision = config.REJECTED_REVISION_ID
        self.annotate()
        self.assertEqual(self.gateway.calls_to("add_edit_tag"), [])
        self.assertEqual(self.notifier.message_keys(), [config.MESSAGE_EDIT_FAILURE])
        self.assertEqual(self.notifier.successes, 0)
        self.assertEqual(self.listener_calls, [])
        self.assertIn("REMOTE_REJECTION", self.notifier.log_text())

    def test_empty_or_missing_revision_counts_as_rejection(self) -> None:
        for revision in (None, "", "-1"):
            with self.subTest(revision=revision):
                self.gateway = FakeGateway(claim_revision=revision)
                self.notifier = RecordingNotifier()
                self.annotate()
                self.assertEqual(self.gateway.calls_to("add_edit_tag"), [])
                self.assertEqual(self.notifier.message_keys(), [config.MESSAGE_EDIT_FAILURE])
                self.assertIn("REMOTE_REJECTION", self.notifier.log_text())

    def test_transport_failure_is_reported_distinctly(self) -> None:
        self.gateway.claim_revision = requests.ConnectionError("connection reset")
        self.annotate()
        self.assertEqual(self.gateway.calls_to("add_edit_tag"), [])
        self.assertEqual(self.notifier.message_keys(), [config.MESSAGE_EDIT_FAILURE])
        self.assertIn("TRANSPORT_FAILURE", self.notifier.log_text())
        self.assertNotIn("REMOTE_REJECTION", self.notifier.log_text())

    def test_tag_failure_keeps_claim(self) -> None:
        for tag_result in (False, requests.Timeout("tag timed out")):
            with self.subTest(tag_result=tag_result):
                self.notifier = RecordingNotifier()
                self.listener_calls = []
                self.gateway.tag_result = tag_result
                self.annotate()
                self.assertEqual(self.notifier.message_keys(), [config.MESSAGE_EDIT_SUCCESS])
                self.assertEqual(self.listener_calls, [True])

    def test_success_listener_error_does_not_become_failure(self) -> None:
        orchestrator = self._orchestrator()
        orchestrator.listener = self._broken_listener
        orchestrator.annotate("Q1", "File:Cat.jpg", ())
        self.assertTrue(self.dispatcher.wait_idle(timeout=10))
        self.assertEqual(self.notifier.message_keys(), [config.MESSAGE_EDIT_SUCCESS])
        self.assertEqual(len(self.notifier.user_messages), 1)
        self.assertIn("Success notification for Q1 failed", self.notifier.log_text())

    @staticmethod
    def _broken_listener() -> None:
        raise RuntimeError("listener went away")

    def test_exactly_one_user_message_per_call(self) -> None:
        self.gateway.relation_revision = requests.ConnectionError("down")
        self.gateway.label_results = {"fr": requests.ConnectionError("down")}
        self.annotate(labels=LABELS)
        self.assertEqual(len(self.notifier.user_messages), 1)

    def test_notifier_runs_on_foreground_thread(self) -> None:
        self.annotate(labels=LABELS)
        self.assertTrue(self.notifier.threads)
        for name in self.notifier.threads:
            self.assertTrue(name.startswith("wdedit-main"), name)


class FileEntityChainTests(OrchestratorTestCase):
    def test_resolution_happens_once_for_relation_and_labels(self) -> None:
        self.gateway.resolve_delay = 0.05
        self.annotate(labels=LABELS)
        self.assertEqual(self.gateway.calls_to("get_file_entity_id"), [("File:Cat.jpg",)])
        self.assertEqual(self.gateway.calls_to("set_entity_relation"), [("Q1", "M77")])
        self.assertEqual(len(self.gateway.calls_to("set_entity_label")), 3)

    def test_labels_use_resolved_id_and_caller_token(self) -> None:
        self.annotate(labels={"en": "Cat", "nl": "Kat"}, auth_token="secret")
        self.assertCountEqual(
            self.gateway.calls_to("set_entity_label"),
            [("M77", "secret", "en", "Cat"), ("M77", "secret", "nl", "Kat")],
        )

    def test_failing_labels_do_not_stop_the_rest(self) -> None:
        self.gateway.label_results = {
            "en": requests.ConnectionError("reset"),
            "fr": config.REJECTED_REVISION_ID,
        }
        self.annotate(labels=LABELS)
        self.assertEqual(len(self.gateway.calls_to("set_entity_label")), 3)
        labels = [record for record in self.notifier.records if record["step"] == "label"]
        outcome = {record["language"]: record["failure_kind"] for record in labels}
        self.assertEqual(outcome, {"en": "TRANSPORT_FAILURE", "fr": "REMOTE_REJECTION", "de": None})

    def test_duplicate_languages_are_separate_edits(self) -> None:
        self.annotate(labels=[("en", "Cat"), ("en", "Kitten")])
        self.assertEqual(len(self.gateway.calls_to("set_entity_label")), 2)

    def test_unresolved_file_entity_stops_relation_and_labels(self) -> None:
        self.gateway.file_entity_id = None
        self.annotate(labels=LABELS)
        self.assertEqual(self.gateway.calls_to("set_entity_relation"), [])
        self.assertEqual(self.gateway.calls_to("set_entity_label"), [])
        self.assertEqual(self.notifier.message_keys(), [config.MESSAGE_EDIT_SUCCESS])
        self.assertIn("Error acquiring entity id for File:Cat.jpg", self.notifier.log_text())

    def test_any_non_empty_file_entity_id_is_used_as_is(self) -> None:
        self.gateway.file_entity_id = "Q999"
        self.annotate(labels=[("en", "Cat")])
        self.assertEqual(self.gateway.calls_to("set_entity_relation"), [("Q1", "Q999")])
        self.assertEqual(self.gateway.calls_to("set_entity_label"), [("Q999", "label-token", "en", "Cat")])

    def test_empty_file_entity_id_counts_as_unresolved(self) -> None:
        self.gateway.file_entity_id = ""
        self.annotate(labels=LABELS)
        self.assertEqual(self.gateway.calls_to("set_entity_relation"), [])
        self.assertEqual(self.gateway.calls_to("set_entity_label"), [])

    def test_resolution_error_stays_out_of_user_messages(self) -> None:
        self.gateway.file_entity_id = requests.ConnectionError("no route")
        self.annotate(labels=LABELS)
        self.assertEqual(self.gateway.calls_to("set_entity_relation"), [])
        self.assertEqual(self.gateway.calls_to("set_entity_label"), [])
        self.assertEqual(self.notifier.message_keys(), [config.MESSAGE_EDIT_SUCCESS])

    def test_relation_failure_does_not_block_labels(self) -> None:
        self.gateway.relation_revision = requests.ConnectionError("reset")
        self.annotate(labels=LABELS)
        self.assertEqual(len(self.gateway.calls_to("set_entity_label")), 3)
        relation = [record for record in self.notifier.records if record["step"] == "relation"]
        self.assertEqual(relation[0]["failure_kind"], "TRANSPORT_FAILURE")

    def test_empty_relation_and_label_revisions_are_rejections(self) -> None:
        self.gateway.relation_revision = None
        self.gateway.label_results = {"en": "", "fr": None}
        self.annotate(labels=LABELS)
        kinds = {
            (record["step"], record.get("language")): record["failure_kind"] for record in self.notifier.records
        }
        self.assertEqual(kinds[("relation", None)], "REMOTE_REJECTION")
        self.assertEqual(kinds[("label", "en")], "REMOTE_REJECTION")
        self.assertEqual(kinds[("label", "fr")], "REMOTE_REJECTION")
        self.assertIsNone(kinds[("label", "de")])

    def test_claim_rejection_does_not_block_relation(self) -> None:
        self.gateway.claim_revision = config.REJECTED_REVISION_ID
        self.annotate(labels=LABELS)
        self.assertEqual(self.gateway.calls_to("set_entity_relation"), [("Q1", "M77")])
        self.assertEqual(len(self.gateway.calls_to("set_entity_label")), 3)


class ScenarioTests(OrchestratorTestCase):
    def test_cat_upload_success(self) -> None:
        self.gateway.claim_revision = 55
        self.gateway.tag_result = True
        self.annotate("Q1", "File:Cat.jpg")
        self.assertEqual(self.notifier.message_keys(), [config.MESSAGE_EDIT_SUCCESS])

    def test_cat_upload_rejected(self) -> None:
        self.gateway.claim_revision = -1
        self.annotate("Q1", "File:Cat.jpg")
        self.assertEqual(self.notifier.message_keys(), [config.MESSAGE_EDIT_FAILURE])
        self.assertEqual(self.gateway.calls_to("add_edit_tag"), [])


if __name__ == "__main__":
    unittest.main()
