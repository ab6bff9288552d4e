"""Tests for merging submitted form trees into the persisted tree."""
from __future__ import annotations

import random
from unittest import mock

from django.db import OperationalError
from django.db.models import QuerySet
from django.test import SimpleTestCase, TestCase

from forms.exceptions import IntegrityViolation, MissingRequired, NotFoundOrUnauthorized, TransientStoreFailure
from forms.models import Form, FormResponse, Question, QuestionOption, ResponseAnswer
from forms.ordering import REMOVED_ORDER_KEY, is_contiguous
from forms.reconciliation import (
    SubmittedOption,
    SubmittedQuestion,
    apply_plan,
    persisted_tree,
    plan_reconciliation,
    reconcile_form,
)
from forms.reporting import answer_label
from forms.submissions import submit_response
from forms.trees import load_form_tree
from forms.validation import CandidateAnswer

from .builders import OTHER_OWNER_ID, OWNER_ID, RESPONDENT_ID, build_form, live_texts, option, question, submitted


def _q(token, text="Q", kind=Question.TEXT, options=(), order_key=None) -> SubmittedQuestion:
    return SubmittedQuestion(token=token, kind=kind, text=text, order_key=order_key, options=list(options))


def _o(token, text="O", order_key=None) -> SubmittedOption:
    return SubmittedOption(token=token, text=text, order_key=order_key)


class PlanReconciliationTests(SimpleTestCase):
    def test_classifies_new_updated_and_removed_questions(self) -> None:
        plan = plan_reconciliation({1: [], 2: [], 3: []}, [_q(3), _q("tmp-1"), _q(1)])

        self.assertEqual([(c.question_id, c.order_key) for c in plan.questions], [(3, 1), (None, 2), (1, 3)])
        self.assertEqual(plan.removed_question_ids, [2])
        self.assertEqual(plan.counts()["questions_created"], 1)
        self.assertEqual(plan.counts()["questions_updated"], 2)

    def test_options_are_diffed_against_their_own_question(self) -> None:
        plan = plan_reconciliation(
            {1: [10, 11, 12]},
            [_q(1, kind=Question.CHOICE, options=[_o(12), _o("new"), _o(10)])],
        )

        change = plan.questions[0]
        self.assertEqual([(o.option_id, o.order_key) for o in change.options], [(12, 1), (None, 2), (10, 3)])
        self.assertEqual(change.removed_option_ids, [11])

    def test_durable_id_referenced_twice_is_rejected(self) -> None:
        with self.assertRaisesRegex(IntegrityViolation, "more than once"):
            plan_reconciliation({1: []}, [_q(1), _q(1)])

    def test_durable_id_from_elsewhere_is_rejected(self) -> None:
        with self.assertRaisesRegex(IntegrityViolation, "does not belong") as ctx:
            plan_reconciliation({1: []}, [_q(1), _q(99)])
        self.assertEqual(ctx.exception.entity, "question")
        self.assertEqual(ctx.exception.entity_id, 99)

    def test_option_of_a_sibling_question_is_rejected(self) -> None:
        with self.assertRaises(IntegrityViolation) as ctx:
            plan_reconciliation(
                {1: [10], 2: [20]},
                [_q(1, kind=Question.CHOICE, options=[_o(20)]), _q(2, kind=Question.CHOICE)],
            )
        self.assertEqual(ctx.exception.entity, "option")

    def test_new_question_creates_every_option(self) -> None:
        plan = plan_reconciliation({}, [_q("tmp", kind=Question.CHOICE, options=[_o("a"), _o(5)])])
        self.assertTrue(all(option.is_create for option in plan.questions[0].options))
        self.assertEqual([o.order_key for o in plan.questions[0].options], [1, 2])

    def test_options_are_ignored_for_non_choice_questions(self) -> None:
        plan = plan_reconciliation({1: [10, 11]}, [_q(1, kind=Question.TEXT, options=[_o(10)])])
        self.assertEqual(plan.questions[0].options, [])
        self.assertEqual(plan.questions[0].removed_option_ids, [10, 11])

    def test_submitted_removals(self) -> None:
        plan = plan_reconciliation({1: [], 2: []}, [_q(1, order_key=0), _q("tmp", order_key=-1), _q(2)])

        self.assertEqual([(c.question_id, c.order_key) for c in plan.questions], [(1, REMOVED_ORDER_KEY), (2, 1)])
        self.assertEqual(plan.removed_question_ids, [])


class ReconcileFormTests(TestCase):
    def setUp(self) -> None:
        self.form = build_form(
            [
                question("Name", required=True),
                question("Color", kind=Question.CHOICE, options=[option("Red"), option("Blue")]),
            ]
        )
        self.name, self.color = self.form.tree_questions
        self.red, self.blue = self.color.tree_options

    def _reconcile(self, questions, owner_id=OWNER_ID, **extra) -> Form:
        return reconcile_form(self.form.pk, owner_id, submitted(questions, **extra))

    def _snapshot(self):
        return (
            list(Form.objects.filter(pk=self.form.pk).values_list("title", "description", "is_active")),
            list(Question.objects.filter(form=self.form).values_list("id", "kind", "text", "is_required", "order_key")),
            list(QuestionOption.objects.filter(question__form=self.form).values_list("id", "text", "order_key")),
        )

    def test_created_form_is_numbered_from_one(self) -> None:
        self.assertEqual([q.order_key for q in self.form.tree_questions], [1, 2])
        self.assertEqual([o.order_key for o in self.color.tree_options], [1, 2])
        self.assertEqual(self.form.owner_id, OWNER_ID)

    def test_scenario_a_replaces_an_option(self) -> None:
        form = self._reconcile(
            [
                question("Name", id=self.name.pk, required=True),
                question(
                    "Color",
                    kind=Question.CHOICE,
                    id=self.color.pk,
                    options=[option("Green", id="tmp-green"), option("Blue", id=self.blue.pk)],
                ),
            ]
        )

        self.red.refresh_from_db()
        self.blue.refresh_from_db()
        green = QuestionOption.objects.get(question=self.color, text="Green")
        self.assertLessEqual(self.red.order_key, 0)
        self.assertEqual((green.order_key, self.blue.order_key), (1, 2))
        self.assertEqual(Question.objects.get(pk=self.color.pk).order_key, 2)
        color = [q for q in form.tree_questions if q.pk == self.color.pk][0]
        self.assertEqual([o.text for o in color.tree_options], ["Green", "Blue", "Red"])

    def test_scenario_a_new_option_becomes_the_only_live_one(self) -> None:
        self._reconcile(
            [
                question("Name", id=self.name.pk, required=True),
                question("Color", kind=Question.CHOICE, id=self.color.pk, options=[option("Green", id="tmp-green")]),
            ]
        )

        live = QuestionOption.objects.filter(question=self.color, order_key__gt=0)
        self.assertEqual([(o.text, o.order_key) for o in live], [("Green", 1)])
        self.assertEqual(QuestionOption.objects.filter(question=self.color).count(), 3)

    def test_scenario_b_new_required_question_is_appended(self) -> None:
        self._reconcile(
            [
                question("Name", id=self.name.pk, required=True),
                question("Color", kind=Question.CHOICE, id=self.color.pk, options=[option("Red", id=self.red.pk)]),
                question("Department", id="tmp-1", required=True),
            ]
        )

        department = Question.objects.get(form=self.form, text="Department")
        self.assertEqual(department.order_key, 3)
        with self.assertRaises(MissingRequired) as ctx:
            submit_response(self.form.pk, RESPONDENT_ID, [CandidateAnswer(question_id=self.name.pk, text_value="Ada")])
        self.assertEqual(ctx.exception.question_id, department.pk)
        self.assertFalse(FormResponse.objects.exists())

    def test_scenario_c_question_of_another_form_is_rejected(self) -> None:
        other = build_form([question("Elsewhere")], owner_id=OWNER_ID, title="Other")
        before = self._snapshot()

        with self.assertRaises(IntegrityViolation):
            self._reconcile(
                [question("Name", id=self.name.pk), question("Stolen", id=other.tree_questions[0].pk)],
                title="Renamed",
            )

        self.assertEqual(self._snapshot(), before)
        self.assertEqual(Question.objects.get(form=other).text, "Elsewhere")

    def test_owner_mismatch_is_not_found(self) -> None:
        with self.assertRaises(NotFoundOrUnauthorized):
            self._reconcile([question("Name", id=self.name.pk)], owner_id=OTHER_OWNER_ID)
        with self.assertRaises(NotFoundOrUnauthorized):
            reconcile_form(10_000, OWNER_ID, submitted([]))

    def test_identity_is_stable_and_answers_still_resolve(self) -> None:
        response = submit_response(
            self.form.pk,
            RESPONDENT_ID,
            [
                CandidateAnswer(question_id=self.name.pk, text_value="Ada"),
                CandidateAnswer(question_id=self.color.pk, option_id=self.red.pk),
            ],
        )

        self._reconcile(
            [
                question("Full name", id=self.name.pk, required=True),
                question(
                    "Favourite colour",
                    kind=Question.CHOICE,
                    id=self.color.pk,
                    options=[option("Crimson", id=self.red.pk), option("Blue", id=self.blue.pk)],
                ),
            ]
        )

        name_answer = ResponseAnswer.objects.select_related("question").get(response=response, question_id=self.name.pk)
        self.assertEqual(name_answer.question.text, "Full name")
        self.assertEqual(Question.objects.filter(form=self.form).count(), 2)
        self.assertEqual(QuestionOption.objects.get(pk=self.red.pk).text, "Crimson")

    def test_failure_midway_leaves_the_tree_untouched(self) -> None:
        before = self._snapshot()

        with self.assertRaises(IntegrityViolation):
            self._reconcile(
                [
                    question("Changed", id=self.name.pk),
                    question("Added", id="tmp-added"),
                    question(
                        "Color",
                        kind=Question.CHOICE,
                        id=self.color.pk,
                        options=[option("Red", id=self.red.pk), option("Bogus", id=987654)],
                    ),
                ],
                title="Renamed",
            )

        self.assertEqual(self._snapshot(), before)

    def test_duplicate_durable_question_is_rejected_without_changes(self) -> None:
        before = self._snapshot()

        with self.assertRaisesRegex(IntegrityViolation, "more than once"):
            self._reconcile([question("Name", id=self.name.pk), question("Again", id=self.name.pk)])

        self.assertEqual(self._snapshot(), before)

    def test_removed_choice_question_keeps_answer_labels(self) -> None:
        response = submit_response(
            self.form.pk,
            RESPONDENT_ID,
            [
                CandidateAnswer(question_id=self.name.pk, text_value="Ada"),
                CandidateAnswer(question_id=self.color.pk, option_id=self.blue.pk),
            ],
        )

        self._reconcile([question("Name", id=self.name.pk, required=True)])

        self.assertLessEqual(Question.objects.get(pk=self.color.pk).order_key, 0)
        answer = ResponseAnswer.objects.select_related("option").get(response=response, question_id=self.color.pk)
        self.assertEqual(answer_label(answer), "Blue")
        self.assertEqual(live_texts(load_form_tree(self.form.pk)), ["Name"])

    def test_resubmitting_a_removed_question_restores_it(self) -> None:
        self._reconcile([question("Name", id=self.name.pk)])
        self._reconcile([question("Color", kind=Question.CHOICE, id=self.color.pk), question("Name", id=self.name.pk)])

        keys = dict(Question.objects.filter(form=self.form).values_list("id", "order_key"))
        self.assertEqual(keys, {self.color.pk: 1, self.name.pk: 2})

    def test_kind_change_removes_options(self) -> None:
        self._reconcile([question("Name", id=self.name.pk), question("Color", kind=Question.TEXT, id=self.color.pk)])

        self.assertFalse(QuestionOption.objects.filter(question=self.color, order_key__gt=0).exists())
        self.assertEqual(QuestionOption.objects.filter(question=self.color).count(), 2)

    def test_scalar_fields_are_updated(self) -> None:
        self._reconcile([question("Name", id=self.name.pk)], title="Exit survey", description="Bye", is_active=False)

        form = Form.objects.get(pk=self.form.pk)
        self.assertEqual((form.title, form.description, form.is_active), ("Exit survey", "Bye", False))

    def test_live_order_stays_contiguous_across_edits(self) -> None:
        rng = random.Random(1234)
        counter = 0
        for _ in range(25):
            current = load_form_tree(self.form.pk)
            nodes = []
            for existing in current.tree_questions:
                if rng.random() < 0.2:
                    continue
                options = [
                    option(o.text, id=o.pk) for o in existing.tree_options if rng.random() >= 0.25
                ]
                if existing.kind == Question.CHOICE and rng.random() < 0.5:
                    counter += 1
                    options.append(option(f"Option {counter}", id=f"tmp-{counter}"))
                rng.shuffle(options)
                nodes.append(question(existing.text, kind=existing.kind, id=existing.pk, options=options))
            for _ in range(rng.randint(0, 2)):
                counter += 1
                nodes.append(
                    question(
                        f"Question {counter}",
                        kind=Question.CHOICE,
                        id=f"tmp-{counter}",
                        options=[option("Yes"), option("No")],
                    )
                )
            rng.shuffle(nodes)
            self._reconcile(nodes)

            self.assertTrue(is_contiguous(Question.objects.filter(form=self.form).values_list("order_key", flat=True)))
            for each in Question.objects.filter(form=self.form):
                self.assertTrue(is_contiguous(each.options.values_list("order_key", flat=True)))

    def test_edit_locks_the_form_row(self) -> None:
        select_for_update = QuerySet.select_for_update

        with mock.patch.object(
            QuerySet, "select_for_update", autospec=True, side_effect=select_for_update
        ) as locked:
            self._reconcile([question("Name", id=self.name.pk)], title="Locked")

        self.assertEqual([call.args[0].model for call in locked.call_args_list], [Form])
        self.assertEqual(Form.objects.get(pk=self.form.pk).title, "Locked")

    def test_transient_failure_is_retried(self) -> None:
        attempts = []

        def flaky(form, plan, using):
            attempts.append(plan)
            if len(attempts) == 1:
                raise OperationalError("could not serialize access due to concurrent update")
            return apply_plan(form, plan, using)

        with mock.patch("forms.reconciliation.apply_plan", side_effect=flaky):
            self._reconcile([question("Name", id=self.name.pk)], title="Retried")

        self.assertEqual(len(attempts), 2)
        self.assertEqual(Form.objects.get(pk=self.form.pk).title, "Retried")
        self.assertLessEqual(Question.objects.get(pk=self.color.pk).order_key, 0)

    def test_exhausted_retries_surface_as_transient_failure(self) -> None:
        before = self._snapshot()

        with self.settings(FORM_TRANSACTION_RETRIES=2):
            with mock.patch(
                "forms.reconciliation.apply_plan",
                side_effect=OperationalError("deadlock detected"),
            ) as patched:
                with self.assertRaises(TransientStoreFailure):
                    self._reconcile([question("Name", id=self.name.pk)], title="Never")

        self.assertEqual(patched.call_count, 2)
        self.assertEqual(self._snapshot(), before)

    def test_persisted_tree_includes_removed_nodes(self) -> None:
        self._reconcile([question("Name", id=self.name.pk)])

        tree = persisted_tree(Form.objects.get(pk=self.form.pk))
        self.assertEqual(set(tree), {self.name.pk, self.color.pk})
        self.assertEqual(sorted(tree[self.color.pk]), sorted([self.red.pk, self.blue.pk]))

    def test_create_rejects_durable_ids(self) -> None:
        with self.assertRaises(IntegrityViolation):
            build_form([question("Name", id=self.name.pk)])
        self.assertEqual(Form.objects.count(), 1)
