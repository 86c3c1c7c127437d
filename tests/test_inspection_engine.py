"""
Tests for running inspections: instantiation, answers, scoring and submit.

Scoring properties are checked with hypothesis over arbitrary mixes of
question kinds and answers.
"""

from datetime import date, datetime

import pytest
from hypothesis import given, settings, strategies as st

from auditking.app.checklist_models import ChecklistTemplate, InspectionItem, TemplateItem
from auditking.app.errors import ValidationError
from auditking.app.inspection_engine import (
    attach_media,
    compute_score,
    instantiate,
    mark_check,
    record_answer,
    set_signature,
    signature_missing,
    submit,
    validate,
)


@st.composite
def template_items(draw):
    kinds = draw(
        st.lists(
            st.sampled_from(["yesno", "text", "photo", "number", "date", "multiple", "choice"]),
            max_size=12,
        )
    )
    return [
        TemplateItem(item_id=f"q{index}", kind=kind, required=draw(st.booleans()))
        for index, kind in enumerate(kinds, start=1)
    ]


@st.composite
def answered_items(draw):
    rows = draw(
        st.lists(
            st.tuples(st.sampled_from(["yesno", "text", "photo"]), st.sampled_from([True, False, None])),
            max_size=20,
        )
    )
    return [
        InspectionItem(item_id=f"a{index}", question_id=f"q{index}", kind=kind, passed=passed if kind == "yesno" else None)
        for index, (kind, passed) in enumerate(rows)
    ]


def _template(*items: TemplateItem, signature_required: bool = False) -> ChecklistTemplate:
    return ChecklistTemplate(
        template_id="tpl",
        name="Dock Check",
        site="Bristol",
        signature_required=signature_required,
        items=list(items),
    )


class TestInstantiate:
    @settings(max_examples=100, deadline=None)
    @given(items=template_items())
    def test_one_answer_per_question_in_order(self, items):
        draft = instantiate(_template(*items))

        assert [item.question_id for item in draft.items] == [item.item_id for item in items]
        assert [item.kind for item in draft.items] == [item.kind for item in items]
        assert [item.required for item in draft.items] == [item.required for item in items]
        assert len({item.item_id for item in draft.items}) == len(draft.items)

    def test_yesno_defaults_to_pass(self):
        draft = instantiate(_template(TemplateItem(item_id="q1", kind="yesno"), TemplateItem(item_id="q2")))

        assert draft.items[0].passed is True
        assert draft.items[0].value is True
        assert draft.items[1].passed is None
        assert draft.items[1].value is None
        assert draft.status == "in_progress"
        assert (draft.template_name, draft.site) == ("Dock Check", "Bristol")

    @pytest.mark.parametrize(
        ("policy", "expected"),
        [("fail", False), ("unanswered", None), ("garbage", True)],
    )
    def test_yesno_default_policy(self, policy, expected):
        draft = instantiate(_template(TemplateItem(item_id="q1", kind="yesno")), yesno_default=policy)

        assert draft.items[0].passed is expected

    def test_fresh_ids_each_run(self):
        template = _template(TemplateItem(item_id="q1", kind="yesno"))

        assert instantiate(template).inspection_id != instantiate(template).inspection_id


class TestAnswers:
    def test_record_answer_returns_new_draft(self):
        draft = instantiate(_template(TemplateItem(item_id="q1", kind="text")))

        updated = record_answer(draft, 0, {"value": "All good"})

        assert updated.items[0].value == "All good"
        assert draft.items[0].value is None

    def test_dates_are_stored_as_iso_text(self):
        draft = instantiate(_template(TemplateItem(item_id="q1", kind="date"), TemplateItem(item_id="q2", kind="text")))

        draft = record_answer(draft, 0, {"value": date(2026, 10, 18)})
        draft = record_answer(draft, 1, {"value": ["seen", datetime(2026, 10, 18, 9, 30)]})

        assert draft.items[0].value == "2026-10-18"
        assert draft.items[1].value == ["seen", "2026-10-18T09:30:00"]

    def test_pass_alias(self):
        draft = instantiate(_template(TemplateItem(item_id="q1", kind="yesno")))

        assert record_answer(draft, 0, {"pass": False}).items[0].passed is False

    def test_bad_index_and_fields(self):
        draft = instantiate(_template(TemplateItem(item_id="q1", kind="yesno")))

        with pytest.raises(IndexError):
            record_answer(draft, 3, {"value": 1})
        with pytest.raises(ValidationError):
            record_answer(draft, 0, {"label": "hacked"})

    def test_media_is_appended(self):
        draft = instantiate(_template(TemplateItem(item_id="q1", kind="photo")))

        draft = attach_media(attach_media(draft, 0, "blob:1"), 0, "blob:2")

        assert draft.items[0].media == ["blob:1", "blob:2"]
        with pytest.raises(ValidationError):
            attach_media(draft, 0, "")

    def test_submitted_inspection_is_frozen(self, admin):
        draft = instantiate(_template(TemplateItem(item_id="q1", kind="yesno")))
        done = submit(draft, admin)

        with pytest.raises(ValidationError):
            mark_check(done, 0, False)
        with pytest.raises(ValidationError):
            submit(done, admin)


class TestScore:
    def test_two_of_three_is_67(self):
        template = _template(
            TemplateItem(item_id="q1", kind="yesno"),
            TemplateItem(item_id="q2", kind="yesno"),
            TemplateItem(item_id="q3", kind="yesno"),
            TemplateItem(item_id="q4", kind="text"),
        )
        draft = mark_check(instantiate(template), 1, False)

        assert compute_score(draft) == 67

    def test_half_rounds_up(self):
        items = [
            InspectionItem(item_id="a", question_id="q1", kind="yesno", passed=True),
            InspectionItem(item_id="b", question_id="q2", kind="yesno", passed=False),
        ]

        assert compute_score(items) == 50
        assert compute_score(items[:1] * 7 + items[1:] * 1) == 88

    def test_no_checks_scores_100(self):
        assert compute_score([InspectionItem(item_id="a", question_id="q", kind="text")]) == 100
        assert compute_score([]) == 100

    def test_unanswered_checks_count_as_not_passed(self):
        items = [
            InspectionItem(item_id="a", question_id="q1", kind="yesno", passed=True),
            InspectionItem(item_id="b", question_id="q2", kind="yesno", passed=None),
        ]

        assert compute_score(items) == 50

    @settings(max_examples=200, deadline=None)
    @given(items=answered_items())
    def test_score_bounds(self, items):
        score = compute_score(items)

        assert 0 <= score <= 100
        if not any(item.kind == "yesno" for item in items):
            assert score == 100

    @settings(max_examples=200, deadline=None)
    @given(items=answered_items())
    def test_flipping_a_failure_never_lowers_score(self, items):
        failing = [index for index, item in enumerate(items) if item.kind == "yesno" and item.passed is not True]
        if not failing:
            return
        improved = list(items)
        target = failing[0]
        improved[target] = InspectionItem(
            item_id=items[target].item_id,
            question_id=items[target].question_id,
            kind="yesno",
            passed=True,
        )

        assert compute_score(improved) >= compute_score(items)


class TestValidateAndSubmit:
    def test_required_unanswered_are_reported(self):
        template = _template(
            TemplateItem(item_id="q1", kind="yesno", required=True),
            TemplateItem(item_id="q2", kind="photo", required=True),
            TemplateItem(item_id="q3", kind="text", required=True),
            TemplateItem(item_id="q4", kind="number"),
        )
        draft = instantiate(template, yesno_default="unanswered")

        assert validate(draft) == ["q1", "q2", "q3"]
        draft = mark_check(draft, 0, True)
        draft = attach_media(draft, 1, "blob:1")
        draft = record_answer(draft, 2, {"value": "   "})
        assert validate(draft) == ["q3"]
        assert validate(record_answer(draft, 2, {"value": "ok"})) == []

    def test_submit_stamps_owner_and_score(self, admin):
        draft = instantiate(_template(TemplateItem(item_id="q1", kind="yesno")))

        done = submit(draft, admin, submitted_at="2026-10-18T10:00:00+00:00")

        assert done.status == "submitted"
        assert done.submitted_at == "2026-10-18T10:00:00+00:00"
        assert done.score == 100
        assert (done.owner_id, done.owner_name) == ("u1", "Audit King Admin")
        assert draft.status == "in_progress"

    def test_signature_requirement(self):
        template = _template(TemplateItem(item_id="q1", kind="yesno"), signature_required=True)
        draft = instantiate(template)

        assert signature_missing(template, draft)
        assert not signature_missing(template, set_signature(draft, "data:image/png;base64,AAAA"))
        assert not signature_missing(_template(), draft)
