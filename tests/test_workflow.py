import io
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm.exc import StaleDataError
from starlette.datastructures import Headers, UploadFile

from app.core.config import MAX_WRITE_ATTEMPTS
from app.core.errors import Forbidden, InvalidInput, NotFound, StorageFailure
from app.models.assignment import Assignment
from app.models import submission as submission_model
from app.models.submission import Submission
from app.services import submissions as workflow


def make_upload(data: bytes, filename="work.pdf", content_type="application/pdf") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def add_assignment(db, course_id, title, due):
    a = Assignment(course_id=course_id, title=title, description=title, due_date=due)
    db.add(a)
    db.commit()
    return a.id


def test_submit_grade_resubmit_scenario(db, blobs, seed, user):
    s1 = user(seed.student1)
    prof = user(seed.professor1)

    sub = workflow.submit(db, blobs, seed.assignment, s1, text="answer v1")
    assert sub.content == "answer v1"
    assert workflow.list_for_student(db, s1.id)[0]["status"] == "submitted"

    sub = workflow.grade(db, seed.assignment, prof, s1.id, 85, "good")
    view = workflow.list_for_student(db, s1.id)[0]
    assert view["status"] == "graded"
    assert view["grade"] == 85

    sub = workflow.submit(db, blobs, seed.assignment, s1, text="answer v2")
    assert sub.grade is None
    assert sub.content == "answer v2"
    view = workflow.list_for_student(db, s1.id)[0]
    assert view["status"] == "submitted"
    assert view["grade"] is None


def test_resubmission_clears_grading_and_advances_submitted_at(db, blobs, seed, user):
    s1 = user(seed.student1)

    sub = workflow.submit(db, blobs, seed.assignment, s1, text="v1")
    workflow.grade(db, seed.assignment, user(seed.professor1), s1.id, 90, "great")
    before = sub.submitted_at

    sub = workflow.submit(db, blobs, seed.assignment, s1, text="v2")

    assert sub.grade is None
    assert sub.feedback is None
    assert sub.graded_at is None
    assert sub.submitted_at > before


def test_not_enrolled_student_is_forbidden_and_nothing_changes(db, blobs, seed, user):
    workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="mine")

    with pytest.raises(Forbidden):
        workflow.submit(db, blobs, seed.assignment, user(seed.student2), text="x")

    subs = db.query(Submission).filter(Submission.assignment_id == seed.assignment).all()
    assert [s.student_id for s in subs] == [seed.student1]


def test_not_enrolled_upload_never_reaches_disk(db, blobs, seed, user):
    with pytest.raises(Forbidden):
        workflow.submit(db, blobs, seed.assignment, user(seed.student2), upload=make_upload(b"data"))
    assert not blobs.root.exists()


def test_repeated_submissions_keep_one_entry_per_student(db, blobs, seed, user):
    s1 = user(seed.student1)
    for i in range(5):
        workflow.submit(db, blobs, seed.assignment, s1, text=f"attempt {i}")

    subs = db.query(Submission).filter(Submission.student_id == s1.id).all()
    assert len(subs) == 1
    assert subs[0].content == "attempt 4"


def test_submit_requires_exactly_one_kind_of_content(db, blobs, seed, user):
    s1 = user(seed.student1)

    with pytest.raises(InvalidInput):
        workflow.submit(db, blobs, seed.assignment, s1)
    with pytest.raises(InvalidInput):
        workflow.submit(db, blobs, seed.assignment, s1, text="  ")
    with pytest.raises(InvalidInput):
        workflow.submit(db, blobs, seed.assignment, s1, text="both", upload=make_upload(b"x"))


def test_submit_unknown_assignment(db, blobs, seed, user):
    with pytest.raises(NotFound):
        workflow.submit(db, blobs, 12345, user(seed.student1), text="x")


def test_uploaded_file_is_recorded_as_file_kind(db, blobs, seed, user):
    sub = workflow.submit(db, blobs, seed.assignment, user(seed.student1), upload=make_upload(b"pdf bytes"))

    assert sub.kind == "file"
    assert blobs.path_for(sub.content).read_bytes() == b"pdf bytes"


@pytest.mark.parametrize("value", [-1, 101, float("nan")])
def test_grade_bounds(db, blobs, seed, user, value):
    workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="x")

    with pytest.raises(InvalidInput):
        workflow.grade(db, seed.assignment, user(seed.professor1), seed.student1, value, "")


def test_grade_checks_ownership_before_range(db, blobs, seed, user):
    workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="x")

    with pytest.raises(Forbidden):
        workflow.grade(db, seed.assignment, user(seed.professor2), seed.student1, 500, "")


def test_grade_unknown_submission(db, seed, user):
    with pytest.raises(NotFound):
        workflow.grade(db, seed.assignment, user(seed.professor1), seed.student1, 50, "")


def test_status_derivation():
    assert workflow.derive_status(None) == "pending"
    assert workflow.derive_status(Submission(content="x", grade=None)) == "submitted"
    assert workflow.derive_status(Submission(content="x", grade=0)) == "graded"


def test_submission_status_follows_the_same_rule():
    graded = Submission(content="x", grade=70)
    ungraded = Submission(content="x", grade=None)
    assert (graded.status, ungraded.status) == ("graded", "submitted")
    assert workflow.derive_status is submission_model.derive_status


def test_list_for_student_orders_by_due_date_then_id(db, seed):
    late = add_assignment(db, seed.course, "HW3", datetime(2024, 5, 1, tzinfo=timezone.utc))
    early = add_assignment(db, seed.course, "HW0", datetime(2024, 1, 1, tzinfo=timezone.utc))
    tie = add_assignment(db, seed.course, "HW1b", datetime(2024, 3, 1, tzinfo=timezone.utc))

    views = workflow.list_for_student(db, seed.student1)

    assert [v["id"] for v in views] == [early, seed.assignment, tie, late]
    assert all(v["status"] == "pending" for v in views)


def test_list_for_student_skips_courses_not_enrolled(db, seed):
    assert workflow.list_for_student(db, seed.student2) == []


def test_list_for_instructor_includes_submissions(db, blobs, seed, user):
    workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="x")

    mine = workflow.list_for_instructor(db, user(seed.professor1))
    assert [a.id for a in mine] == [seed.assignment]
    assert [s.student_id for s in mine[0].submissions] == [seed.student1]

    assert workflow.list_for_instructor(db, user(seed.professor2)) == []
    assert [a.id for a in workflow.list_for_instructor(db, user(seed.admin))] == [seed.assignment]


def test_stale_write_on_same_submission_is_detected(db, blobs, seed, user, session_factory):
    workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="v1")

    other = session_factory()
    try:
        stale = other.query(Submission).one()

        # a second writer updates the row first
        workflow.grade(db, seed.assignment, user(seed.professor1), seed.student1, 60, "")

        stale.content = "lost update"
        with pytest.raises(StaleDataError):
            other.commit()
        other.rollback()
    finally:
        other.close()

    db.expire_all()
    sub = db.query(Submission).one()
    assert sub.content == "v1"
    assert sub.grade == 60


def write_concurrently(session_factory, assignment_id, student_id, **changes):
    """Commit ``changes`` to a submission row from an independent session."""
    other = session_factory()
    try:
        sub = (
            other.query(Submission)
            .filter_by(assignment_id=assignment_id, student_id=student_id)
            .one()
        )
        for key, value in changes.items():
            setattr(sub, key, value)
        other.commit()
    finally:
        other.close()


def racing_lookup(monkeypatch, on_lookup):
    """Run ``on_lookup(call_no)`` right after each submission lookup in the workflow."""
    original = workflow._find_submission
    calls = []

    def lookup(db, assignment_id, student_id):
        found = original(db, assignment_id, student_id)
        calls.append(found)
        on_lookup(len(calls))
        return found

    monkeypatch.setattr(workflow, "_find_submission", lookup)
    return calls


def test_resubmit_replays_after_concurrent_update(db, blobs, seed, user, session_factory, monkeypatch):
    workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="v1")

    def other_tab(call_no):
        if call_no == 1:
            write_concurrently(session_factory, seed.assignment, seed.student1, content="other tab")

    calls = racing_lookup(monkeypatch, other_tab)

    sub = workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="v2")

    assert len(calls) == 2
    assert sub.content == "v2"
    db.expire_all()
    assert [s.content for s in db.query(Submission).all()] == ["v2"]


def test_racing_first_submissions_end_in_one_row(db, blobs, seed, user, session_factory, monkeypatch):
    def other_tab(call_no):
        if call_no == 1:
            other = session_factory()
            try:
                other.add(
                    Submission(
                        assignment_id=seed.assignment,
                        student_id=seed.student1,
                        kind="text",
                        content="other tab",
                        submitted_at=datetime(2024, 2, 1, tzinfo=timezone.utc),
                    )
                )
                other.commit()
            finally:
                other.close()

    calls = racing_lookup(monkeypatch, other_tab)

    sub = workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="mine")

    # first lookup saw nothing, the insert collided, the replay updated the row
    assert calls[0] is None
    assert calls[1] is not None
    assert sub.content == "mine"
    db.expire_all()
    assert [s.content for s in db.query(Submission).all()] == ["mine"]


def test_grade_replays_after_concurrent_update(db, blobs, seed, user, session_factory, monkeypatch):
    workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="answer")

    def co_grader(call_no):
        if call_no == 1:
            write_concurrently(session_factory, seed.assignment, seed.student1, grade=10.0, feedback="theirs")

    calls = racing_lookup(monkeypatch, co_grader)

    sub = workflow.grade(db, seed.assignment, user(seed.professor1), seed.student1, 85, "mine")

    assert len(calls) == 2
    db.expire_all()
    stored = db.query(Submission).one()
    assert (stored.grade, stored.feedback) == (85, "mine")
    assert stored.content == "answer"
    assert sub.grade == 85


def test_submit_gives_up_after_retry_budget(db, blobs, seed, user, session_factory, monkeypatch):
    workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="v1")

    def busy_row(call_no):
        write_concurrently(session_factory, seed.assignment, seed.student1, content=f"other {call_no}")

    calls = racing_lookup(monkeypatch, busy_row)

    with pytest.raises(StorageFailure):
        workflow.submit(db, blobs, seed.assignment, user(seed.student1), upload=make_upload(b"pdf"))

    assert len(calls) == MAX_WRITE_ATTEMPTS
    # the uploaded file is cleaned up when the write never lands
    folder = blobs.root / "submissions" / str(seed.assignment)
    assert list(folder.iterdir()) == []
    db.expire_all()
    assert db.query(Submission).one().content == f"other {MAX_WRITE_ATTEMPTS}"


def test_grade_gives_up_after_retry_budget(db, blobs, seed, user, session_factory, monkeypatch):
    workflow.submit(db, blobs, seed.assignment, user(seed.student1), text="answer")

    def busy_row(call_no):
        write_concurrently(session_factory, seed.assignment, seed.student1, feedback=f"other {call_no}")

    calls = racing_lookup(monkeypatch, busy_row)

    with pytest.raises(StorageFailure):
        workflow.grade(db, seed.assignment, user(seed.professor1), seed.student1, 50, "mine")

    assert len(calls) == MAX_WRITE_ATTEMPTS
    db.expire_all()
    assert db.query(Submission).one().grade is None
